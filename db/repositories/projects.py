"""Project repository — idempotent upsert by external id and cooldown stamping."""
import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Project
from schemas.crm import ProjectIn

logger = logging.getLogger(__name__)

_DEFAULTED = ("country", "priority_score", "call_suppressed")


async def get_by_external_id(session: AsyncSession, external_id: str) -> Optional[Project]:
    """Return the Project with this external id, or None."""
    result = await session.execute(
        select(Project).where(Project.external_id == external_id)
    )
    return result.scalar_one_or_none()


async def get_by_id(session: AsyncSession, project_id: UUID) -> Optional[Project]:
    """Return the Project with this internal key, or None."""
    return await session.get(Project, project_id)


async def upsert(session: AsyncSession, data: ProjectIn) -> tuple[Project, bool]:
    """Insert or update a project by external_id (dedup key).

    Only the fields present in ``data`` are written on update. Returns
    the row and whether it was created.
    """
    fields = data.model_dump(exclude_unset=True)
    fields.pop("external_id")
    # NOT NULL columns with defaults: an explicit null means "keep / use the default"
    fields = {k: v for k, v in fields.items() if v is not None or k not in _DEFAULTED}

    project = await get_by_external_id(session, data.external_id)
    created = project is None
    if created:
        project = Project(external_id=data.external_id, **fields)
        session.add(project)
    else:
        for key, value in fields.items():
            setattr(project, key, value)

    await session.flush()
    await session.refresh(project)
    return project, created


async def stamp_contacted(
    session: AsyncSession,
    project: Project,
    contacted_at: datetime,
    cooldown: timedelta,
) -> Project:
    """Record a call: last_contacted_at = now, next_call_eligible_at = now + cooldown."""
    project.last_contacted_at = contacted_at
    project.next_call_eligible_at = contacted_at + cooldown
    await session.flush()
    return project
