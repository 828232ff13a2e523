"""Project-contact association repository and bulk call-candidate query."""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Contact, Project, ProjectContact
from schemas.crm import ProjectContactIn

logger = logging.getLogger(__name__)

_DEFAULTED = ("role_confirmed", "suppress_for_project")


async def get(
    session: AsyncSession, project_id: UUID, contact_id: UUID
) -> Optional[ProjectContact]:
    """Return the association for this pair, or None."""
    result = await session.execute(
        select(ProjectContact).where(
            ProjectContact.project_id == project_id,
            ProjectContact.contact_id == contact_id,
        )
    )
    return result.scalar_one_or_none()


async def upsert(
    session: AsyncSession,
    project_id: UUID,
    contact_id: UUID,
    data: ProjectContactIn,
) -> tuple[ProjectContact, bool]:
    """Insert or update the association for (project_id, contact_id).

    Dedup key: the composite pair. Only fields set on ``data`` are written.
    """
    fields = {
        k: v
        for k, v in data.model_dump(exclude_unset=True).items()
        if v is not None or k not in _DEFAULTED
    }

    link = await get(session, project_id, contact_id)
    created = link is None
    if created:
        link = ProjectContact(project_id=project_id, contact_id=contact_id, **fields)
        session.add(link)
    else:
        for key, value in fields.items():
            setattr(link, key, value)

    await session.flush()
    await session.refresh(link)
    return link, created


async def list_for_project(session: AsyncSession, project_id: UUID) -> list[ProjectContact]:
    result = await session.execute(
        select(ProjectContact)
        .where(ProjectContact.project_id == project_id)
        .order_by(ProjectContact.created_at)
    )
    return list(result.scalars().all())


async def list_for_contact(session: AsyncSession, contact_id: UUID) -> list[ProjectContact]:
    result = await session.execute(
        select(ProjectContact)
        .where(ProjectContact.contact_id == contact_id)
        .order_by(ProjectContact.created_at)
    )
    return list(result.scalars().all())


async def list_call_candidates(
    session: AsyncSession,
    now: datetime,
    limit: int,
    offset: int = 0,
) -> list[tuple[ProjectContact, Project, Contact]]:
    """Return pairs passing the storage-level filters, best first.

    Pre-filter only: suppression flags, cooldown and a dialable phone.
    Terminal states and fatigue are checked by the caller per pair.
    Order: priority_score DESC, next_call_eligible_at ASC NULLS FIRST,
    then the association key for a stable page order.
    """
    result = await session.execute(
        select(ProjectContact, Project, Contact)
        .join(Project, Project.id == ProjectContact.project_id)
        .join(Contact, Contact.id == ProjectContact.contact_id)
        .where(Project.call_suppressed.is_(False))
        .where(Contact.do_not_call.is_(False))
        .where(ProjectContact.suppress_for_project.is_(False))
        .where(
            or_(
                Project.next_call_eligible_at.is_(None),
                Project.next_call_eligible_at <= now,
            )
        )
        .where(and_(Contact.phone.is_not(None), func.trim(Contact.phone) != ""))
        .order_by(
            Project.priority_score.desc(),
            Project.next_call_eligible_at.asc().nulls_first(),
            ProjectContact.id,
        )
        .limit(limit)
        .offset(offset)
    )
    return [tuple(row) for row in result.all()]
