"""Entity resolver: idempotent project and contact upserts.

Each operation runs in its own transaction (see db.connection.run_in_transaction)
and publishes an outbound event once that transaction has committed.
"""
import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.connection import run_in_transaction
from db.errors import NotFound
from db.models import Contact, Project
from db.repositories import contacts as contacts_repo
from db.repositories import projects as projects_repo
from db.repositories.contacts import ContactResolution
from schemas.calls import ContactRef
from schemas.crm import ContactIn, ProjectIn
from services.events import CONTACT_UPSERTED, PROJECT_UPSERTED, OutboundEvent, bus

logger = logging.getLogger(__name__)


async def upsert_project(data: ProjectIn) -> Project:
    """Create or update a project keyed by external_id."""

    async def work(session: AsyncSession) -> tuple[Project, bool]:
        return await projects_repo.upsert(session, data)

    project, created = await run_in_transaction(work)
    logger.debug("Project %s %s", project.external_id, "created" if created else "updated")
    bus.publish(OutboundEvent.for_row(PROJECT_UPSERTED, project, created=created))
    return project


async def upsert_contact(data: ContactIn) -> ContactResolution:
    """Create or update a contact, deduplicated on external_id, then phone, then email."""

    async def work(session: AsyncSession) -> ContactResolution:
        return await contacts_repo.upsert(session, data)

    resolution = await run_in_transaction(work)
    bus.publish(
        OutboundEvent.for_row(
            CONTACT_UPSERTED,
            resolution.contact,
            created=resolution.created,
            matched_by=resolution.matched_by,
        )
    )
    return resolution


async def get_project(external_id: str) -> Project:
    async def work(session: AsyncSession) -> Project:
        project = await projects_repo.get_by_external_id(session, external_id)
        if project is None:
            raise NotFound(f"Project not found: {external_id}")
        return project

    return await run_in_transaction(work)


async def get_project_by_id(project_id: UUID) -> Project:
    async def work(session: AsyncSession) -> Project:
        project = await projects_repo.get_by_id(session, project_id)
        if project is None:
            raise NotFound(f"Project not found: {project_id}")
        return project

    return await run_in_transaction(work)


async def get_contact(ref: ContactRef) -> Contact:
    """Look a contact up by internal key (UUID) or external id (str)."""

    async def work(session: AsyncSession) -> Contact:
        contact = await contacts_repo.get_by_ref(session, ref)
        if contact is None:
            raise NotFound(f"Contact not found: {ref}")
        return contact

    return await run_in_transaction(work)
