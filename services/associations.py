"""Association manager: the project-contact ledger. Links are never deleted."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.connection import run_in_transaction
from db.errors import NotFound
from db.models import ProjectContact
from db.repositories import contacts as contacts_repo
from db.repositories import project_contacts as links_repo
from db.repositories import projects as projects_repo
from schemas.crm import ProjectContactIn
from services.events import ASSOCIATION_UPSERTED, OutboundEvent, bus

logger = logging.getLogger(__name__)


async def link(
    project_id: UUID,
    contact_id: UUID,
    preferences: Optional[ProjectContactIn] = None,
) -> ProjectContact:
    """Create or update the association between two existing rows.

    Raises NotFound if either the project or the contact does not exist.
    """
    preferences = preferences or ProjectContactIn()

    async def work(session: AsyncSession) -> tuple[ProjectContact, bool, dict]:
        project = await projects_repo.get_by_id(session, project_id)
        if project is None:
            raise NotFound(f"Project not found: {project_id}")
        contact = await contacts_repo.get_by_id(session, contact_id)
        if contact is None:
            raise NotFound(f"Contact not found: {contact_id}")
        association, created = await links_repo.upsert(session, project_id, contact_id, preferences)
        keys = {
            "project_external_id": project.external_id,
            "contact_external_id": contact.external_id,
            "contact_email": contact.email,
        }
        return association, created, keys

    association, created, keys = await run_in_transaction(work)
    bus.publish(OutboundEvent.for_row(ASSOCIATION_UPSERTED, association, created=created, **keys))
    return association


async def list_for_project(project_id: UUID) -> list[ProjectContact]:
    async def work(session: AsyncSession) -> list[ProjectContact]:
        return await links_repo.list_for_project(session, project_id)

    return await run_in_transaction(work)


async def list_for_contact(contact_id: UUID) -> list[ProjectContact]:
    async def work(session: AsyncSession) -> list[ProjectContact]:
        return await links_repo.list_for_contact(session, contact_id)

    return await run_in_transaction(work)
