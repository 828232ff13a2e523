"""Session ledger: append-only call history with cooldown side effects.

Recording a call stamps the project's cooldown and the pair's
last_contacted_at in the same transaction as the insert, so the next
eligibility query always sees the call that was just recorded.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.connection import run_in_transaction
from db.errors import NotFound
from db.models import CallSession, utcnow
from db.repositories import call_sessions as calls_repo
from db.repositories import contacts as contacts_repo
from db.repositories import project_contacts as links_repo
from db.repositories import projects as projects_repo
from schemas.calls import CallSessionCreate, CallSessionUpdate
from schemas.crm import ProjectContactIn
from services.config import CallPolicy
from services.events import (
    CALL_SESSION_CREATED,
    CALL_SESSION_UPDATED,
    OutboundEvent,
    bus,
)

logger = logging.getLogger(__name__)


async def create_call_session(
    data: CallSessionCreate,
    policy: Optional[CallPolicy] = None,
) -> CallSession:
    """Record a call attempt.

    An existing external_id returns the stored row unchanged (first write
    wins). Raises NotFound when the project or the referenced contact does
    not exist; nothing is written in that case.
    """
    policy = policy or CallPolicy.from_env()

    async def work(session: AsyncSession) -> tuple[CallSession, bool]:
        if data.external_id:
            existing = await calls_repo.get_by_external_id(session, data.external_id)
            if existing is not None:
                return existing, False

        project = await projects_repo.get_by_external_id(session, data.project_external_id)
        if project is None:
            raise NotFound(f"Project not found: {data.project_external_id}")

        contact = None
        if data.contact is not None:
            contact = await contacts_repo.get_by_ref(session, data.contact)
            if contact is None:
                raise NotFound(f"Contact not found: {data.contact}")

        now = utcnow()
        call = await calls_repo.insert(
            session, project.id, contact.id if contact else None, data, started_at=now
        )
        await projects_repo.stamp_contacted(session, project, now, policy.cooldown)
        if contact is not None:
            await links_repo.upsert(
                session, project.id, contact.id, ProjectContactIn(last_contacted_at=now)
            )
        return call, True

    call, created = await run_in_transaction(work)
    if created:
        logger.info(
            "Call session %s recorded for project %s (%s)",
            call.id, data.project_external_id, call.call_status,
        )
        bus.publish(
            OutboundEvent.for_row(
                CALL_SESSION_CREATED, call, project_external_id=data.project_external_id
            )
        )
    return call


async def update_call_session(call_session_id: UUID, data: CallSessionUpdate) -> CallSession:
    """Append outcome fields to an open call.

    Raises NotFound when missing and ValidationConflict once ended_at is set.
    """

    async def work(session: AsyncSession) -> tuple[CallSession, str]:
        call = await calls_repo.get_by_id(session, call_session_id)
        if call is None:
            raise NotFound(f"Call session not found: {call_session_id}")
        call = await calls_repo.append_outcome(session, call, data)
        project = await projects_repo.get_by_id(session, call.project_id)
        return call, project.external_id

    call, project_external_id = await run_in_transaction(work)
    bus.publish(
        OutboundEvent.for_row(
            CALL_SESSION_UPDATED, call, project_external_id=project_external_id
        )
    )
    return call


async def get_call_session(call_session_id: UUID) -> CallSession:
    async def work(session: AsyncSession) -> CallSession:
        call = await calls_repo.get_by_id(session, call_session_id)
        if call is None:
            raise NotFound(f"Call session not found: {call_session_id}")
        return call

    return await run_in_transaction(work)


async def list_for_project(project_external_id: str) -> list[CallSession]:
    """Call history for a project, newest first."""

    async def work(session: AsyncSession) -> list[CallSession]:
        project = await projects_repo.get_by_external_id(session, project_external_id)
        if project is None:
            raise NotFound(f"Project not found: {project_external_id}")
        return await calls_repo.list_for_project(session, project.id)

    return await run_in_transaction(work)
