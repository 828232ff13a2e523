"""Terminal-state registry.

A terminal session blocks calls at project, contact or global scope until
it expires. Removal is soft: expires_at is stamped, the row is kept as
history.
"""
import logging
from datetime import datetime
from typing import Optional, assert_never
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from db.connection import run_in_transaction
from db.errors import NotFound, PermissionDenied, ValidationConflict
from db.models import TerminalScope, TerminalSession, utcnow
from db.repositories import contacts as contacts_repo
from db.repositories import projects as projects_repo
from db.repositories import terminal_sessions as terminals_repo
from schemas.calls import TerminalSessionCreate
from schemas.eligibility import TerminalCheck
from services.events import (
    TERMINAL_SESSION_CREATED,
    TERMINAL_SESSION_REMOVED,
    OutboundEvent,
    bus,
)

logger = logging.getLogger(__name__)


def _check_scope_ids(data: TerminalSessionCreate) -> None:
    """Reject payloads whose identifiers do not match their scope."""
    has_project = data.project_external_id is not None
    has_contact = data.contact is not None
    scope = data.scope
    if scope is TerminalScope.PROJECT:
        ok = has_project and not has_contact
        expected = "project_external_id only"
    elif scope is TerminalScope.CONTACT:
        ok = has_contact and not has_project
        expected = "contact only"
    elif scope is TerminalScope.GLOBAL:
        ok = not has_project and not has_contact
        expected = "neither project_external_id nor contact"
    else:
        assert_never(scope)
    if not ok:
        raise ValidationConflict(
            f"Terminal scope '{scope.value}' requires {expected}",
            details={
                "scope": scope.value,
                "project_external_id": data.project_external_id,
                "contact": str(data.contact) if has_contact else None,
            },
        )


async def _external_keys(session: AsyncSession, terminal: TerminalSession) -> dict:
    """External identifiers of the rows a terminal state is bound to, for outbound events."""
    keys: dict = {}
    if terminal.project_id is not None:
        project = await projects_repo.get_by_id(session, terminal.project_id)
        keys["project_external_id"] = project.external_id if project else None
    if terminal.contact_id is not None:
        contact = await contacts_repo.get_by_id(session, terminal.contact_id)
        if contact is not None:
            keys["contact_external_id"] = contact.external_id
            keys["contact_email"] = contact.email
    return keys


async def create(data: TerminalSessionCreate) -> TerminalSession:
    """Register a terminal state. An existing external_id returns that row unchanged."""

    async def work(session: AsyncSession) -> tuple[TerminalSession, bool, dict]:
        if data.external_id:
            existing = await terminals_repo.get_by_external_id(session, data.external_id)
            if existing is not None:
                return existing, False, {}

        _check_scope_ids(data)
        project_id = contact_id = None
        if data.project_external_id is not None:
            project = await projects_repo.get_by_external_id(session, data.project_external_id)
            if project is None:
                raise NotFound(f"Project not found: {data.project_external_id}")
            project_id = project.id
        if data.contact is not None:
            contact = await contacts_repo.get_by_ref(session, data.contact)
            if contact is None:
                raise NotFound(f"Contact not found: {data.contact}")
            contact_id = contact.id

        terminal = await terminals_repo.insert(
            session, data, project_id=project_id, contact_id=contact_id
        )
        return terminal, True, await _external_keys(session, terminal)

    terminal, created, keys = await run_in_transaction(work)
    if created:
        logger.info(
            "Terminal state %s (%s) registered by %s: %s",
            terminal.id, terminal.scope.value, terminal.created_by, terminal.reason,
        )
        bus.publish(OutboundEvent.for_row(TERMINAL_SESSION_CREATED, terminal, **keys))
    return terminal


async def is_active(
    scope: TerminalScope,
    resource_id: Optional[UUID] = None,
    *,
    contact_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> TerminalCheck:
    """Report whether a terminal state currently blocks the scope/resource.

    Global scope takes no resource. ``contact_id`` narrows a project-scope
    check to rows not bound to a different contact.
    """
    if scope is not TerminalScope.GLOBAL and resource_id is None:
        raise ValidationConflict(f"Terminal scope '{scope.value}' needs a resource id")
    now = now or utcnow()

    async def work(session: AsyncSession) -> Optional[TerminalSession]:
        return await terminals_repo.find_active(
            session, scope, resource_id, now, contact_id=contact_id
        )

    terminal = await run_in_transaction(work)
    if terminal is None:
        return TerminalCheck(active=False)
    return TerminalCheck(active=True, reason=terminal.reason, terminal_id=terminal.id)


async def remove(terminal_id: UUID) -> TerminalSession:
    """Soft-remove a terminal state that allows overrides.

    Raises NotFound if missing and PermissionDenied when the row does not
    allow overrides (the row is left untouched).
    """

    async def work(session: AsyncSession) -> tuple[TerminalSession, dict]:
        terminal = await terminals_repo.get_by_id(session, terminal_id)
        if terminal is None:
            raise NotFound(f"Terminal session not found: {terminal_id}")
        if not terminal.override_allowed:
            raise PermissionDenied(
                f"Terminal session {terminal_id} does not allow override",
                details={"reason": terminal.reason},
            )
        now = utcnow()
        if terminal.is_active(now):
            terminal = await terminals_repo.expire(session, terminal, now)
        return terminal, await _external_keys(session, terminal)

    terminal, keys = await run_in_transaction(work)
    logger.info("Terminal state %s removed (expires_at=%s)", terminal.id, terminal.expires_at)
    bus.publish(OutboundEvent.for_row(TERMINAL_SESSION_REMOVED, terminal, **keys))
    return terminal


async def get(terminal_id: UUID) -> TerminalSession:
    async def work(session: AsyncSession) -> TerminalSession:
        terminal = await terminals_repo.get_by_id(session, terminal_id)
        if terminal is None:
            raise NotFound(f"Terminal session not found: {terminal_id}")
        return terminal

    return await run_in_transaction(work)
