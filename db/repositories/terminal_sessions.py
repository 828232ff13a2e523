"""Terminal session repository — scoped blocking states."""
import logging
from datetime import datetime
from typing import Optional, assert_never
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import TerminalScope, TerminalSession
from schemas.calls import TerminalSessionCreate

logger = logging.getLogger(__name__)


async def get_by_id(session: AsyncSession, terminal_id: UUID) -> Optional[TerminalSession]:
    return await session.get(TerminalSession, terminal_id)


async def get_by_external_id(session: AsyncSession, external_id: str) -> Optional[TerminalSession]:
    result = await session.execute(
        select(TerminalSession).where(TerminalSession.external_id == external_id)
    )
    return result.scalar_one_or_none()


async def insert(
    session: AsyncSession,
    data: TerminalSessionCreate,
    *,
    project_id: Optional[UUID] = None,
    contact_id: Optional[UUID] = None,
) -> TerminalSession:
    """Persist a terminal session whose scope/ids were already validated."""
    terminal = TerminalSession(
        external_id=data.external_id,
        scope=data.scope,
        project_id=project_id,
        contact_id=contact_id,
        reason=data.reason,
        created_by=data.created_by,
        expires_at=data.expires_at,
        override_allowed=data.override_allowed,
    )
    session.add(terminal)
    await session.flush()
    await session.refresh(terminal)
    return terminal


async def find_active(
    session: AsyncSession,
    scope: TerminalScope,
    resource_id: Optional[UUID],
    now: datetime,
    *,
    contact_id: Optional[UUID] = None,
) -> Optional[TerminalSession]:
    """Return one active terminal session for the scope/resource, or None.

    Active: expires_at IS NULL or expires_at > now. Global scope ignores
    ``resource_id``. For project scope, ``contact_id`` narrows the match to
    rows not bound to a different contact.
    """
    stmt = select(TerminalSession).where(
        TerminalSession.scope == scope,
        or_(TerminalSession.expires_at.is_(None), TerminalSession.expires_at > now),
    )
    if scope is TerminalScope.GLOBAL:
        pass
    elif scope is TerminalScope.PROJECT:
        stmt = stmt.where(TerminalSession.project_id == resource_id)
        if contact_id is not None:
            stmt = stmt.where(
                or_(
                    TerminalSession.contact_id.is_(None),
                    TerminalSession.contact_id == contact_id,
                )
            )
    elif scope is TerminalScope.CONTACT:
        stmt = stmt.where(TerminalSession.contact_id == resource_id)
    else:
        assert_never(scope)

    result = await session.execute(
        stmt.order_by(TerminalSession.created_at).limit(1)
    )
    return result.scalar_one_or_none()


async def expire(session: AsyncSession, terminal: TerminalSession, now: datetime) -> TerminalSession:
    """Soft-remove: stamp expires_at = now. The row is kept."""
    terminal.expires_at = now
    await session.flush()
    await session.refresh(terminal)
    return terminal
