"""Call session repository — append-only call history and fatigue counts."""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.errors import ValidationConflict
from db.models import CallSession
from schemas.calls import CallSessionCreate, CallSessionUpdate

logger = logging.getLogger(__name__)


async def get_by_id(session: AsyncSession, call_session_id: UUID) -> Optional[CallSession]:
    return await session.get(CallSession, call_session_id)


async def get_by_external_id(session: AsyncSession, external_id: str) -> Optional[CallSession]:
    result = await session.execute(
        select(CallSession).where(CallSession.external_id == external_id)
    )
    return result.scalar_one_or_none()


async def insert(
    session: AsyncSession,
    project_id: UUID,
    contact_id: Optional[UUID],
    data: CallSessionCreate,
    started_at: datetime,
) -> CallSession:
    """Persist a new call attempt for an already-resolved project/contact."""
    call = CallSession(
        external_id=data.external_id,
        project_id=project_id,
        contact_id=contact_id,
        call_type=data.call_type,
        call_status=data.call_status,
        detected_role=data.detected_role,
        role_confidence=data.role_confidence,
        outcome=data.outcome,
        sentiment=data.sentiment,
        escalated=data.escalated,
        escalation_reason=data.escalation_reason,
        transcript=data.transcript,
        recording_url=data.recording_url,
        started_at=data.started_at or started_at,
        ended_at=data.ended_at,
    )
    session.add(call)
    await session.flush()
    await session.refresh(call)
    return call


async def append_outcome(
    session: AsyncSession, call: CallSession, data: CallSessionUpdate
) -> CallSession:
    """Merge outcome fields into an open call.

    Raises ValidationConflict once the call has ended: ended calls are
    history and stay as recorded.
    """
    if call.ended_at is not None:
        raise ValidationConflict(
            f"Call session {call.id} ended at {call.ended_at.isoformat()} and can no longer be updated"
        )

    fields = data.model_dump(exclude_unset=True)
    if fields.get("escalated") is None:
        fields.pop("escalated", None)
    if "call_status" in fields and fields["call_status"] is None:
        fields.pop("call_status")

    for key, value in fields.items():
        setattr(call, key, value)
    await session.flush()
    await session.refresh(call)
    return call


async def count_since(
    session: AsyncSession,
    since: datetime,
    *,
    project_id: Optional[UUID] = None,
    contact_id: Optional[UUID] = None,
) -> int:
    """Count calls started at or after ``since`` for one project or one contact."""
    if (project_id is None) == (contact_id is None):
        raise ValueError("Exactly one of project_id or contact_id is required")

    stmt = select(func.count(CallSession.id)).where(CallSession.started_at >= since)
    if project_id is not None:
        stmt = stmt.where(CallSession.project_id == project_id)
    else:
        stmt = stmt.where(CallSession.contact_id == contact_id)
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def list_for_project(session: AsyncSession, project_id: UUID) -> list[CallSession]:
    """Return the call history for a project, newest first."""
    result = await session.execute(
        select(CallSession)
        .where(CallSession.project_id == project_id)
        .order_by(CallSession.started_at.desc())
    )
    return list(result.scalars().all())
