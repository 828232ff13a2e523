"""Integration tests for the append-only call session ledger."""
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from db import get_db
from db.errors import NotFound, ValidationConflict
from db.models import CallSession, CallType, utcnow
from db.repositories import project_contacts as links_repo
from schemas.calls import CallSessionCreate, CallSessionUpdate
from schemas.crm import ContactIn, ProjectIn
from services import entities, ledger
from services.config import CallPolicy

pytestmark = pytest.mark.usefixtures("database")

POLICY = CallPolicy()


async def _seed():
    project = await entities.upsert_project(ProjectIn(external_id="proj-1", name="Townhouses"))
    contact = (await entities.upsert_contact(ContactIn(external_id="c-1", name="Kim", phone="+1555"))).contact
    return project, contact


def _call(**overrides) -> CallSessionCreate:
    data = {
        "project_external_id": "proj-1",
        "contact": "c-1",
        "call_type": CallType.AI,
        "call_status": "initiated",
    }
    data.update(overrides)
    return CallSessionCreate(**data)


async def _call_count() -> int:
    async with get_db() as session:
        result = await session.execute(select(func.count(CallSession.id)))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_create_stamps_project_cooldown_and_pair():
    project, contact = await _seed()
    before = utcnow()
    call = await ledger.create_call_session(_call(), POLICY)
    after = utcnow()

    assert call.project_id == project.id
    assert call.contact_id == contact.id
    assert before <= call.started_at <= after

    project = await entities.get_project("proj-1")
    assert before <= project.last_contacted_at <= after
    assert project.next_call_eligible_at - project.last_contacted_at == timedelta(hours=24)

    async with get_db() as session:
        link = await links_repo.get(session, project.id, contact.id)
    assert link is not None
    assert link.last_contacted_at == project.last_contacted_at


@pytest.mark.asyncio
async def test_cooldown_follows_policy():
    await _seed()
    await ledger.create_call_session(_call(contact=None), CallPolicy(cooldown_hours=2))
    project = await entities.get_project("proj-1")
    assert project.next_call_eligible_at - project.last_contacted_at == timedelta(hours=2)


@pytest.mark.asyncio
async def test_create_is_idempotent_on_external_id():
    await _seed()
    first = await ledger.create_call_session(_call(external_id="call-1"), POLICY)
    second = await ledger.create_call_session(
        _call(external_id="call-1", call_status="completed"), POLICY
    )
    assert first.id == second.id
    assert second.call_status == "initiated"
    assert await _call_count() == 1


@pytest.mark.asyncio
async def test_unknown_project_or_contact_writes_nothing():
    await _seed()
    with pytest.raises(NotFound, match="Project not found: ghost"):
        await ledger.create_call_session(_call(project_external_id="ghost"), POLICY)
    with pytest.raises(NotFound):
        await ledger.create_call_session(_call(contact=uuid.uuid4()), POLICY)

    assert await _call_count() == 0
    project = await entities.get_project("proj-1")
    assert project.last_contacted_at is None
    assert project.next_call_eligible_at is None


@pytest.mark.asyncio
async def test_update_merges_outcome_fields_only():
    project, contact = await _seed()
    call = await ledger.create_call_session(_call(), POLICY)

    updated = await ledger.update_call_session(
        call.id,
        CallSessionUpdate(call_status="in_progress", detected_role="estimator", role_confidence=0.6),
    )
    updated = await ledger.update_call_session(
        call.id, CallSessionUpdate(sentiment="positive", outcome="callback requested")
    )

    assert updated.call_status == "in_progress"
    assert updated.detected_role == "estimator"
    assert updated.sentiment == "positive"
    assert updated.outcome == "callback requested"
    assert updated.project_id == project.id
    assert updated.contact_id == contact.id
    assert updated.started_at == call.started_at


@pytest.mark.asyncio
async def test_ended_call_rejects_further_updates():
    await _seed()
    call = await ledger.create_call_session(_call(), POLICY)
    ended = await ledger.update_call_session(
        call.id, CallSessionUpdate(call_status="completed", ended_at=utcnow())
    )
    assert ended.ended_at is not None

    with pytest.raises(ValidationConflict):
        await ledger.update_call_session(call.id, CallSessionUpdate(outcome="rewritten"))
    assert (await ledger.get_call_session(call.id)).outcome is None


@pytest.mark.asyncio
async def test_update_unknown_call_raises_not_found():
    with pytest.raises(NotFound):
        await ledger.update_call_session(uuid.uuid4(), CallSessionUpdate(outcome="x"))


@pytest.mark.asyncio
async def test_history_is_append_only_and_newest_first():
    await _seed()
    now = utcnow()
    older = await ledger.create_call_session(_call(started_at=now - timedelta(hours=3)), POLICY)
    newer = await ledger.create_call_session(_call(started_at=now - timedelta(hours=1)), POLICY)
    await ledger.update_call_session(older.id, CallSessionUpdate(call_status="no_answer"))

    history = await ledger.list_for_project("proj-1")
    assert [c.id for c in history] == [newer.id, older.id]
    assert await _call_count() == 2

    with pytest.raises(NotFound):
        await ledger.list_for_project("ghost")


@pytest.mark.asyncio
async def test_failed_pair_stamp_rolls_back_the_call(monkeypatch):
    await _seed()

    async def broken_upsert(*args, **kwargs):
        raise RuntimeError("pair write failed")

    monkeypatch.setattr(ledger.links_repo, "upsert", broken_upsert)
    with pytest.raises(RuntimeError, match="pair write failed"):
        await ledger.create_call_session(_call(), POLICY)

    assert await _call_count() == 0
    project = await entities.get_project("proj-1")
    assert project.last_contacted_at is None
    assert project.next_call_eligible_at is None
