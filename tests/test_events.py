"""Tests for outbound event delivery."""
import asyncio
import uuid

import pytest

from schemas.crm import ContactIn, ProjectIn
from services import entities
from services.events import (
    CONTACT_UPSERTED,
    PROJECT_UPSERTED,
    EventBus,
    OutboundEvent,
    bus,
)


def _event(name="project.upserted") -> OutboundEvent:
    return OutboundEvent(name=name, entity_id=uuid.uuid4(), payload={"external_id": "proj-1"})


@pytest.mark.asyncio
async def test_publish_delivers_to_sync_and_async_handlers():
    local = EventBus()
    seen = []

    def sync_handler(event):
        seen.append(("sync", event.name))

    async def async_handler(event):
        await asyncio.sleep(0)
        seen.append(("async", event.name))

    local.subscribe(sync_handler)
    local.subscribe(async_handler)
    local.publish(_event())
    await local.drain()

    assert sorted(seen) == [("async", "project.upserted"), ("sync", "project.upserted")]


@pytest.mark.asyncio
async def test_publish_returns_before_slow_handlers_finish():
    local = EventBus()
    release = asyncio.Event()
    finished = []

    async def slow(event):
        await release.wait()
        finished.append(event.name)

    local.subscribe(slow)
    local.publish(_event())
    assert finished == []

    release.set()
    await local.drain()
    assert finished == ["project.upserted"]


@pytest.mark.asyncio
async def test_failing_handler_is_logged_not_raised(caplog):
    local = EventBus()
    delivered = []

    async def broken(event):
        raise RuntimeError("CRM down")

    local.subscribe(broken)
    local.subscribe(lambda event: delivered.append(event.entity_id))
    event = _event()
    local.publish(event)
    await local.drain()

    assert delivered == [event.entity_id]
    assert "CRM down" in caplog.text


@pytest.mark.asyncio
async def test_writes_publish_after_commit(database):
    received = []
    bus.subscribe(received.append)
    try:
        project = await entities.upsert_project(ProjectIn(external_id="proj-1", name="Gym"))
        await entities.upsert_contact(ContactIn(external_id="c-1", name="Mo", phone="+1555"))
        await bus.drain()
    finally:
        bus.unsubscribe(received.append)

    assert [e.name for e in received] == [PROJECT_UPSERTED, CONTACT_UPSERTED]
    assert received[0].entity_id == project.id
    assert received[0].payload["external_id"] == "proj-1"
    assert received[0].payload["created"] is True
    assert received[1].payload["matched_by"] is None
