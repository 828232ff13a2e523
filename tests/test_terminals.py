"""Integration tests for the terminal-state registry."""
import uuid
from datetime import timedelta

import pytest

from db.errors import NotFound, PermissionDenied, ValidationConflict
from db.models import TerminalScope, utcnow
from schemas.calls import TerminalSessionCreate
from schemas.crm import ContactIn, ProjectIn
from services import entities, terminals

pytestmark = pytest.mark.usefixtures("database")


async def _seed():
    project = await entities.upsert_project(ProjectIn(external_id="proj-1", name="Clinic"))
    contact = (await entities.upsert_contact(ContactIn(external_id="c-1", name="Ash", phone="+1555"))).contact
    return project, contact


@pytest.mark.asyncio
async def test_create_project_scope_and_check_active():
    project, _ = await _seed()
    terminal = await terminals.create(
        TerminalSessionCreate(
            scope=TerminalScope.PROJECT, project_external_id="proj-1", reason="Project closed"
        )
    )
    assert terminal.project_id == project.id
    assert terminal.contact_id is None
    assert terminal.created_by == "system"

    check = await terminals.is_active(TerminalScope.PROJECT, project.id)
    assert check.active is True
    assert check.reason == "Project closed"
    assert check.terminal_id == terminal.id


@pytest.mark.asyncio
async def test_create_is_idempotent_on_external_id():
    _, contact = await _seed()
    payload = TerminalSessionCreate(
        external_id="t-1", scope=TerminalScope.CONTACT, contact="c-1", reason="Opted out"
    )
    first = await terminals.create(payload)
    second = await terminals.create(payload.model_copy(update={"reason": "Different"}))
    assert first.id == second.id
    assert second.reason == "Opted out"
    assert second.contact_id == contact.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"scope": TerminalScope.PROJECT, "contact": "c-1"},
        {"scope": TerminalScope.PROJECT, "project_external_id": "proj-1", "contact": "c-1"},
        {"scope": TerminalScope.CONTACT, "project_external_id": "proj-1"},
        {"scope": TerminalScope.GLOBAL, "project_external_id": "proj-1"},
        {"scope": TerminalScope.GLOBAL, "contact": "c-1"},
    ],
)
async def test_scope_id_mismatch_is_rejected(kwargs):
    await _seed()
    with pytest.raises(ValidationConflict):
        await terminals.create(TerminalSessionCreate(reason="x", **kwargs))


@pytest.mark.asyncio
async def test_unknown_resources_raise_not_found():
    await _seed()
    with pytest.raises(NotFound):
        await terminals.create(
            TerminalSessionCreate(scope=TerminalScope.PROJECT, project_external_id="nope", reason="x")
        )
    with pytest.raises(NotFound):
        await terminals.create(
            TerminalSessionCreate(scope=TerminalScope.CONTACT, contact=uuid.uuid4(), reason="x")
        )


@pytest.mark.asyncio
async def test_global_scope_needs_no_resource_and_expiry_is_respected():
    await terminals.create(
        TerminalSessionCreate(
            scope=TerminalScope.GLOBAL,
            reason="Calling paused",
            expires_at=utcnow() + timedelta(hours=1),
        )
    )
    assert (await terminals.is_active(TerminalScope.GLOBAL)).active is True
    later = utcnow() + timedelta(hours=2)
    assert (await terminals.is_active(TerminalScope.GLOBAL, now=later)).active is False


@pytest.mark.asyncio
async def test_scoped_check_without_resource_is_rejected():
    with pytest.raises(ValidationConflict):
        await terminals.is_active(TerminalScope.CONTACT)


@pytest.mark.asyncio
async def test_remove_without_override_is_denied_and_row_untouched():
    _, contact = await _seed()
    terminal = await terminals.create(
        TerminalSessionCreate(scope=TerminalScope.CONTACT, contact=contact.id, reason="Legal hold")
    )
    with pytest.raises(PermissionDenied):
        await terminals.remove(terminal.id)
    reread = await terminals.get(terminal.id)
    assert reread.expires_at is None
    assert (await terminals.is_active(TerminalScope.CONTACT, contact.id)).active is True


@pytest.mark.asyncio
async def test_remove_with_override_expires_softly():
    _, contact = await _seed()
    terminal = await terminals.create(
        TerminalSessionCreate(
            scope=TerminalScope.CONTACT, contact=contact.id, reason="Busy", override_allowed=True
        )
    )
    removed = await terminals.remove(terminal.id)
    assert removed.expires_at is not None
    assert removed.expires_at <= utcnow()

    # Kept as history, no longer blocking
    assert (await terminals.get(terminal.id)).id == terminal.id
    assert (await terminals.is_active(TerminalScope.CONTACT, contact.id)).active is False


@pytest.mark.asyncio
async def test_remove_unknown_raises_not_found():
    with pytest.raises(NotFound):
        await terminals.remove(uuid.uuid4())
