"""Tests for the command-line envelope."""
import argparse
import uuid

import pytest

import cli
from schemas.crm import ProjectIn
from services import entities


def test_contact_ref_parses_uuid_or_external_id():
    key = uuid.uuid4()
    assert cli._contact_ref(str(key)) == key
    assert cli._contact_ref("c-1") == "c-1"
    assert cli._contact_ref(None) is None


def test_parser_requires_project_for_check():
    parser = cli._build_arg_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["check"])
    args = parser.parse_args(["eligible", "--limit", "5"])
    assert args.limit == 5


@pytest.mark.asyncio
async def test_check_returns_success_envelope(database):
    await entities.upsert_project(ProjectIn(external_id="proj-1", name="Shed"))
    envelope = await cli._run(argparse.Namespace(command="check", project="proj-1", contact=None))
    assert envelope == {
        "success": True,
        "data": {"eligible": True, "reason": None, "check": None},
    }


@pytest.mark.asyncio
async def test_errors_map_to_failure_envelope(database):
    envelope = await cli._run(argparse.Namespace(command="remove-terminal", terminal_id=str(uuid.uuid4())))
    assert envelope["success"] is False
    assert envelope["details"]["code"] == "not_found"

    envelope = await cli._run(argparse.Namespace(command="remove-terminal", terminal_id="not-a-uuid"))
    assert envelope["success"] is False
    assert envelope["details"]["code"] == "validation_conflict"
