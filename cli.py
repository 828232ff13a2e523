"""Outbound-calling CRM core: command-line entry point.

Every command prints one JSON envelope:
  {"success": true, "data": ...}
  {"success": false, "error": "...", "details": {...}}

Usage:
  # May project proj-1 (optionally with contact c-1) be called right now?
  python cli.py check --project proj-1 --contact c-1

  # Callable (project, contact) pairs, best first
  python cli.py eligible --limit 20

  # Soft-remove a terminal state that allows overrides
  python cli.py remove-terminal 6f1c2a9e-0d55-4e0b-9a43-6f0f1f8f6d2b
"""
import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Any, Optional, Union

from pydantic import ValidationError

from db import dispose_engine
from db.errors import CrmError
from db.models import to_dict
from services.eligibility import EligibilityEngine
from services.events import bus
from services import terminals
from tools.hubspot_tools import register as register_hubspot

logger = logging.getLogger(__name__)


def _contact_ref(value: Optional[str]) -> Optional[Union[uuid.UUID, str]]:
    """A UUID argument is an internal contact key, anything else an external id."""
    if value is None:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        return value


def ok(data: Any) -> dict:
    return {"success": True, "data": data}


def fail(error: str, details: Optional[dict] = None) -> dict:
    envelope: dict = {"success": False, "error": error}
    if details:
        envelope["details"] = details
    return envelope


async def run_check(project: str, contact: Optional[str]) -> dict:
    engine = EligibilityEngine()
    result = await engine.is_eligible(project, _contact_ref(contact))
    return ok(result.model_dump())


async def run_eligible(limit: Optional[int]) -> dict:
    engine = EligibilityEngine()
    calls = [call.model_dump(mode="json") async for call in engine.list_eligible(limit)]
    return ok(calls)


async def run_remove_terminal(terminal_id: str) -> dict:
    try:
        key = uuid.UUID(terminal_id)
    except ValueError:
        return fail(f"Invalid terminal session id: {terminal_id}", {"code": "validation_conflict"})
    terminal = await terminals.remove(key)
    return ok(to_dict(terminal))


async def _run(args: argparse.Namespace) -> dict:
    register_hubspot(bus)
    try:
        if args.command == "check":
            return await run_check(args.project, args.contact)
        if args.command == "eligible":
            return await run_eligible(args.limit)
        return await run_remove_terminal(args.terminal_id)
    except CrmError as exc:
        return fail(exc.message, {"code": exc.code, **exc.details})
    except ValidationError as exc:
        return fail("Invalid input", {"code": "validation_error", "errors": exc.errors()})
    finally:
        await bus.drain(timeout=30)
        await dispose_engine()


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Outbound-calling CRM core")
    sub = parser.add_subparsers(dest="command")

    check = sub.add_parser("check", help="Check call eligibility for a project (and contact)")
    check.add_argument("--project", required=True, help="Project external id")
    check.add_argument("--contact", default=None, help="Contact internal UUID or external id (optional)")

    eligible = sub.add_parser("eligible", help="List callable project-contact pairs")
    eligible.add_argument("--limit", type=int, default=None, help="Max pairs to return (default from ELIGIBLE_CALLS_DEFAULT_LIMIT)")

    remove = sub.add_parser("remove-terminal", help="Soft-remove a terminal state")
    remove.add_argument("terminal_id", help="Terminal session internal UUID")

    return parser


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    parser = _build_arg_parser()
    args = parser.parse_args()

    if args.command not in ("check", "eligible", "remove-terminal"):
        parser.print_help()
        sys.exit(1)

    envelope = asyncio.run(_run(args))
    print(json.dumps(envelope, indent=2, default=str))
    sys.exit(0 if envelope["success"] else 1)
