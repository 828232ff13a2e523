"""HubSpot CRM sync tools: one-way push from the calling CRM core.

Calls the HubSpot REST API directly with a private-app access token
(HUBSPOT_ACCESS_TOKEN). Projects become deals keyed by the ``project_id``
deal property, contacts become contacts keyed by ``contact_id`` then
email, call sessions become notes on the deal and terminal states become
``terminal_state`` / ``terminal_reason`` properties.

Every sync function returns a dict and never raises; failures come back
under an ``error`` key. ``handle_event`` adapts them to the outbound event
bus and ``register`` subscribes it when a token is configured.
"""
import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from services.events import (
    ASSOCIATION_UPSERTED,
    CALL_SESSION_CREATED,
    CALL_SESSION_UPDATED,
    CONTACT_UPSERTED,
    PROJECT_UPSERTED,
    TERMINAL_SESSION_CREATED,
    TERMINAL_SESSION_REMOVED,
    EventBus,
    OutboundEvent,
)

logger = logging.getLogger(__name__)


HUBSPOT_BASE = "https://api.hubapi.com"
NOTE_TO_DEAL_ASSOCIATION = 214
TRANSCRIPT_EXCERPT = 500


def _headers() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {os.environ['HUBSPOT_ACCESS_TOKEN']}",
        "Content-Type": "application/json",
    }


def _ms(value: Optional[str]) -> Optional[str]:
    """ISO date/datetime string to HubSpot epoch milliseconds."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return str(int(parsed.timestamp() * 1000))


def _split_name(name: str) -> tuple[str, str]:
    parts = (name or "").strip().split(" ", 1)
    return parts[0], parts[1] if len(parts) > 1 else ""


def _search(object_type: str, prop: str, value: str) -> Optional[str]:
    """Return the id of the first HubSpot object whose ``prop`` equals ``value``."""
    resp = requests.post(
        f"{HUBSPOT_BASE}/crm/v3/objects/{object_type}/search",
        headers=_headers(),
        json={
            "filterGroups": [{"filters": [{"propertyName": prop, "operator": "EQ", "value": value}]}],
            "properties": ["id"],
            "limit": 1,
        },
        timeout=10,
    )
    resp.raise_for_status()
    results = resp.json().get("results", [])
    return results[0]["id"] if results else None


def _upsert_object(object_type: str, object_id: Optional[str], properties: Dict[str, Any]) -> Dict[str, Any]:
    if object_id:
        resp = requests.patch(
            f"{HUBSPOT_BASE}/crm/v3/objects/{object_type}/{object_id}",
            headers=_headers(),
            json={"properties": properties},
            timeout=10,
        )
        created = False
    else:
        resp = requests.post(
            f"{HUBSPOT_BASE}/crm/v3/objects/{object_type}",
            headers=_headers(),
            json={"properties": properties},
            timeout=10,
        )
        created = True
    resp.raise_for_status()
    return {"id": resp.json().get("id", object_id), "created": created}


def _find_contact(contact_external_id: Optional[str], email: Optional[str]) -> Optional[str]:
    hubspot_id = None
    if contact_external_id:
        hubspot_id = _search("contacts", "contact_id", contact_external_id)
    if not hubspot_id and email:
        hubspot_id = _search("contacts", "email", email)
    return hubspot_id


def hubspot_sync_project(project: Dict[str, Any]) -> Dict[str, Any]:
    """Create or update the deal for a project.

    Args:
        project: Project row as a dict (db.models.to_dict).

    Returns:
        Dict with 'deal_id' and 'created'.
    """
    try:
        properties: Dict[str, Any] = {
            "dealname": project["name"],
            "amount": str(project.get("priority_score") or 0),
            "project_id": project["external_id"],
            "call_suppressed": "true" if project.get("call_suppressed") else "false",
        }
        optional = {
            "category": project.get("category"),
            "closedate": _ms(project.get("awarded_date")),
            "last_contacted_at": _ms(project.get("last_contacted_at")),
            "next_call_eligible_at": _ms(project.get("next_call_eligible_at")),
            "address": ", ".join(
                p for p in (project.get(k) for k in ("address", "suburb", "state", "postcode")) if p
            ),
        }
        properties.update({k: v for k, v in optional.items() if v})

        deal_id = _search("deals", "project_id", project["external_id"])
        result = _upsert_object("deals", deal_id, properties)
        return {"deal_id": result["id"], "created": result["created"]}
    except Exception as exc:
        return {"deal_id": None, "error": str(exc)}


def hubspot_sync_contact(contact: Dict[str, Any]) -> Dict[str, Any]:
    """Create or update a HubSpot contact, matched by contact_id then email.

    Args:
        contact: Contact row as a dict (db.models.to_dict).

    Returns:
        Dict with 'hubspot_contact_id' and 'created'.
    """
    try:
        first, last = _split_name(contact["name"])
        properties = {
            "firstname": first,
            "lastname": last,
            "phone": contact.get("phone"),
            "email": contact.get("email"),
            "company": contact.get("company_name"),
            "global_role": contact.get("global_role"),
            "authority_level": contact.get("authority_level"),
            "preferred_channel": contact.get("preferred_channel"),
            "do_not_call": "true" if contact.get("do_not_call") else "false",
            "contact_id": contact.get("external_id"),
        }
        properties = {k: v for k, v in properties.items() if v is not None}

        hubspot_id = _find_contact(contact.get("external_id"), contact.get("email"))
        result = _upsert_object("contacts", hubspot_id, properties)
        return {"hubspot_contact_id": result["id"], "created": result["created"]}
    except Exception as exc:
        return {"hubspot_contact_id": None, "error": str(exc)}


def hubspot_associate_contact(
    project_external_id: str,
    contact_external_id: Optional[str] = None,
    email: Optional[str] = None,
) -> Dict[str, Any]:
    """Associate a contact with the deal for a project.

    Returns:
        Dict with 'associated' (bool) and, when skipped, a 'reason'.
    """
    try:
        deal_id = _search("deals", "project_id", project_external_id)
        if not deal_id:
            return {"associated": False, "reason": f"deal not found for project_id {project_external_id}"}
        hubspot_contact_id = _find_contact(contact_external_id, email)
        if not hubspot_contact_id:
            return {"associated": False, "reason": "contact not found in HubSpot"}
        resp = requests.put(
            f"{HUBSPOT_BASE}/crm/v4/objects/deals/{deal_id}/associations/default/contacts/{hubspot_contact_id}",
            headers=_headers(),
            timeout=10,
        )
        resp.raise_for_status()
        return {"associated": True, "deal_id": deal_id, "hubspot_contact_id": hubspot_contact_id}
    except Exception as exc:
        return {"associated": False, "error": str(exc)}


def hubspot_log_call(call: Dict[str, Any], project_external_id: str) -> Dict[str, Any]:
    """Attach a call outcome note to the project's deal.

    Returns:
        Dict with 'note_id' (None when the deal does not exist yet).
    """
    try:
        deal_id = _search("deals", "project_id", project_external_id)
        if not deal_id:
            return {"note_id": None, "reason": f"deal not found for project_id {project_external_id}"}

        lines = [
            f"Call Type: {call.get('call_type')}",
            f"Status: {call.get('call_status')}",
            f"Outcome: {call.get('outcome') or 'N/A'}",
            f"Sentiment: {call.get('sentiment') or 'N/A'}",
        ]
        if call.get("escalated"):
            lines.append(f"Escalated: {call.get('escalation_reason') or ''}")
        if call.get("transcript"):
            lines.append(f"Transcript: {call['transcript'][:TRANSCRIPT_EXCERPT]}")

        resp = requests.post(
            f"{HUBSPOT_BASE}/crm/v3/objects/notes",
            headers=_headers(),
            json={
                "properties": {
                    "hs_note_body": "\n".join(lines),
                    "hs_timestamp": _ms(call.get("started_at")),
                },
                "associations": [{
                    "to": {"id": deal_id},
                    "types": [{
                        "associationCategory": "HUBSPOT_DEFINED",
                        "associationTypeId": NOTE_TO_DEAL_ASSOCIATION,
                    }],
                }],
            },
            timeout=10,
        )
        resp.raise_for_status()
        return {"note_id": resp.json().get("id"), "deal_id": deal_id}
    except Exception as exc:
        return {"note_id": None, "error": str(exc)}


def hubspot_sync_terminal(terminal: Dict[str, Any], active: bool = True) -> Dict[str, Any]:
    """Mirror a terminal state onto the deal (project scope) or contact (contact scope).

    Global terminal states have no HubSpot counterpart and are skipped.
    """
    try:
        properties = {
            "terminal_state": "true" if active else "false",
            "terminal_reason": terminal.get("reason") if active else "",
        }
        scope = terminal.get("scope")
        if scope == "project" and terminal.get("project_external_id"):
            object_type = "deals"
            object_id = _search("deals", "project_id", terminal["project_external_id"])
        elif scope == "contact":
            object_type = "contacts"
            object_id = _find_contact(terminal.get("contact_external_id"), terminal.get("contact_email"))
        else:
            return {"updated": False, "reason": f"nothing to sync for scope {scope}"}

        if not object_id:
            return {"updated": False, "reason": f"{object_type[:-1]} not found in HubSpot"}
        _upsert_object(object_type, object_id, properties)
        return {"updated": True, "object_type": object_type, "object_id": object_id}
    except Exception as exc:
        return {"updated": False, "error": str(exc)}


async def handle_event(event: OutboundEvent) -> Optional[Dict[str, Any]]:
    """Route an outbound event to its sync call on a worker thread."""
    payload = event.payload
    if event.name == PROJECT_UPSERTED:
        result = await asyncio.to_thread(hubspot_sync_project, payload)
    elif event.name == CONTACT_UPSERTED:
        result = await asyncio.to_thread(hubspot_sync_contact, payload)
    elif event.name == ASSOCIATION_UPSERTED:
        result = await asyncio.to_thread(
            hubspot_associate_contact,
            payload["project_external_id"],
            payload.get("contact_external_id"),
            payload.get("contact_email"),
        )
    elif event.name in (CALL_SESSION_CREATED, CALL_SESSION_UPDATED):
        # One note per call, written once the call has ended
        if not payload.get("ended_at"):
            return None
        result = await asyncio.to_thread(hubspot_log_call, payload, payload["project_external_id"])
    elif event.name == TERMINAL_SESSION_CREATED:
        result = await asyncio.to_thread(hubspot_sync_terminal, payload, True)
    elif event.name == TERMINAL_SESSION_REMOVED:
        result = await asyncio.to_thread(hubspot_sync_terminal, payload, False)
    else:
        return None

    if "error" in result:
        logger.warning("HubSpot sync of %s %s failed: %s", event.name, event.entity_id, result["error"])
    else:
        logger.debug("HubSpot sync of %s %s: %s", event.name, event.entity_id, result)
    return result


def register(bus: EventBus) -> bool:
    """Subscribe the HubSpot sink when HUBSPOT_ACCESS_TOKEN is set."""
    if not os.environ.get("HUBSPOT_ACCESS_TOKEN", "").strip():
        logger.info("HUBSPOT_ACCESS_TOKEN not set; HubSpot sync disabled")
        return False
    bus.subscribe(handle_event)
    logger.info("HubSpot sync enabled")
    return True
