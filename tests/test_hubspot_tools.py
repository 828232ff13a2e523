"""Unit tests for hubspot_tools — one-way CRM sync."""
import uuid
from unittest.mock import MagicMock, patch

import pytest

from services.events import EventBus, OutboundEvent


HUBSPOT_MODULE = "tools.hubspot_tools"


def _resp(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


PROJECT = {
    "id": str(uuid.uuid4()),
    "external_id": "proj-1",
    "name": "Harbour Apartments",
    "category": "Residential",
    "priority_score": 8,
    "call_suppressed": False,
    "awarded_date": "2026-01-15",
    "address": "1 Quay St",
    "suburb": "Sydney",
    "state": "NSW",
    "postcode": "2000",
    "last_contacted_at": None,
    "next_call_eligible_at": "2026-10-19T09:00:00+00:00",
}


class TestHubspotSyncProject:
    @patch(f"{HUBSPOT_MODULE}.requests.patch")
    @patch(f"{HUBSPOT_MODULE}.requests.post")
    @patch.dict("os.environ", {"HUBSPOT_ACCESS_TOKEN": "pat-test"})
    def test_updates_existing_deal(self, mock_post, mock_patch):
        mock_post.return_value = _resp({"results": [{"id": "deal-42"}]})
        mock_patch.return_value = _resp({"id": "deal-42"})

        from tools.hubspot_tools import hubspot_sync_project
        result = hubspot_sync_project(PROJECT)

        assert result == {"deal_id": "deal-42", "created": False}
        search_body = mock_post.call_args.kwargs["json"]
        assert search_body["filterGroups"][0]["filters"][0]["value"] == "proj-1"
        props = mock_patch.call_args.kwargs["json"]["properties"]
        assert props["project_id"] == "proj-1"
        assert props["amount"] == "8"
        assert props["call_suppressed"] == "false"
        assert props["address"] == "1 Quay St, Sydney, NSW, 2000"
        assert "last_contacted_at" not in props
        assert mock_patch.call_args.kwargs["headers"]["Authorization"] == "Bearer pat-test"

    @patch(f"{HUBSPOT_MODULE}.requests.post")
    @patch.dict("os.environ", {"HUBSPOT_ACCESS_TOKEN": "pat-test"})
    def test_creates_deal_when_missing(self, mock_post):
        mock_post.side_effect = [_resp({"results": []}), _resp({"id": "deal-7"})]

        from tools.hubspot_tools import hubspot_sync_project
        result = hubspot_sync_project(PROJECT)

        assert result == {"deal_id": "deal-7", "created": True}
        assert mock_post.call_args.args[0].endswith("/crm/v3/objects/deals")

    @patch(f"{HUBSPOT_MODULE}.requests.post")
    @patch.dict("os.environ", {"HUBSPOT_ACCESS_TOKEN": "pat-test"})
    def test_handles_error_gracefully(self, mock_post):
        mock_post.side_effect = RuntimeError("network error")

        from tools.hubspot_tools import hubspot_sync_project
        result = hubspot_sync_project(PROJECT)

        assert result["deal_id"] is None
        assert "error" in result


class TestHubspotSyncContact:
    @patch(f"{HUBSPOT_MODULE}.requests.post")
    @patch.dict("os.environ", {"HUBSPOT_ACCESS_TOKEN": "pat-test"})
    def test_falls_back_to_email_search_then_creates(self, mock_post):
        mock_post.side_effect = [
            _resp({"results": []}),
            _resp({"results": []}),
            _resp({"id": "hs-1"}),
        ]

        from tools.hubspot_tools import hubspot_sync_contact
        result = hubspot_sync_contact({
            "name": "Jane Q Builder",
            "external_id": "c-1",
            "email": "jane@example.com",
            "phone": "+1555",
            "do_not_call": True,
        })

        assert result == {"hubspot_contact_id": "hs-1", "created": True}
        searched = [c.kwargs["json"]["filterGroups"][0]["filters"][0]["propertyName"] for c in mock_post.call_args_list[:2]]
        assert searched == ["contact_id", "email"]
        props = mock_post.call_args.kwargs["json"]["properties"]
        assert props["firstname"] == "Jane"
        assert props["lastname"] == "Q Builder"
        assert props["do_not_call"] == "true"


class TestHubspotLogCall:
    @patch(f"{HUBSPOT_MODULE}.requests.post")
    @patch.dict("os.environ", {"HUBSPOT_ACCESS_TOKEN": "pat-test"})
    def test_note_is_attached_to_deal(self, mock_post):
        mock_post.side_effect = [_resp({"results": [{"id": "deal-42"}]}), _resp({"id": "note-1"})]

        from tools.hubspot_tools import hubspot_log_call
        result = hubspot_log_call(
            {
                "call_type": "ai",
                "call_status": "completed",
                "outcome": "quote requested",
                "escalated": True,
                "escalation_reason": "asked for a human",
                "transcript": "x" * 800,
                "started_at": "2026-10-18T01:00:00+00:00",
            },
            "proj-1",
        )

        assert result == {"note_id": "note-1", "deal_id": "deal-42"}
        body = mock_post.call_args.kwargs["json"]
        note = body["properties"]["hs_note_body"]
        assert "Outcome: quote requested" in note
        assert "Escalated: asked for a human" in note
        assert note.endswith("x" * 500)
        assert body["associations"][0]["to"]["id"] == "deal-42"

    @patch(f"{HUBSPOT_MODULE}.requests.post")
    @patch.dict("os.environ", {"HUBSPOT_ACCESS_TOKEN": "pat-test"})
    def test_skips_when_deal_missing(self, mock_post):
        mock_post.return_value = _resp({"results": []})

        from tools.hubspot_tools import hubspot_log_call
        result = hubspot_log_call({"call_type": "ai", "call_status": "completed"}, "proj-1")

        assert result["note_id"] is None
        assert "error" not in result
        assert mock_post.call_count == 1


class TestHubspotSyncTerminal:
    @patch(f"{HUBSPOT_MODULE}.requests.patch")
    @patch(f"{HUBSPOT_MODULE}.requests.post")
    @patch.dict("os.environ", {"HUBSPOT_ACCESS_TOKEN": "pat-test"})
    def test_project_terminal_sets_deal_properties(self, mock_post, mock_patch):
        mock_post.return_value = _resp({"results": [{"id": "deal-42"}]})
        mock_patch.return_value = _resp({"id": "deal-42"})

        from tools.hubspot_tools import hubspot_sync_terminal
        result = hubspot_sync_terminal(
            {"scope": "project", "project_external_id": "proj-1", "reason": "Closed"}
        )

        assert result["updated"] is True
        props = mock_patch.call_args.kwargs["json"]["properties"]
        assert props == {"terminal_state": "true", "terminal_reason": "Closed"}

    @patch(f"{HUBSPOT_MODULE}.requests.post")
    def test_global_terminal_is_skipped(self, mock_post):
        from tools.hubspot_tools import hubspot_sync_terminal
        result = hubspot_sync_terminal({"scope": "global", "reason": "Paused"})

        assert result["updated"] is False
        mock_post.assert_not_called()


class TestRegisterAndHandleEvent:
    @patch.dict("os.environ", {"HUBSPOT_ACCESS_TOKEN": ""})
    def test_register_is_skipped_without_token(self):
        from tools.hubspot_tools import register
        local = EventBus()
        assert register(local) is False

    @pytest.mark.asyncio
    @patch(f"{HUBSPOT_MODULE}.hubspot_sync_project")
    @patch.dict("os.environ", {"HUBSPOT_ACCESS_TOKEN": "pat-test"})
    async def test_project_event_is_synced_through_the_bus(self, mock_sync):
        mock_sync.return_value = {"error": "rate limited"}

        from tools.hubspot_tools import register
        local = EventBus()
        assert register(local) is True
        local.publish(OutboundEvent(name="project.upserted", entity_id=uuid.uuid4(), payload=PROJECT))
        await local.drain()

        mock_sync.assert_called_once_with(PROJECT)

    @pytest.mark.asyncio
    @patch(f"{HUBSPOT_MODULE}.hubspot_log_call")
    async def test_open_calls_are_not_logged(self, mock_log):
        from tools.hubspot_tools import handle_event
        event = OutboundEvent(
            name="call_session.created",
            entity_id=uuid.uuid4(),
            payload={"project_external_id": "proj-1", "ended_at": None},
        )
        assert await handle_event(event) is None
        mock_log.assert_not_called()
