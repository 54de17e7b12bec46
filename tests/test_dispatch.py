"""Tests for tool dispatch and the audit log."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from digital_twin.db.store import StoreError
from digital_twin.services.audit import AuditLog, get_audit_log
from digital_twin.tools.dispatch import GENERIC_FAILURE_MESSAGE, dispatch
from digital_twin.tools.schemas import TOOL_SPECS


class TestToolSpecs:
    def test_four_tools_with_camel_case_properties(self):
        specs = {spec["name"]: spec for spec in TOOL_SPECS}
        assert set(specs) == {
            "captureVisitor", "checkAvailability", "createBooking", "generateSummary",
        }
        booking = specs["createBooking"]["input_schema"]
        assert set(booking["required"]) == {"visitorId", "requestedDatetime", "meetingType"}
        assert "notes" in booking["properties"]

    def test_time_slot_enum_comes_from_the_slot_table(self):
        spec = next(s for s in TOOL_SPECS if s["name"] == "checkAvailability")
        slot = spec["input_schema"]["properties"]["timeSlot"]
        assert slot["enum"] == ["morning", "afternoon", "evening"]

    def test_every_tool_has_a_description(self):
        assert all(spec["description"] for spec in TOOL_SPECS)


class TestDispatchSuccess:
    def test_capture_visitor(self, db, conversation_id):
        result = dispatch(
            "captureVisitor",
            {"name": "Jane", "email": "jane@example.com", "role": "recruiter"},
            conversation_id, db=db,
        )
        assert result["success"] is True
        assert result["message"] == (
            "Great! I've captured your information, Jane. Looking forward to connecting!"
        )
        assert db.get_conversation(conversation_id).visitor_id == result["visitorId"]

    def test_check_availability(self, db, conversation_id, book_slot):
        book_slot(datetime(2025, 6, 10, 9, 0))
        result = dispatch(
            "checkAvailability", {"date": "2025-06-10", "timeSlot": "morning"},
            conversation_id, db=db,
        )
        assert result == {
            "success": True,
            "available": True,
            "message": "Available times on 2025-06-10: 10:00, 11:00",
            "suggestedTimes": ["10:00", "11:00"],
        }

    def test_create_booking_after_capture(self, db, conversation_id):
        visitor = dispatch(
            "captureVisitor",
            {"name": "Jane", "email": "jane@example.com", "role": "collaborator"},
            conversation_id, db=db,
        )
        result = dispatch(
            "createBooking",
            {
                "visitorId": visitor["visitorId"],
                "requestedDatetime": "2025-06-10T10:00:00",
                "meetingType": "collaboration_exploration",
            },
            conversation_id, db=db,
        )
        assert result["success"] is True
        assert result["bookingId"] == db.get_conversation_bookings(conversation_id)[0].id

    def test_generate_summary_defaults_to_current_conversation(self, db, conversation_id):
        db.save_message(conversation_id, "user", "What do you work on?")
        db.save_message(conversation_id, "assistant", "Backend systems.")
        result = dispatch("generateSummary", {}, conversation_id, db=db)
        assert result["success"] is True
        assert result["message"] == "Summary generated"
        assert "## Conversation Summary" in result["summary"]


class TestDispatchFailures:
    def test_bad_date_is_reported_and_audited(self, db, conversation_id):
        result = dispatch(
            "checkAvailability", {"date": "13/01/2025", "timeSlot": "morning"},
            conversation_id, db=db,
        )
        assert result["success"] is False
        assert result["available"] is False
        assert "YYYY-MM-DD" in result["message"]

        history = db.get_tool_call_history(conversation_id)
        assert len(history) == 1
        assert history[0].tool_name == "checkAvailability"
        assert history[0].status == "error"
        assert history[0].input == {"date": "13/01/2025", "timeSlot": "morning"}

    def test_schema_violation_names_the_field(self, db, conversation_id):
        result = dispatch(
            "captureVisitor", {"name": "Jane", "email": "jane@example.com", "role": "ceo"},
            conversation_id, db=db,
        )
        assert result["success"] is False
        assert "role" in result["message"]

    def test_missing_required_field(self, db, conversation_id):
        result = dispatch("checkAvailability", {"date": "2025-06-10"}, conversation_id, db=db)
        assert result["success"] is False
        assert result["available"] is False
        assert "timeSlot" in result["message"]

    def test_invalid_email_is_specific(self, db, conversation_id):
        result = dispatch(
            "captureVisitor",
            {"name": "Jane", "email": "not-an-email", "role": "recruiter"},
            conversation_id, db=db,
        )
        assert result["success"] is False
        assert "does not look like a valid email" in result["message"]

    def test_unknown_visitor_is_specific(self, db, conversation_id):
        result = dispatch(
            "createBooking",
            {
                "visitorId": "nobody",
                "requestedDatetime": "2025-06-10T10:00:00",
                "meetingType": "quick_call",
            },
            conversation_id, db=db,
        )
        assert result["success"] is False
        assert "contact details" in result["message"]

    def test_unknown_tool(self, db, conversation_id):
        result = dispatch("deleteEverything", {}, conversation_id, db=db)
        assert result["success"] is False
        assert "Unknown tool" in result["message"]
        assert db.get_tool_call_history(conversation_id)[0].status == "error"

    def test_store_error_is_generic_and_not_raised(self, db, conversation_id):
        with patch.object(db, "get_booked_datetimes", side_effect=StoreError("boom")):
            result = dispatch(
                "checkAvailability", {"date": "2025-06-10", "timeSlot": "morning"},
                conversation_id, db=db,
            )
        assert result["success"] is False
        assert result["available"] is False
        assert result["message"] == GENERIC_FAILURE_MESSAGE
        assert "boom" not in result["message"]

    def test_unexpected_exception_is_not_raised(self, db, conversation_id):
        with patch(
            "digital_twin.tools.dispatch.generate_summary", side_effect=KeyError("oops"),
        ):
            result = dispatch("generateSummary", {}, conversation_id, db=db)
        assert result["success"] is False
        assert result["message"] == GENERIC_FAILURE_MESSAGE


class TestAuditLog:
    def test_audit_write_failure_is_swallowed_and_counted(self, db, conversation_id):
        audit = AuditLog(db)
        with patch.object(db, "record_tool_call", side_effect=StoreError("down")):
            result = dispatch(
                "checkAvailability", {"date": "13/01/2025", "timeSlot": "morning"},
                conversation_id, db=db, audit=audit,
            )
        assert result["success"] is False
        assert result["available"] is False
        assert audit.failure_count == 1

    def test_failed_audit_write_is_reported_as_metric(self, db):
        audit = AuditLog(db)
        with patch.object(db, "record_tool_call", side_effect=RuntimeError("down")), \
                patch("digital_twin.services.audit.metrics") as mock_metrics:
            assert audit.record("c1", "captureVisitor", {}, {"success": True}) is False
        mock_metrics.record_audit_failure.assert_called_once_with("captureVisitor")

    def test_success_status_follows_the_output(self, db, conversation_id):
        audit = AuditLog(db)
        assert audit.record(conversation_id, "captureVisitor", {"a": 1}, {"success": True})
        assert audit.record(
            conversation_id, "captureVisitor", {}, {"success": False, "error": "bad"},
        )
        statuses = [(c.status, c.error_message) for c in db.get_tool_call_history(conversation_id)]
        assert statuses == [("success", None), ("error", "bad")]

    def test_every_dispatch_is_audited_once(self, db, conversation_id):
        audit = MagicMock(spec=AuditLog)
        dispatch("checkAvailability", {"date": "2025-06-10", "timeSlot": "evening"},
                 conversation_id, db=db, audit=audit)
        dispatch("checkAvailability", {"date": "bad", "timeSlot": "evening"},
                 conversation_id, db=db, audit=audit)
        assert audit.record.call_count == 2
        outputs = [call.args[3]["success"] for call in audit.record.call_args_list]
        assert outputs == [True, False]

    def test_default_log_is_shared_per_database(self, db, conversation_id):
        with patch.object(db, "record_tool_call", side_effect=StoreError("down")):
            dispatch("checkAvailability", {"date": "2025-06-10", "timeSlot": "morning"},
                     conversation_id, db=db)
            dispatch("checkAvailability", {"date": "2025-06-11", "timeSlot": "morning"},
                     conversation_id, db=db)
        assert get_audit_log(db) is get_audit_log(db)
        assert get_audit_log(db).failure_count == 2


@pytest.mark.parametrize("tool_name", ["captureVisitor", "createBooking", "generateSummary"])
def test_failures_always_carry_success_and_message(db, tool_name):
    result = dispatch(tool_name, {}, None, db=db)
    assert result["success"] is False
    assert isinstance(result["message"], str) and result["message"]
