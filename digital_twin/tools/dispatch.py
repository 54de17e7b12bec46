"""Routes LLM tool calls to the services and records every outcome.

``dispatch`` never raises.  Whatever happens inside a tool (bad
arguments, an unknown visitor, a database outage) comes back to the LLM
as ``{"success": False, "message": ...}`` so that the assistant can still
answer, and each call, success or failure, is written to the audit log
before the result is returned.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from digital_twin.db.models import ToolCallStatus
from digital_twin.db.store import Database, get_database
from digital_twin.services.audit import AuditLog, get_audit_log
from digital_twin.services.availability import check_availability
from digital_twin.services.bookings import create_booking
from digital_twin.services.conversations import generate_summary
from digital_twin.services.errors import InvalidInputError, NotFoundError
from digital_twin.services.metrics import metrics
from digital_twin.services.visitors import capture_visitor
from digital_twin.tools.schemas import (
    TOOL_INPUTS,
    CaptureVisitorInput,
    CheckAvailabilityInput,
    CreateBookingInput,
    GenerateSummaryInput,
    ToolInput,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = (
    "Something went wrong on my side while doing that. Please try again in a moment."
)

ToolHandler = Callable[[Any, str | None, Database], dict[str, Any]]


# ── Handlers ─────────────────────────────────────────────────────────


def _capture_visitor(
    args: CaptureVisitorInput, conversation_id: str | None, db: Database,
) -> dict[str, Any]:
    visitor_id = capture_visitor(
        args.email, args.name, args.role, args.context,
        conversation_id=conversation_id, db=db,
    )
    return {
        "success": True,
        "visitorId": visitor_id,
        "message": (
            f"Great! I've captured your information, {args.name.strip()}. "
            "Looking forward to connecting!"
        ),
    }


def _check_availability(
    args: CheckAvailabilityInput, conversation_id: str | None, db: Database,
) -> dict[str, Any]:
    return check_availability(args.date, args.time_slot, db=db).to_dict()


def _create_booking(
    args: CreateBookingInput, conversation_id: str | None, db: Database,
) -> dict[str, Any]:
    receipt = create_booking(
        args.visitor_id, args.requested_datetime, args.meeting_type, args.notes,
        conversation_id=conversation_id, db=db,
    )
    return {"success": True, "bookingId": receipt.booking_id, "message": receipt.message}


def _generate_summary(
    args: GenerateSummaryInput, conversation_id: str | None, db: Database,
) -> dict[str, Any]:
    target = args.conversation_id or conversation_id
    if not target:
        raise InvalidInputError("There is no conversation to summarize yet.")
    summary = generate_summary(target, args.focus_area, db=db)
    return {"success": True, "summary": summary, "message": "Summary generated"}


_HANDLERS: dict[str, ToolHandler] = {
    "captureVisitor": _capture_visitor,
    "checkAvailability": _check_availability,
    "createBooking": _create_booking,
    "generateSummary": _generate_summary,
}

# Tool-specific fields a failed result must still carry.
_FAILURE_DEFAULTS: dict[str, dict[str, Any]] = {
    "checkAvailability": {"available": False},
}


# ── Dispatch ─────────────────────────────────────────────────────────


def _describe(exc: ValidationError) -> str:
    """Turn pydantic errors into one sentence the LLM can relay."""
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "input"
        problems.append(f"{field}: {error['msg']}")
    return "Invalid tool input. " + "; ".join(problems)


def _failure(tool_name: str, message: str, error: str) -> dict[str, Any]:
    return {
        "success": False,
        **_FAILURE_DEFAULTS.get(tool_name, {}),
        "message": message,
        "error": error,
    }


def parse_tool_input(tool_name: str, tool_input: dict[str, Any]) -> ToolInput:
    """Validate raw LLM arguments against the tool's input model."""
    model = TOOL_INPUTS.get(tool_name)
    if model is None:
        raise InvalidInputError(f"Unknown tool: {tool_name}")
    return model.model_validate(tool_input)


def dispatch(
    tool_name: str,
    tool_input: dict[str, Any] | None,
    conversation_id: str | None,
    *,
    db: Database | None = None,
    audit: AuditLog | None = None,
) -> dict[str, Any]:
    """Execute one tool call and return its result payload.

    The payload always has ``success`` and ``message``.  Validation and
    not-found problems keep their specific message; anything else is
    logged with its traceback and reported with a generic one.
    """
    db = db or get_database()
    audit = audit or get_audit_log(db)
    tool_input = dict(tool_input or {})

    try:
        args = parse_tool_input(tool_name, tool_input)
        result = _HANDLERS[tool_name](args, conversation_id, db)
    except ValidationError as exc:
        message = _describe(exc)
        logger.info("Tool %s rejected its input: %s", tool_name, message)
        result = _failure(tool_name, message, error=message)
    except (InvalidInputError, NotFoundError) as exc:
        logger.info("Tool %s failed: %s", tool_name, exc)
        result = _failure(tool_name, str(exc), error=str(exc))
    except Exception as exc:
        logger.exception("Tool %s crashed (conversation=%s)", tool_name, conversation_id)
        result = _failure(tool_name, GENERIC_FAILURE_MESSAGE, error=type(exc).__name__)

    status = ToolCallStatus.success.value if result.get("success") else ToolCallStatus.error.value
    metrics.record_tool_outcome(tool_name, status)
    audit.record(conversation_id, tool_name, tool_input, result)
    return result
