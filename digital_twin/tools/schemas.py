"""Input schemas for the agent's tools.

Each tool's arguments are a pydantic model; the JSON schema handed to the
LLM is generated from the model with camelCase property names, which is
also the shape the LLM sends back.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from digital_twin.config import TIME_SLOT_HOURS
from digital_twin.services.bookings import MAX_NOTES_LENGTH
from digital_twin.services.visitors import MAX_CONTEXT_LENGTH


class ToolInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CaptureVisitorInput(ToolInput):
    name: str = Field(..., description="Visitor's full name")
    email: str = Field(..., description="Visitor's email address")
    role: Literal[
        "recruiter", "hiring_manager", "collaborator", "interested_party", "other"
    ] = Field(..., description="How the visitor relates to the persona")
    context: Optional[str] = Field(
        None,
        description=(
            "What they are interested in or why they are reaching out "
            f"(kept to {MAX_CONTEXT_LENGTH} characters)"
        ),
    )


class CheckAvailabilityInput(ToolInput):
    date: str = Field(..., description="Day to check, in YYYY-MM-DD format")
    time_slot: str = Field(
        ...,
        description="Coarse time of day",
        json_schema_extra={"enum": list(TIME_SLOT_HOURS)},
    )


class CreateBookingInput(ToolInput):
    visitor_id: str = Field(..., description="Id returned by captureVisitor")
    requested_datetime: str = Field(
        ..., description="Meeting start in ISO 8601, e.g. 2025-06-10T10:00:00",
    )
    meeting_type: Literal[
        "quick_call", "technical_discussion", "collaboration_exploration", "general_inquiry"
    ] = Field(..., description="Kind of meeting requested")
    notes: Optional[str] = Field(
        None,
        description=f"Anything the persona should know (kept to {MAX_NOTES_LENGTH} characters)",
    )


class GenerateSummaryInput(ToolInput):
    conversation_id: Optional[str] = Field(
        None, description="Conversation to summarize; defaults to the current one",
    )
    focus_area: Optional[
        Literal[
            "skills_discussed", "projects_discussed", "availability", "next_steps",
            "full_summary",
        ]
    ] = Field(
        None, description="Part of the conversation to emphasise",
    )


TOOL_INPUTS: dict[str, type[ToolInput]] = {
    "captureVisitor": CaptureVisitorInput,
    "checkAvailability": CheckAvailabilityInput,
    "createBooking": CreateBookingInput,
    "generateSummary": GenerateSummaryInput,
}

TOOL_DESCRIPTIONS: dict[str, str] = {
    "captureVisitor": (
        "Save the visitor's contact details. Call this once the visitor has "
        "shared their name and email. Returns a visitorId used for bookings."
    ),
    "checkAvailability": (
        "Check which meeting times are free on a day for a time of day "
        "(morning, afternoon or evening). Always check before booking."
    ),
    "createBooking": (
        "Record a meeting request for a visitor captured earlier. The request "
        "is confirmed later by email."
    ),
    "generateSummary": (
        "Produce a short recap of this conversation: what was discussed, who "
        "the visitor is and any meeting requested."
    ),
}


def _tool_spec(name: str) -> dict[str, Any]:
    schema = TOOL_INPUTS[name].model_json_schema(by_alias=True)
    schema.pop("title", None)
    return {
        "name": name,
        "description": TOOL_DESCRIPTIONS[name],
        "input_schema": schema,
    }


# Anthropic tool definitions, passed to ``ChatAnthropic.bind_tools``.
TOOL_SPECS: list[dict[str, Any]] = [_tool_spec(name) for name in TOOL_INPUTS]
