"""Pydantic schemas for the FastAPI endpoints.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Requests ─────────────────────────────────────────────────────────


class ChatRequest(CamelModel):
    """Incoming chat message from the frontend."""

    message: str = Field(..., min_length=1, max_length=4000, description="The visitor's message")
    conversation_id: Optional[str] = Field(
        None, max_length=36, description="Omit to start a new conversation",
    )
    session_id: Optional[str] = Field(
        None, max_length=255, description="Browser session that owns the conversation",
    )


class VoiceRequest(CamelModel):
    """Transcribed speech from the voice client."""

    transcript: str = Field(..., min_length=1, max_length=2000)
    conversation_id: Optional[str] = Field(None, max_length=36)


class VisitorRequest(CamelModel):
    """Contact form submitted alongside a conversation."""

    conversation_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=1, max_length=255)
    linkedin: Optional[str] = Field(None, max_length=255)


class BookingRequest(CamelModel):
    """Meeting request submitted from the scheduling form."""

    conversation_id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1, max_length=255)
    status: Optional[str] = None
    preferred_time: Optional[str] = Field(None, description="ISO 8601 datetime")
    notes: Optional[str] = None


# ── Responses ────────────────────────────────────────────────────────


class HealthResponse(CamelModel):
    """Health check response."""

    status: str = "ok"
    service: str = "digital-twin"


class DatabaseHealthResponse(CamelModel):
    status: str
    database: str


class ChatResponse(CamelModel):
    """Response from the agent."""

    reply: str = Field(..., description="The twin's response message")
    conversation_id: str = Field(..., description="Conversation to send follow-ups to")


class VoiceResponse(CamelModel):
    response: str
    conversation_id: str
    source: str = "voice"


class ConversationInfo(CamelModel):
    id: str
    title: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    message_count: int


class MessageOut(CamelModel):
    id: int
    role: str
    content: str
    created_at: datetime


class ConversationDetailResponse(CamelModel):
    conversation: ConversationInfo
    messages: list[MessageOut]


class VisitorOut(CamelModel):
    id: str
    name: str
    email: str
    linkedin: Optional[str] = None


class VisitorResponse(CamelModel):
    success: bool = True
    visitor: VisitorOut


class BookingOut(CamelModel):
    id: str
    conversation_id: str
    email: Optional[str] = None
    status: str
    preferred_time: Optional[str] = None


class BookingResponse(CamelModel):
    success: bool = True
    booking: BookingOut


class AdminCounts(CamelModel):
    total_visitors: int = 0
    total_conversations: int = 0
    total_bookings: int = 0
    pending_bookings: int = 0
    total_messages: int = 0
    conversations_this_week: int = 0


class RecentVisitor(CamelModel):
    id: str
    name: str
    email: str
    role: Optional[str] = None
    created_at: str


class RecentBooking(CamelModel):
    id: str
    visitor_name: str
    requested_datetime: str
    meeting_type: Optional[str] = None
    status: str


class ToolCallStats(CamelModel):
    total: int = 0
    by_tool: dict[str, int] = Field(default_factory=dict)
    success_rate: float = 0.0


class AdminStatsResponse(CamelModel):
    stats: AdminCounts
    recent_visitors: list[RecentVisitor]
    recent_bookings: list[RecentBooking]
    tool_calls: ToolCallStats
    error: Optional[str] = None
