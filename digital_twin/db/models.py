"""SQLAlchemy ORM models for the Digital Twin store.

Uses SQLAlchemy 2.0 style with ``Mapped`` and ``mapped_column``.  All
timestamps are naive UTC; booking hours are interpreted in the configured
booking timezone by the availability checker, never here.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now() -> datetime:
    """Current UTC time without tzinfo (the storage convention)."""
    return datetime.now(UTC).replace(tzinfo=None)


class VisitorRole(str, Enum):
    recruiter = "recruiter"
    hiring_manager = "hiring_manager"
    collaborator = "collaborator"
    interested_party = "interested_party"
    other = "other"


class MessageRole(str, Enum):
    user = "user"
    assistant = "assistant"


class BookingStatus(str, Enum):
    """Booking lifecycle.  Transitions are driven externally; the system
    only ever writes ``pending`` on its own."""

    pending = "pending"
    requested = "requested"
    confirmed = "confirmed"
    cancelled = "cancelled"


class MeetingType(str, Enum):
    quick_call = "quick_call"
    technical_discussion = "technical_discussion"
    collaboration_exploration = "collaboration_exploration"
    general_inquiry = "general_inquiry"


class ToolCallStatus(str, Enum):
    success = "success"
    error = "error"
    pending = "pending"


class Base(DeclarativeBase):
    pass


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(255), unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)


class Visitor(Base):
    __tablename__ = "visitors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    # Always stored case-folded; the unique index is the upsert conflict target.
    email: Mapped[str] = mapped_column(String(255), unique=True)
    name: Mapped[str] = mapped_column(String(255))
    role: Mapped[Optional[str]] = mapped_column(String(50))
    context: Mapped[Optional[str]] = mapped_column(Text)
    linkedin: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)


class Conversation(Base):
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    project_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), index=True,
    )
    visitor_id: Mapped[Optional[str]] = mapped_column(ForeignKey("visitors.id"), index=True)
    visitor_session_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    title: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="ck_messages_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[str] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), index=True,
    )
    role: Mapped[str] = mapped_column(String(16))
    content: Mapped[str] = mapped_column(Text)
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    # One booking row per conversation: the upsert conflict target.
    conversation_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), unique=True,
    )
    visitor_id: Mapped[Optional[str]] = mapped_column(ForeignKey("visitors.id"), index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    requested_datetime: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)
    meeting_type: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        String(50), default=BookingStatus.pending.value, index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)


class ToolCall(Base):
    """Audit trail of tool executions.  Write-only from the app's view."""

    __tablename__ = "tool_calls"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    conversation_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), index=True,
    )
    tool_name: Mapped[str] = mapped_column(String(100))
    input: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    output: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(50), default=ToolCallStatus.pending.value)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
