"""Booking manager.

A conversation owns at most one booking row.  Both entry points, the
agent's ``createBooking`` tool and the ``POST /bookings`` form, upsert
that row: the first call inserts it, later calls overwrite it with the
latest data.  Nothing here confirms a booking; status changes beyond
``pending`` come from outside.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from digital_twin.config import BOOKING_TIMEZONE, CALENDAR_URL, PERSONA_NAME
from digital_twin.db.models import BookingStatus, MeetingType
from digital_twin.db.store import Database, get_database
from digital_twin.services.errors import NotFoundError
from digital_twin.services.validation import (
    optional_text,
    parse_datetime,
    require_choice,
    require_email,
    require_text,
    to_local,
)

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 300


@dataclass(frozen=True)
class BookingReceipt:
    booking_id: str
    message: str


def _format_local(value: datetime, tz: ZoneInfo) -> str:
    """Naive-UTC → 'Tue 10 Jun 2025 at 09:00 (UTC)'."""
    return to_local(value, tz).strftime("%a %d %b %Y at %H:%M") + f" ({tz.key})"


def create_booking(
    visitor_id: str,
    requested_datetime: str,
    meeting_type: str,
    notes: str | None = None,
    *,
    conversation_id: str,
    db: Database | None = None,
    timezone: str | None = None,
) -> BookingReceipt:
    """Record a meeting request from the agent for an identified visitor.

    Raises ``InvalidInputError`` for missing or malformed fields and
    ``NotFoundError`` for an unknown visitor or conversation.  Validation
    happens before any write.
    """
    db = db or get_database()
    tz = ZoneInfo(timezone or BOOKING_TIMEZONE)
    visitor_id = require_text(visitor_id, "visitor id")
    meeting_type = require_choice(meeting_type, MeetingType, "meeting type")
    when = parse_datetime(requested_datetime, tz)
    notes = optional_text(notes, max_length=MAX_NOTES_LENGTH)
    conversation_id = require_text(conversation_id, "conversation id")

    visitor = db.get_visitor(visitor_id)
    if visitor is None:
        raise NotFoundError(
            "I couldn't find your contact details. Please share your name and email first."
        )
    if not db.conversation_exists(conversation_id):
        raise NotFoundError(f"Conversation {conversation_id} was not found.")

    booking_id = db.upsert_booking(
        conversation_id,
        visitor_id=visitor.id,
        email=visitor.email,
        requested_datetime=when,
        meeting_type=meeting_type,
        notes=notes,
        status=BookingStatus.pending.value,
    )
    logger.info(
        "Booking %s recorded: visitor=%s type=%s at %s UTC",
        booking_id, visitor.id, meeting_type, when.isoformat(),
    )

    message = (
        f"Your {meeting_type.replace('_', ' ')} request for {_format_local(when, tz)} "
        f"is recorded. {PERSONA_NAME} will confirm by email at {visitor.email}."
    )
    if CALENDAR_URL:
        message += f" You can also pick a time directly at {CALENDAR_URL}."
    return BookingReceipt(booking_id=booking_id, message=message)


def upsert_booking(
    conversation_id: str,
    email: str,
    status: str | None = None,
    preferred_time: str | None = None,
    notes: str | None = None,
    *,
    db: Database | None = None,
    timezone: str | None = None,
) -> str:
    """Form path: insert or update the conversation's booking, return its id.

    ``status`` defaults to ``pending``.  Every call overwrites the email,
    status, preferred time and notes with the values given.
    """
    db = db or get_database()
    tz = ZoneInfo(timezone or BOOKING_TIMEZONE)
    conversation_id = require_text(conversation_id, "conversation id")
    email = require_email(email)
    status = require_choice(status or BookingStatus.pending.value, BookingStatus, "status")
    when = parse_datetime(preferred_time, tz) if preferred_time else None
    notes = optional_text(notes, max_length=MAX_NOTES_LENGTH)

    if not db.conversation_exists(conversation_id):
        raise NotFoundError(f"Conversation {conversation_id} was not found.")

    booking_id = db.upsert_booking(
        conversation_id,
        email=email,
        status=status,
        requested_datetime=when,
        notes=notes,
    )
    logger.info("Booking %s saved from form: status=%s", booking_id, status)
    return booking_id
