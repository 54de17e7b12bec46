"""Meeting availability for a day and a coarse time-of-day slot.

Each slot expands to a fixed set of candidate hours (``TIME_SLOT_HOURS``
in the config).  A candidate hour is free when no non-cancelled booking
on that day starts in that hour.  Days and hours are evaluated in the
configured booking timezone.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from digital_twin.config import BOOKING_TIMEZONE, TIME_SLOT_HOURS
from digital_twin.db.store import Database, get_database
from digital_twin.services.errors import InvalidInputError
from digital_twin.services.validation import parse_date, to_local

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityResult:
    date: str
    time_slot: str
    suggested_times: list[str] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return bool(self.suggested_times)

    @property
    def message(self) -> str:
        if self.available:
            return f"Available times on {self.date}: {', '.join(self.suggested_times)}"
        return f"The {self.time_slot} slot on {self.date} is fully booked."

    def to_dict(self) -> dict[str, Any]:
        """Tool payload; ``suggestedTimes`` is omitted when nothing is free."""
        payload: dict[str, Any] = {
            "success": True,
            "available": self.available,
            "message": self.message,
        }
        if self.available:
            payload["suggestedTimes"] = list(self.suggested_times)
        return payload


def candidate_hours(
    time_slot: str,
    slot_hours: Mapping[str, Iterable[int]] | None = None,
) -> list[int]:
    """Return the slot's candidate hours in ascending order."""
    slots = TIME_SLOT_HOURS if slot_hours is None else slot_hours
    if time_slot not in slots:
        raise InvalidInputError(
            f"Unknown time slot {time_slot!r}. Expected one of: {', '.join(slots)}."
        )
    return sorted(slots[time_slot])


def free_hours(candidates: Iterable[int], booked: Iterable[int]) -> list[int]:
    """Candidate hours that are not booked, keeping candidate order."""
    taken = set(booked)
    return [hour for hour in candidates if hour not in taken]


def format_hour(hour: int) -> str:
    return f"{hour:02d}:00"


def _day_bounds_utc(day, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Naive-UTC ``[start, end)`` covering the calendar day *day* in *tz*."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start.astimezone(UTC).replace(tzinfo=None),
        end.astimezone(UTC).replace(tzinfo=None),
    )


def check_availability(
    date: str,
    time_slot: str,
    *,
    db: Database | None = None,
    timezone: str | None = None,
    slot_hours: Mapping[str, Iterable[int]] | None = None,
) -> AvailabilityResult:
    """Work out which of the slot's hours on *date* are still free.

    Raises ``InvalidInputError`` for a malformed date or an unknown slot.
    Issues a single read against the booking table.
    """
    day = parse_date(date)
    candidates = candidate_hours(time_slot, slot_hours)
    tz = ZoneInfo(timezone or BOOKING_TIMEZONE)
    db = db or get_database()

    start, end = _day_bounds_utc(day, tz)
    booked = {to_local(dt, tz).hour for dt in db.get_booked_datetimes(start, end)}
    suggested = [format_hour(h) for h in free_hours(candidates, booked)]

    logger.debug(
        "Availability %s/%s: booked=%s free=%s", date, time_slot, sorted(booked), suggested,
    )
    return AvailabilityResult(date=date, time_slot=time_slot, suggested_times=suggested)
