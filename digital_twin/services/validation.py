"""Input checks shared by the visitor, booking and availability services.

Every helper either returns the normalised value or raises
``InvalidInputError`` with a message that can be shown to the visitor.
"""

from __future__ import annotations

import re
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

from digital_twin.services.errors import InvalidInputError

# RFC 5322-ish pattern, covers the vast majority of real-world emails
# without requiring an external dependency.  The domain needs at least one dot.
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_email(email: str | None) -> str | None:
    """Return an error message if *email* looks invalid, else ``None``."""
    if not email or not email.strip():
        return "No email address was provided. Please share an email address."
    email = email.strip()
    if not _EMAIL_RE.match(email):
        return (
            f'"{email}" does not look like a valid email address. '
            "Please double-check it and try again."
        )
    return None


def require_email(email: str | None) -> str:
    """Return *email* trimmed and case-folded, or raise ``InvalidInputError``."""
    error = validate_email(email)
    if error:
        raise InvalidInputError(error)
    return email.strip().lower()


def require_text(value: str | None, field: str, *, max_length: int | None = None) -> str:
    """Return *value* stripped; blank values raise ``InvalidInputError``."""
    if value is None or not str(value).strip():
        raise InvalidInputError(f"The {field} is required.")
    value = str(value).strip()
    if max_length is not None and len(value) > max_length:
        raise InvalidInputError(f"The {field} must be at most {max_length} characters.")
    return value


def optional_text(value: str | None, *, max_length: int) -> str | None:
    """Strip *value*, map blanks to ``None`` and truncate to *max_length*."""
    if value is None or not value.strip():
        return None
    return value.strip()[:max_length]


def require_choice(value: str | None, choices, field: str) -> str:
    """Return *value* if it is one of *choices* (strings or str-Enum members)."""
    allowed = [getattr(c, "value", c) for c in choices]
    if value not in allowed:
        raise InvalidInputError(
            f"Unknown {field} {value!r}. Expected one of: {', '.join(allowed)}."
        )
    return value


def parse_date(value: str | None) -> date:
    """Parse a strict ``YYYY-MM-DD`` calendar date."""
    if not value or not _DATE_RE.match(value):
        raise InvalidInputError(f"Invalid date {value!r}. Use the YYYY-MM-DD format.")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidInputError(f"{value!r} is not a real calendar date.") from exc


def parse_datetime(value: str | None, tz: ZoneInfo) -> datetime:
    """Parse an ISO 8601 datetime into naive UTC (the storage convention).

    Values with an offset (or a trailing ``Z``) are converted to UTC;
    naive values are taken as wall-clock time in *tz*.
    """
    if not value or not value.strip():
        raise InvalidInputError("A date and time is required.")
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidInputError(
            f"Invalid datetime {value!r}. Use ISO format, e.g. 2025-06-10T09:00:00."
        ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(UTC).replace(tzinfo=None)


def to_local(value: datetime, tz: ZoneInfo) -> datetime:
    """Convert a stored naive-UTC datetime to wall-clock time in *tz*."""
    return value.replace(tzinfo=UTC).astimezone(tz)
