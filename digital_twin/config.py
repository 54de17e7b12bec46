"""Centralized configuration for the Digital Twin service.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/digital-twin/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/digital-twin/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /digital-twin/{name} (AWS)."
    )


def _load_slot_hours() -> dict[str, tuple[int, ...]]:
    """Time-of-day slot → candidate meeting hours.

    ``TIME_SLOT_HOURS`` may override the defaults with a JSON object such
    as ``{"morning": [9, 10], "afternoon": [13, 14]}``.
    """
    raw = os.getenv("TIME_SLOT_HOURS")
    if not raw:
        return dict(DEFAULT_TIME_SLOT_HOURS)
    try:
        parsed = json.loads(raw)
        slots = {
            str(slot): tuple(sorted(int(h) for h in hours))
            for slot, hours in parsed.items()
        }
    except (ValueError, TypeError, AttributeError) as exc:
        raise OSError(f"TIME_SLOT_HOURS is not a valid slot mapping: {exc}") from exc

    for slot, hours in slots.items():
        out_of_range = [h for h in hours if not 0 <= h <= 23]
        if out_of_range:
            raise OSError(
                f"TIME_SLOT_HOURS slot {slot!r} has hours outside 0-23: {out_of_range}"
            )
    return slots


def _load_timezone() -> str:
    """Return ``BOOKING_TIMEZONE`` once it is known to be a valid IANA name."""
    name = os.getenv("BOOKING_TIMEZONE") or "UTC"
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise OSError(f"BOOKING_TIMEZONE is not a known IANA timezone: {name!r}") from exc
    return name


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
VOICE_MODEL_NAME: str = os.getenv("VOICE_MODEL_NAME", "claude-haiku-4-5")
CHAT_MAX_TOKENS: int = int(os.getenv("CHAT_MAX_TOKENS", "1024"))
VOICE_MAX_TOKENS: int = int(os.getenv("VOICE_MAX_TOKENS", "300"))
LLM_TEMPERATURE: float = float(os.getenv("LLM_TEMPERATURE", "0.7"))

# ── Database ────────────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./digital_twin.db")
DEFAULT_PROJECT_NAME: str = os.getenv("DEFAULT_PROJECT_NAME", "Digital Twin")
DEFAULT_PROJECT_DESCRIPTION: str = "Primary Digital Twin instance"

# ── Persona ─────────────────────────────────────────────────────────
PERSONA_NAME: str = os.getenv("PERSONA_NAME", "Alex")
PERSONA_PATH: Path = Path(
    os.getenv("PERSONA_PATH", Path(__file__).resolve().parent.parent / "PERSONA.md")
)
CALENDAR_URL: str = os.getenv("CALENDAR_URL", "")

# ── Bookings ────────────────────────────────────────────────────────
BOOKING_TIMEZONE: str = _load_timezone()
DEFAULT_TIME_SLOT_HOURS: dict[str, tuple[int, ...]] = {
    "morning": (9, 10, 11),
    "afternoon": (14, 15, 16),
    "evening": (17, 18, 19),
}
TIME_SLOT_HOURS: dict[str, tuple[int, ...]] = _load_slot_hours()

# ── Admin report ────────────────────────────────────────────────────
ADMIN_RECENT_LIMIT: int = int(os.getenv("ADMIN_RECENT_LIMIT", "10"))
ADMIN_ACTIVITY_WINDOW_DAYS: int = int(os.getenv("ADMIN_ACTIVITY_WINDOW_DAYS", "7"))

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
