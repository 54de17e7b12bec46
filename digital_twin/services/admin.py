"""Read-only statistics for the admin dashboard.

If the store cannot be reached the report degrades to zero counts and
empty lists (with an ``error`` note) instead of failing the page.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from digital_twin.config import ADMIN_ACTIVITY_WINDOW_DAYS, ADMIN_RECENT_LIMIT
from digital_twin.db.models import utc_now
from digital_twin.db.store import Database, StoreError, get_database

logger = logging.getLogger(__name__)


def _format_date(value: datetime | None) -> str:
    return value.strftime("%d %b %Y") if value else ""


def _format_datetime(value: datetime | None) -> str:
    return value.strftime("%d %b %Y, %H:%M UTC") if value else "Not specified"


def empty_stats(error: str | None = None) -> dict[str, Any]:
    report: dict[str, Any] = {
        "stats": {
            "total_visitors": 0,
            "total_conversations": 0,
            "total_bookings": 0,
            "pending_bookings": 0,
            "total_messages": 0,
            "conversations_this_week": 0,
        },
        "recent_visitors": [],
        "recent_bookings": [],
        "tool_calls": {"total": 0, "by_tool": {}, "success_rate": 0.0},
    }
    if error:
        report["error"] = error
    return report


def get_admin_stats(
    *,
    db: Database | None = None,
    now: datetime | None = None,
    limit: int = ADMIN_RECENT_LIMIT,
) -> dict[str, Any]:
    """Aggregate counts plus the most recent visitors and bookings."""
    db = db or get_database()
    since = (now or utc_now()) - timedelta(days=ADMIN_ACTIVITY_WINDOW_DAYS)
    try:
        snapshot = db.get_admin_snapshot(since=since, limit=limit)
        tool_stats = db.get_tool_call_stats()
    except StoreError:
        logger.exception("Failed to fetch admin data")
        return empty_stats(error="Failed to fetch admin data")

    return {
        "stats": {
            "total_visitors": snapshot.total_visitors,
            "total_conversations": snapshot.total_conversations,
            "total_bookings": snapshot.total_bookings,
            "pending_bookings": snapshot.pending_bookings,
            "total_messages": snapshot.total_messages,
            "conversations_this_week": snapshot.recent_conversations,
        },
        "recent_visitors": [
            {
                "id": v.id,
                "name": v.name,
                "email": v.email,
                "role": v.role,
                "created_at": _format_date(v.created_at),
            }
            for v in snapshot.recent_visitors
        ],
        "recent_bookings": [
            {
                "id": b.id,
                "visitor_name": visitor_name or b.email or "Unknown",
                "requested_datetime": _format_datetime(b.requested_datetime),
                "meeting_type": b.meeting_type,
                "status": b.status,
            }
            for b, visitor_name in snapshot.recent_bookings
        ],
        "tool_calls": {
            "total": tool_stats["total"],
            "by_tool": tool_stats["by_tool"],
            "success_rate": round(tool_stats["success_rate"], 1),
        },
    }
