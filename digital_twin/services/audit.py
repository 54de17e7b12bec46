"""Best-effort audit trail of tool executions.

A write failure here is logged, counted and dropped: the conversation
turn that triggered the tool must complete whether or not its audit row
could be stored.
"""

from __future__ import annotations

import logging
import threading
import weakref
from typing import Any

from digital_twin.db.models import ToolCallStatus
from digital_twin.db.store import Database
from digital_twin.services.metrics import metrics

logger = logging.getLogger(__name__)


class AuditLog:
    """Writes one ``tool_calls`` row per tool invocation attempt."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self._failures = 0
        self._lock = threading.Lock()

    @property
    def failure_count(self) -> int:
        """Number of audit writes dropped since this log was created."""
        return self._failures

    def record(
        self,
        conversation_id: str | None,
        tool_name: str,
        tool_input: dict[str, Any],
        output: dict[str, Any],
    ) -> bool:
        """Store the call; returns False (never raises) if the write failed."""
        status = (
            ToolCallStatus.success.value if output.get("success")
            else ToolCallStatus.error.value
        )
        try:
            self._db.record_tool_call(
                conversation_id,
                tool_name,
                tool_input,
                output,
                status,
                error_message=output.get("error"),
            )
        except Exception as exc:
            with self._lock:
                self._failures += 1
            metrics.record_audit_failure(tool_name)
            logger.warning(
                "Failed to log tool execution %s for %s: %s",
                tool_name, conversation_id, exc,
            )
            return False

        logger.info(
            "Tool executed: %s status=%s conversation=%s", tool_name, status, conversation_id,
        )
        return True


_logs: weakref.WeakKeyDictionary[Database, AuditLog] = weakref.WeakKeyDictionary()
_logs_lock = threading.Lock()


def get_audit_log(db: Database) -> AuditLog:
    """Return the shared audit log of *db*, so its failure count spans calls."""
    with _logs_lock:
        audit = _logs.get(db)
        if audit is None:
            audit = _logs[db] = AuditLog(db)
        return audit
