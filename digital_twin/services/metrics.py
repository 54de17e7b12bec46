"""CloudWatch custom metrics emitter with background batching.

Publishes per-call metrics for the dependencies the twin talks to (the
LLM provider and the database), per-tool dispatch outcomes, and a counter
of audit-log writes that failed.

Design
------
* Metrics are collected in a thread-safe, bounded in-memory buffer.
* A daemon thread flushes the buffer to CloudWatch every
  ``FLUSH_INTERVAL_SECONDS`` (default 60 s).
* When running locally (``METRICS_ENABLED != "true"``), metrics are
  logged at DEBUG level and dropped at flush, never pushed.
* Each ``put_metric_data`` call sends up to 1 000 metric data points
  (the CloudWatch API limit per request).

Usage
-----
>>> from digital_twin.services.metrics import metrics
>>> metrics.record_success("anthropic", "llm_invoke", latency_ms=812.0)
>>> metrics.record_tool_outcome("checkAvailability", "error")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections import deque
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "DigitalTwin"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call
MAX_BUFFERED_POINTS = 10_000


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: deque[dict[str, Any]] = deque(maxlen=MAX_BUFFERED_POINTS)
        self._lock = threading.Lock()
        self._cw_client = None  # lazy-init

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Record a successful dependency call."""
        self._point("Dependency/RequestCount", 1, "Count", Service=service, Status="success")
        self._point(
            "Dependency/Latency", latency_ms, "Milliseconds",
            Service=service, Operation=operation,
        )
        logger.debug(
            "Metric: %s %s success latency=%.1fms", service, operation, latency_ms,
        )

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed dependency call."""
        self._point("Dependency/RequestCount", 1, "Count", Service=service, Status="failure")
        self._point("Dependency/ErrorCount", 1, "Count", Service=service, ErrorType=error_type)
        if latency_ms > 0:
            self._point(
                "Dependency/Latency", latency_ms, "Milliseconds",
                Service=service, Operation=operation,
            )
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    def record_tool_outcome(self, tool_name: str, status: str) -> None:
        """Count one tool dispatch, tagged with its audit status."""
        self._point("Tools/Invocations", 1, "Count", Tool=tool_name, Status=status)

    def record_audit_failure(self, tool_name: str) -> None:
        """Count an audit-log write that was dropped."""
        self._point("Tools/AuditWriteFailures", 1, "Count", Tool=tool_name)
        logger.debug("Metric: audit write failed for %s", tool_name)

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = list(self._buffer)
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _point(self, name: str, value: float, unit: str, **dimensions: str) -> None:
        with self._lock:
            self._buffer.append(
                {
                    "MetricName": name,
                    "Dimensions": [{"Name": k, "Value": v} for k, v in dimensions.items()],
                    "Timestamp": datetime.now(UTC),
                    "Value": value,
                    "Unit": unit,
                }
            )

    def _start_flush_thread(self) -> None:
        """Start a daemon thread that flushes metrics periodically."""

        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info(
            "Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS,
        )


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
