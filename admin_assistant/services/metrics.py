"""CloudWatch custom metrics emitter with background batching.

Two families of metrics are published:

* ``ExternalAPI/*`` — count, latency and errors for every call to an
  external service (``anthropic`` for the model, ``backoffice`` for the
  salon REST API).
* ``Tool/Outcome`` — one count per executed tool, dimensioned by tool
  name and outcome status (``created``, ``needs_info``, ``error``…), so
  a spike of ``needs_info`` on one tool is visible without reading logs.

Data points are buffered in memory and pushed by a daemon thread every
``FLUSH_INTERVAL_SECONDS``.  Unless ``METRICS_ENABLED=true`` nothing
leaves the process; points are only logged at DEBUG level.

>>> from admin_assistant.services.metrics import metrics
>>> metrics.record_success("backoffice", "GET /staff", latency_ms=42.0)
>>> metrics.record_tool_outcome("add_shop_holiday", "added")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "AdminAssistant"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call


def _dims(**values: str) -> list[dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in values.items()]


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Record a successful external call."""
        now = datetime.now(UTC)
        self._point(
            "ExternalAPI/RequestCount", _dims(Service=service, Status="success"), 1, "Count", now,
        )
        self._point(
            "ExternalAPI/Latency",
            _dims(Service=service, Operation=operation),
            latency_ms,
            "Milliseconds",
            now,
        )
        logger.debug("Metric: %s %s success latency=%.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed external call; latency is only kept when measured."""
        now = datetime.now(UTC)
        self._point(
            "ExternalAPI/RequestCount", _dims(Service=service, Status="failure"), 1, "Count", now,
        )
        self._point(
            "ExternalAPI/ErrorCount", _dims(Service=service, ErrorType=error_type), 1, "Count", now,
        )
        if latency_ms > 0:
            self._point(
                "ExternalAPI/Latency",
                _dims(Service=service, Operation=operation),
                latency_ms,
                "Milliseconds",
                now,
            )
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    def record_tool_outcome(self, tool: str, status: str) -> None:
        """Count one tool execution by outcome status."""
        self._point(
            "Tool/Outcome", _dims(Tool=tool, Status=status), 1, "Count", datetime.now(UTC),
        )
        logger.debug("Metric: tool %s -> %s", tool, status)

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
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

    def _point(
        self,
        name: str,
        dimensions: list[dict[str, str]],
        value: float,
        unit: str,
        timestamp: datetime,
    ) -> None:
        entry = {
            "MetricName": name,
            "Dimensions": dimensions,
            "Timestamp": timestamp,
            "Value": value,
            "Unit": unit,
        }
        with self._lock:
            self._buffer.append(entry)

    def _start_flush_thread(self) -> None:
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
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
