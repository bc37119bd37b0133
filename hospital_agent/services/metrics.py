"""CloudWatch custom metrics for the booking agent.

Every call to an external dependency (the Anthropic model, the persistence
sink) is timed and counted.  Data points are buffered in memory and pushed
to CloudWatch in batches by a daemon thread when ``METRICS_ENABLED=true``;
otherwise they are only logged at DEBUG level.

Usage
-----
>>> from hospital_agent.services.metrics import metrics
>>> with metrics.timed("anthropic", "chat_turn"):
...     llm.invoke(messages)
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "HospitalAgent"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch limit per PutMetricData call


class MetricsClient:
    """Buffered CloudWatch publisher for dependency call metrics."""

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

    # ── Recording ────────────────────────────────────────────────────

    def record_call(
        self,
        service: str,
        operation: str,
        *,
        latency_ms: float,
        error_type: str | None = None,
    ) -> None:
        """Record one call to *service*; ``error_type`` marks it as failed."""
        now = datetime.now(UTC)
        status = "failure" if error_type else "success"
        dims = [
            {"Name": "Service", "Value": service},
            {"Name": "Operation", "Value": operation},
        ]
        points = [
            _point("Dependency/Calls", dims + [{"Name": "Status", "Value": status}], now, 1, "Count"),
            _point("Dependency/Latency", dims, now, latency_ms, "Milliseconds"),
        ]
        if error_type:
            points.append(
                _point(
                    "Dependency/Errors",
                    dims + [{"Name": "ErrorType", "Value": error_type}],
                    now, 1, "Count",
                )
            )
        with self._lock:
            self._buffer.extend(points)
        logger.debug(
            "Metric: %s %s %s latency=%.1fms%s",
            service, operation, status, latency_ms,
            f" error={error_type}" if error_type else "",
        )

    @contextmanager
    def timed(self, service: str, operation: str) -> Iterator[None]:
        """Time the wrapped block; an escaping exception is recorded then re-raised."""
        t0 = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self.record_call(
                service, operation,
                latency_ms=(time.perf_counter() - t0) * 1000,
                error_type=type(exc).__name__,
            )
            raise
        self.record_call(
            service, operation, latency_ms=(time.perf_counter() - t0) * 1000,
        )

    # ── Publishing ───────────────────────────────────────────────────

    def flush(self) -> int:
        """Send buffered data points to CloudWatch.  Returns the count sent."""
        with self._lock:
            batch, self._buffer = self._buffer, []
        if not batch:
            return 0
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

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


def _point(
    name: str,
    dimensions: list[dict[str, str]],
    timestamp: datetime,
    value: float,
    unit: str,
) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": dimensions,
        "Timestamp": timestamp,
        "Value": value,
        "Unit": unit,
    }


# ── Module-level singleton ──────────────────────────────────────────
metrics = MetricsClient()
