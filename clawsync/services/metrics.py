"""CloudWatch custom metrics emitter with background batching.

Publishes per-call metrics (count, latency, errors) for every upstream
the agent talks to (the LLM provider, GA4, Telegram) plus a counter for
requests refused at admission.

Design
------
* Data points are collected in a thread-safe in-memory buffer.
* A daemon thread flushes the buffer to CloudWatch every
  ``FLUSH_INTERVAL_SECONDS`` (default 60 s).
* When running locally (``METRICS_ENABLED != "true"``), metrics are
  logged at DEBUG level but **not** buffered or pushed to CloudWatch.

Usage
-----
>>> from clawsync.services.metrics import metrics
>>> with metrics.track("llm", "anthropic/claude-sonnet-4-20250514"):
...     llm.invoke(messages)
>>> metrics.record_rejection("session_rate_limit")
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

NAMESPACE = "ClawSync"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None  # lazy-init

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        """Create the boto3 CloudWatch client on first use."""
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_call(
        self,
        service: str,
        operation: str,
        *,
        latency_ms: float,
        error_type: str | None = None,
    ) -> None:
        """Record one upstream call; ``error_type`` marks it as failed."""
        now = datetime.now(UTC)
        status = "failure" if error_type else "success"
        service_dim = {"Name": "Service", "Value": service}

        self._datapoint("Upstream/Calls", [service_dim, {"Name": "Status", "Value": status}], 1, "Count", now)
        self._datapoint(
            "Upstream/Latency",
            [service_dim, {"Name": "Operation", "Value": operation}],
            latency_ms,
            "Milliseconds",
            now,
        )
        if error_type:
            self._datapoint(
                "Upstream/Errors",
                [service_dim, {"Name": "ErrorType", "Value": error_type}],
                1,
                "Count",
                now,
            )
        logger.debug(
            "Metric: %s %s %s latency=%.1fms", service, operation, status, latency_ms,
        )

    @contextmanager
    def track(self, service: str, operation: str) -> Iterator[None]:
        """Time the enclosed call and record it; exceptions are re-raised."""
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
        self.record_call(service, operation, latency_ms=(time.perf_counter() - t0) * 1000)

    def record_rejection(self, reason: str) -> None:
        """Count a request refused before generation."""
        self._datapoint(
            "Admission/Rejected",
            [{"Name": "Reason", "Value": reason}],
            1,
            "Count",
            datetime.now(UTC),
        )

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

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

    def _datapoint(
        self,
        name: str,
        dimensions: list[dict[str, str]],
        value: float,
        unit: str,
        timestamp: datetime,
    ) -> None:
        if not self._enabled:
            return
        with self._lock:
            self._buffer.append(
                {
                    "MetricName": name,
                    "Dimensions": dimensions,
                    "Timestamp": timestamp,
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
