"""CloudWatch custom metrics emitter with background batching.

Tracks the calls the support agent makes outward (Anthropic, OpenAI
embeddings), every tool dispatch, and a couple of business counters
(sentiment labels, rate-limit denials).

Design
------
* Data points are collected in a thread-safe in-memory buffer.
* A daemon thread flushes the buffer to CloudWatch every
  ``FLUSH_INTERVAL_SECONDS``.
* Unless ``METRICS_ENABLED=true``, data points are only logged at DEBUG
  level and dropped on flush.

Usage
-----
>>> from support_agent.services.metrics import metrics
>>> metrics.record_success("anthropic", "llm_stream", latency_ms=812.0)
>>> metrics.record_failure("tool", "create_ticket", error_type="invalid_input")
>>> metrics.record_event("Conversation/Sentiment", Label="frustrated")
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

NAMESPACE = "TechCorpSupport"
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
        """Record a successful call to *service* (``anthropic``, ``openai``, ``tool``…)."""
        now = datetime.now(UTC)
        self._append(self._point("Calls/Count", 1, "Count", now, Service=service, Status="success"))
        self._append(
            self._point(
                "Calls/Latency", latency_ms, "Milliseconds", now,
                Service=service, Operation=operation,
            )
        )
        logger.debug("Metric: %s %s success latency=%.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed call.  Latency is only published when known."""
        now = datetime.now(UTC)
        self._append(self._point("Calls/Count", 1, "Count", now, Service=service, Status="failure"))
        self._append(
            self._point(
                "Calls/ErrorCount", 1, "Count", now,
                Service=service, Operation=operation, ErrorType=error_type,
            )
        )
        if latency_ms > 0:
            self._append(
                self._point(
                    "Calls/Latency", latency_ms, "Milliseconds", now,
                    Service=service, Operation=operation,
                )
            )
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    def record_event(self, metric_name: str, value: float = 1, **dimensions: str) -> None:
        """Record a plain counter such as a sentiment label or a rate-limit denial."""
        self._append(self._point(metric_name, value, "Count", datetime.now(UTC), **dimensions))
        logger.debug("Metric: %s=%s %s", metric_name, value, dimensions)

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

    @staticmethod
    def _point(
        name: str, value: float, unit: str, timestamp: datetime, **dimensions: str,
    ) -> dict[str, Any]:
        return {
            "MetricName": name,
            "Dimensions": _dims(**dimensions),
            "Timestamp": timestamp,
            "Value": value,
            "Unit": unit,
        }

    def _append(self, metric_data: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.append(metric_data)

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


metrics = MetricsClient()
