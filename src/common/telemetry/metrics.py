"""
Upstream Client Metrics.

Pre-defined instruments for calls made to the request-management upstream:
- Call counts by operation and outcome
- Failure counts by operation
- Call latency distribution
- Current availability as a 0/1 gauge
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from enum import Enum

from opentelemetry.metrics import CallbackOptions, Meter, Observation

from src.common.telemetry.setup import get_meter

logger = logging.getLogger(__name__)


class CallStatus(str, Enum):
    """Outcome label for the calls counter."""

    START = "start"
    OK = "ok"
    ERROR = "error"
    EXCEPTION = "exception"
    SKIPPED = "skipped"
    NOT_FOUND = "notfound"


class UpstreamMetrics:
    """
    Metrics for one upstream dependency.

    Instruments (for the default prefix):
    - arrsync_overseerr_calls_total{operation,status}
    - arrsync_overseerr_failures_total{operation}
    - arrsync_overseerr_latency_seconds{operation}
    - arrsync_overseerr_available
    """

    def __init__(self, meter: Meter | None = None, prefix: str = "arrsync_overseerr"):
        """
        Initialize upstream metrics.

        Args:
            meter: Meter to create instruments on (defaults to the global one)
            prefix: Instrument name prefix
        """
        self._meter = meter or get_meter("arrsync")
        self._availability_probe: Callable[[], bool] | None = None

        self._calls_total = self._meter.create_counter(
            name=f"{prefix}_calls_total",
            description="Upstream calls by operation and outcome",
            unit="1",
        )

        self._failures_total = self._meter.create_counter(
            name=f"{prefix}_failures_total",
            description="Failed upstream attempts by operation",
            unit="1",
        )

        self._latency = self._meter.create_histogram(
            name=f"{prefix}_latency_seconds",
            description="Upstream operation latency",
            unit="s",
        )

        self._meter.create_observable_gauge(
            name=f"{prefix}_available",
            callbacks=[self._observe_availability],
            description="1 when the upstream is considered available, 0 otherwise",
            unit="1",
        )

    def track_availability(self, probe: Callable[[], bool]) -> None:
        """Feed the availability gauge from probe (read at collection time)."""
        self._availability_probe = probe

    def record_call(self, operation: str, status: CallStatus | str) -> None:
        try:
            self._calls_total.add(
                1, {"operation": operation, "status": CallStatus(status).value}
            )
        except Exception as e:
            logger.warning(f"Failed to record upstream call metric: {e}")

    def record_failure(self, operation: str) -> None:
        try:
            self._failures_total.add(1, {"operation": operation})
        except Exception as e:
            logger.warning(f"Failed to record upstream failure metric: {e}")

    def record_latency(self, operation: str, seconds: float) -> None:
        try:
            self._latency.record(seconds, {"operation": operation})
        except Exception as e:
            logger.warning(f"Failed to record upstream latency metric: {e}")

    @contextmanager
    def timed(self, operation: str) -> Iterator[None]:
        """Record the latency of the enclosed block, however it exits."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_latency(operation, time.perf_counter() - start)

    def _observe_availability(self, options: CallbackOptions) -> Iterable[Observation]:
        if self._availability_probe is None:
            return []
        return [Observation(1 if self._availability_probe() else 0)]


# Global instance
_upstream_metrics: UpstreamMetrics | None = None


def get_upstream_metrics() -> UpstreamMetrics:
    """Get the global upstream metrics instance."""
    global _upstream_metrics
    if _upstream_metrics is None:
        _upstream_metrics = UpstreamMetrics()
    return _upstream_metrics
