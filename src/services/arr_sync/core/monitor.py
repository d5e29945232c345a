"""
Availability Monitor

Background loop that health-checks Overseerr and backs off its polling
cadence while the upstream keeps failing. A successful check also clears
the client's unavailable flag, which re-enables lookups and deletes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from src.common import timing
from src.common.timing import PeriodicTimerFactory, wait_or_stop

from ..config import UpstreamSettings
from .client import OverseerrClient

logger = logging.getLogger(__name__)

MAX_BACKOFF_MULTIPLIER = 5


class AvailabilityMonitor:
    """
    Polls OverseerrClient.health_check on an adaptive interval.

    Timeline: wait base_interval, check, wait next_delay, check, ... The delay
    after a check is base_interval * min(1 + consecutive_failures, 5).

    Example:
        monitor = AvailabilityMonitor(client, settings)
        monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        client: OverseerrClient,
        settings: UpstreamSettings,
        timer_factory: PeriodicTimerFactory | None = None,
        sleep: Callable[[float, asyncio.Event | None], Awaitable[bool]] = timing.sleep,
    ):
        self._client = client
        self._base_interval = max(1.0, float(settings.monitor_interval_seconds))
        self._timer_factory = timer_factory or PeriodicTimerFactory()
        self._sleep = sleep
        self._failure_count = 0
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

    @staticmethod
    def compute_next_delay(base_interval: float, failure_count: int) -> float:
        """Delay before the next check, growing linearly and capped at 5x base."""
        multiplier = min(1 + max(0, failure_count), MAX_BACKOFF_MULTIPLIER)
        return base_interval * multiplier

    @property
    def base_interval(self) -> float:
        return self._base_interval

    @property
    def failure_count(self) -> int:
        """Consecutive failed checks in the current run."""
        return self._failure_count

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """
        Run the monitor loop until stop is set or the task is cancelled.

        A stop during a health check abandons the check.
        """
        self._failure_count = 0
        logger.info(f"Availability monitor started (base interval {self._base_interval}s)")
        try:
            if not await self._sleep(self._base_interval, stop):
                return

            while stop is None or not stop.is_set():
                try:
                    completed, result = await wait_or_stop(self._client.health_check(), stop)
                except Exception as e:
                    self._failure_count += 1
                    logger.error(f"Exception during Overseerr health check: {e!r}")
                else:
                    if not completed:
                        return
                    ok, details = result
                    if ok:
                        self._failure_count = 0
                    else:
                        self._failure_count += 1
                        logger.warning(f"Overseerr health check failed: {details}")

                next_delay = self.compute_next_delay(self._base_interval, self._failure_count)
                logger.debug(f"Next Overseerr health check in {next_delay}s")

                timer = self._timer_factory.create(next_delay)
                try:
                    if not await timer.wait_for_next_tick(stop):
                        return
                finally:
                    timer.close()
        finally:
            self._failure_count = 0
            logger.info("Availability monitor stopped")

    def start(self) -> None:
        """Start the loop as a background task on the running event loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stop_event), name="availability-monitor")

    async def stop(self, timeout: float = 5.0) -> None:
        """Signal the loop to stop and wait for it, cancelling if it lingers."""
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        task, self._task = self._task, None
        try:
            await asyncio.wait_for(task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Availability monitor did not stop in time; cancelled")
