"""
Timing Utilities

Stop-aware sleeping and periodic timers for background loops. Everything here
suspends on awaits, so task cancellation reaches it immediately; an optional
asyncio.Event provides a cooperative stop on top of that.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable
from typing import Any, TypeVar

T = TypeVar("T")


async def sleep(delay: float, stop: asyncio.Event | None = None) -> bool:
    """
    Sleep for delay seconds unless stop is set first.

    Returns:
        True if the full delay elapsed, False if stopped early
    """
    if stop is None:
        await asyncio.sleep(delay)
        return True
    if stop.is_set():
        return False
    try:
        await asyncio.wait_for(stop.wait(), timeout=max(0.0, delay))
    except asyncio.TimeoutError:
        return True
    return False


async def wait_or_stop(aw: Awaitable[T], stop: asyncio.Event | None) -> tuple[bool, T | None]:
    """
    Await aw, abandoning it if stop is set before it finishes.

    Returns:
        (True, result) when aw completed, (False, None) when it was cancelled by stop
    """
    if stop is None:
        return True, await aw

    task = asyncio.ensure_future(aw)
    stopper = asyncio.ensure_future(stop.wait())
    try:
        done, _ = await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        stopper.cancel()
        raise

    stopper.cancel()
    if task in done:
        return True, task.result()

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    return False, None


class PeriodicTimer:
    """
    Fires every interval seconds, the first tick one interval after creation.

    Example:
        with PeriodicTimer(60) as timer:
            while await timer.wait_for_next_tick(stop):
                await poll()
    """

    def __init__(self, interval: float):
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.interval = interval
        self._loop = asyncio.get_running_loop()
        self._deadline = self._loop.time() + interval
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def wait_for_next_tick(self, stop: asyncio.Event | None = None) -> bool:
        """
        Wait until the next tick.

        Returns:
            True on a tick, False if the timer is closed or stop was set
        """
        if self._closed:
            return False
        remaining = self._deadline - self._loop.time()
        ticked = await sleep(remaining, stop)
        if not ticked or self._closed:
            return False
        # Missed ticks are skipped rather than replayed
        now = self._loop.time()
        while self._deadline <= now:
            self._deadline += self.interval
        return True

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> PeriodicTimer:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class PeriodicTimerFactory:
    """Creates timers; swapped for a fake in tests."""

    def create(self, interval: float) -> PeriodicTimer:
        return PeriodicTimer(interval)


__all__ = [
    "PeriodicTimer",
    "PeriodicTimerFactory",
    "sleep",
    "wait_or_stop",
]
