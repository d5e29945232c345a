"""
Unit tests for AvailabilityMonitor.

Timers and sleeps are faked; the loop never waits on the real clock.
"""

import asyncio

import pytest

from src.services.arr_sync.config import UpstreamSettings
from src.services.arr_sync.core.monitor import AvailabilityMonitor


class FakeClient:
    """Scripted health_check results; the last one repeats."""

    def __init__(self, *results):
        self.results = list(results)
        self.checks = 0

    async def health_check(self):
        self.checks += 1
        item = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(item, Exception):
            raise item
        return item


class FakeTimer:
    def __init__(self, factory, interval):
        self.factory = factory
        self.interval = interval
        self.closed = False

    async def wait_for_next_tick(self, stop=None):
        if len(self.factory.intervals) >= self.factory.max_ticks:
            stop.set()
            return False
        return True

    def close(self):
        self.closed = True


class FakeTimerFactory:
    """Records requested intervals and stops the loop after max_ticks timers."""

    def __init__(self, max_ticks):
        self.max_ticks = max_ticks
        self.intervals: list[float] = []
        self.timers: list[FakeTimer] = []

    def create(self, interval):
        self.intervals.append(interval)
        timer = FakeTimer(self, interval)
        self.timers.append(timer)
        return timer


class RecordingSleep:
    def __init__(self, result=True):
        self.result = result
        self.delays: list[float] = []

    async def __call__(self, delay, stop=None):
        self.delays.append(delay)
        return self.result


def make_settings(interval=1) -> UpstreamSettings:
    return UpstreamSettings(base_url="http://overseerr.test", monitor_interval_seconds=interval)


class TestComputeNextDelay:
    """Tests for the backoff formula."""

    @pytest.mark.parametrize(
        "base, failures, expected",
        [
            (1, 0, 1),
            (2, 1, 4),
            (5, 4, 25),
            (5, 10, 25),
            (60, 2, 180),
        ],
    )
    def test_formula(self, base, failures, expected):
        assert AvailabilityMonitor.compute_next_delay(base, failures) == expected

    def test_base_interval_floor(self):
        settings = UpstreamSettings(base_url="http://overseerr.test", monitor_interval_seconds=1)
        assert AvailabilityMonitor(FakeClient((True, "ok")), settings).base_interval == 1.0


class TestMonitorLoop:
    """Tests for AvailabilityMonitor.run."""

    async def test_failure_sequence_drives_delays(self):
        """Checks ok, fail, fail with a 1s base request 1s, 2s, 3s waits."""
        client = FakeClient((True, "ok"), (False, "status: 503"), (False, "status: 503"))
        factory = FakeTimerFactory(max_ticks=3)
        sleep = RecordingSleep()
        monitor = AvailabilityMonitor(client, make_settings(1), timer_factory=factory, sleep=sleep)

        await monitor.run(asyncio.Event())

        assert sleep.delays == [1.0]
        assert factory.intervals == [1.0, 2.0, 3.0]
        assert client.checks == 3
        assert all(timer.closed for timer in factory.timers)
        assert monitor.failure_count == 0

    async def test_success_resets_failures(self):
        client = FakeClient(
            (False, "status: 500"), (False, "status: 500"), (True, "ok"), (False, "status: 500")
        )
        factory = FakeTimerFactory(max_ticks=4)
        monitor = AvailabilityMonitor(
            client, make_settings(2), timer_factory=factory, sleep=RecordingSleep()
        )

        await monitor.run(asyncio.Event())

        assert factory.intervals == [4.0, 6.0, 2.0, 4.0]

    async def test_exception_counts_as_failure(self):
        client = FakeClient(RuntimeError("boom"), (True, "ok"))
        factory = FakeTimerFactory(max_ticks=2)
        monitor = AvailabilityMonitor(
            client, make_settings(1), timer_factory=factory, sleep=RecordingSleep()
        )

        await monitor.run(asyncio.Event())

        assert factory.intervals == [2.0, 1.0]

    async def test_delay_capped_at_five_times_base(self):
        client = FakeClient((False, "down"))
        factory = FakeTimerFactory(max_ticks=7)
        monitor = AvailabilityMonitor(
            client, make_settings(1), timer_factory=factory, sleep=RecordingSleep()
        )

        await monitor.run(asyncio.Event())

        assert factory.intervals == [2.0, 3.0, 4.0, 5.0, 5.0, 5.0, 5.0]

    async def test_stop_during_initial_wait(self):
        client = FakeClient((True, "ok"))
        factory = FakeTimerFactory(max_ticks=10)
        monitor = AvailabilityMonitor(
            client, make_settings(1), timer_factory=factory, sleep=RecordingSleep(result=False)
        )

        await monitor.run(asyncio.Event())

        assert client.checks == 0
        assert factory.intervals == []

    async def test_stop_during_health_check(self):
        stop = asyncio.Event()
        started = asyncio.Event()
        cancelled = asyncio.Event()

        class HangingClient:
            async def health_check(self):
                started.set()
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    cancelled.set()
                    raise

        factory = FakeTimerFactory(max_ticks=10)
        monitor = AvailabilityMonitor(
            HangingClient(), make_settings(1), timer_factory=factory, sleep=RecordingSleep()
        )
        task = asyncio.create_task(monitor.run(stop))
        await started.wait()

        stop.set()
        await asyncio.wait_for(task, timeout=5)

        assert cancelled.is_set()
        assert factory.intervals == []

    async def test_cancellation_ends_loop(self):
        class SlowTimerFactory(FakeTimerFactory):
            def create(self, interval):
                self.intervals.append(interval)
                timer = FakeTimer(self, interval)

                async def wait_forever(stop=None):
                    await asyncio.Event().wait()

                timer.wait_for_next_tick = wait_forever
                self.timers.append(timer)
                return timer

        client = FakeClient((True, "ok"))
        factory = SlowTimerFactory(max_ticks=10)
        monitor = AvailabilityMonitor(
            client, make_settings(1), timer_factory=factory, sleep=RecordingSleep()
        )
        task = asyncio.create_task(monitor.run(asyncio.Event()))
        while not factory.timers:
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert factory.timers[0].closed
        assert client.checks == 1


class TestMonitorLifecycle:
    """Tests for start/stop."""

    async def test_start_and_stop(self):
        client = FakeClient((True, "ok"))
        monitor = AvailabilityMonitor(client, make_settings(60))

        monitor.start()
        assert monitor.running
        await asyncio.sleep(0)

        await monitor.stop()
        assert not monitor.running
        assert client.checks == 0

    async def test_start_is_idempotent(self):
        monitor = AvailabilityMonitor(FakeClient((True, "ok")), make_settings(60))

        monitor.start()
        first = monitor._task
        monitor.start()
        assert monitor._task is first

        await monitor.stop()

    async def test_stop_without_start(self):
        monitor = AvailabilityMonitor(FakeClient((True, "ok")), make_settings(60))
        await monitor.stop()
        assert not monitor.running
