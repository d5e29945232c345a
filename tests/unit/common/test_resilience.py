"""
Tests for resilience patterns (backoff, retry, circuit breaker, timeout, pipeline).
"""

import asyncio

import httpx
import pytest

from src.common.exceptions import UpstreamTimeoutError
from src.common.resilience import (
    BackoffSchedule,
    CircuitBreaker,
    CircuitOpenError,
    PolicyChain,
    ResiliencePipeline,
    RetryConfig,
    RetryPolicy,
    TimeoutPolicy,
    retry_with_backoff,
)
from src.common.resilience.circuit_breaker import CircuitState


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def connection_failure():
    raise ConnectionError("Connection failed")


async def success():
    return "success"


class TestBackoffSchedule:
    """Tests for BackoffSchedule."""

    def test_doubles_from_initial_delay(self):
        schedule = BackoffSchedule(initial_delay=1.0)
        assert [schedule.base_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        schedule = BackoffSchedule(initial_delay=1.0)
        assert schedule.base_delay(6) == 30.0
        assert schedule.base_delay(10_000) == 30.0

    def test_non_decreasing(self):
        schedule = BackoffSchedule(initial_delay=0.7)
        delays = [schedule.base_delay(n) for n in range(1, 40)]
        assert delays == sorted(delays)
        assert max(delays) <= 30.0

    def test_initial_delay_floor(self):
        """Tiny initial delays are raised to 0.1s."""
        schedule = BackoffSchedule(initial_delay=0.001)
        assert schedule.base_delay(1) == pytest.approx(0.1)

    def test_jitter_scales_base_delay(self, fixed_rng):
        schedule = BackoffSchedule(initial_delay=2.0)
        assert schedule.delay(2, fixed_rng) == pytest.approx(2.0)

    def test_jitter_stays_below_base_delay(self):
        schedule = BackoffSchedule(initial_delay=1.0)
        for attempt in range(1, 8):
            assert 0.0 <= schedule.delay(attempt) < schedule.base_delay(attempt)

    def test_rejects_bad_jitter_range(self):
        with pytest.raises(ValueError):
            BackoffSchedule(jitter_low=0.8, jitter_high=0.2)


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        """Circuit breaker with a controllable clock."""
        return CircuitBreaker(
            failure_threshold=3,
            recovery_timeout=30.0,
            name="test",
            clock=clock,
        )

    async def open_circuit(self, breaker, failures=3):
        for _ in range(failures):
            with pytest.raises(ConnectionError):
                await breaker.call(connection_failure)

    @pytest.mark.asyncio
    async def test_closed_state_allows_requests(self, breaker):
        """Circuit breaker in closed state should allow requests."""
        result = await breaker.call(success)
        assert result == "success"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_after_failure_threshold(self, breaker):
        """Circuit breaker should open after failure threshold."""
        await self.open_circuit(breaker, failures=2)
        assert breaker.state == CircuitState.CLOSED

        await self.open_circuit(breaker, failures=1)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_default_threshold_is_five(self):
        breaker = CircuitBreaker(clock=FakeClock())
        await self.open_circuit(breaker, failures=4)
        assert breaker.state == CircuitState.CLOSED
        await self.open_circuit(breaker, failures=1)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_open_state_rejects_without_calling(self, breaker):
        """Open circuit should reject requests without invoking the function."""
        await self.open_circuit(breaker)
        calls = 0

        async def counted():
            nonlocal calls
            calls += 1
            return "unreachable"

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(counted)

        assert calls == 0
        assert exc_info.value.retry_after == pytest.approx(30.0)
        assert breaker.stats.total_rejections == 1

    @pytest.mark.asyncio
    async def test_success_resets_consecutive_failures(self, breaker):
        await self.open_circuit(breaker, failures=2)
        await breaker.call(success)
        await self.open_circuit(breaker, failures=2)
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_trial_allowed_after_recovery_timeout(self, breaker, clock):
        await self.open_circuit(breaker)

        clock.advance(29)
        with pytest.raises(CircuitOpenError):
            await breaker.call(success)

        clock.advance(1)
        assert await breaker.call(success) == "success"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_trial_reopens(self, breaker, clock):
        await self.open_circuit(breaker)
        clock.advance(30)

        with pytest.raises(ConnectionError):
            await breaker.call(connection_failure)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.call(success)

    @pytest.mark.asyncio
    async def test_single_trial_in_half_open(self, breaker, clock):
        """Concurrent callers are rejected while the trial is in flight."""
        await self.open_circuit(breaker)
        clock.advance(30)

        release = asyncio.Event()
        calls = 0

        async def slow_success():
            nonlocal calls
            calls += 1
            await release.wait()
            return "trial"

        trial = asyncio.create_task(breaker.call(slow_success))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN

        with pytest.raises(CircuitOpenError):
            await breaker.call(slow_success)

        release.set()
        assert await trial == "trial"
        assert calls == 1
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_trial_frees_slot(self, breaker, clock):
        await self.open_circuit(breaker)
        clock.advance(30)

        async def hang():
            await asyncio.Event().wait()

        trial = asyncio.create_task(breaker.call(hang))
        await asyncio.sleep(0)
        trial.cancel()
        with pytest.raises(asyncio.CancelledError):
            await trial

        assert breaker.stats.total_failures == 3
        assert await breaker.call(success) == "success"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failure_result_counts_but_is_returned(self, clock):
        breaker = CircuitBreaker(
            failure_threshold=2,
            is_failure_result=lambda r: r >= 500,
            clock=clock,
        )

        async def status(code):
            return code

        assert await breaker.call(status, 503) == 503
        assert await breaker.call(status, 503) == 503
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_excluded_exception_counts_as_success(self, clock):
        breaker = CircuitBreaker(
            failure_threshold=2,
            is_failure=lambda e: isinstance(e, ConnectionError),
            clock=clock,
        )

        async def bad_input():
            raise ValueError("bad input")

        with pytest.raises(ConnectionError):
            await breaker.call(connection_failure)
        with pytest.raises(ValueError):
            await breaker.call(bad_input)
        with pytest.raises(ConnectionError):
            await breaker.call(connection_failure)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.stats.failure_count == 1

    @pytest.mark.asyncio
    async def test_manual_reset(self, breaker):
        await self.open_circuit(breaker)
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert await breaker.call(success) == "success"


class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    @pytest.mark.asyncio
    async def test_succeeds_on_first_try(self, fake_sleep):
        result = await retry_with_backoff(success, sleep=fake_sleep)
        assert result == "success"
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_on_failure(self, fake_sleep, fixed_rng):
        """Should retry on retryable exceptions with backoff delays."""
        attempts = 0

        async def flaky():
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise ConnectionError("Temporary failure")
            return "success"

        config = RetryConfig(max_attempts=3, backoff=BackoffSchedule(initial_delay=1.0))
        result = await retry_with_backoff(flaky, config=config, sleep=fake_sleep, rng=fixed_rng)

        assert result == "success"
        assert attempts == 3
        assert fake_sleep.delays == [pytest.approx(0.5), pytest.approx(1.0)]

    @pytest.mark.asyncio
    async def test_raises_after_max_attempts(self, fake_sleep):
        """Should raise the last exception after max attempts."""
        config = RetryConfig(max_attempts=2)

        with pytest.raises(ConnectionError):
            await retry_with_backoff(connection_failure, config=config, sleep=fake_sleep)

        assert len(fake_sleep.delays) == 1

    @pytest.mark.asyncio
    async def test_non_retryable_exception_not_retried(self, fake_sleep):
        attempts = 0

        async def invalid():
            nonlocal attempts
            attempts += 1
            raise ValueError("Invalid input")

        with pytest.raises(ValueError):
            await retry_with_backoff(invalid, config=RetryConfig(max_attempts=3), sleep=fake_sleep)

        assert attempts == 1

    @pytest.mark.asyncio
    async def test_exhausted_on_result_returns_last_result(self, fake_sleep):
        results = iter([500, 502, 503])

        async def status():
            return next(results)

        config = RetryConfig(max_attempts=3, retry_on_result=lambda r: r >= 500)
        assert await retry_with_backoff(status, config=config, sleep=fake_sleep) == 503
        assert len(fake_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, fake_sleep):
        seen = []
        config = RetryConfig(max_attempts=3)

        with pytest.raises(ConnectionError):
            await retry_with_backoff(
                connection_failure,
                config=config,
                sleep=fake_sleep,
                on_retry=lambda attempt, outcome, delay: seen.append((attempt, type(outcome))),
            )

        assert seen == [(1, ConnectionError), (2, ConnectionError)]

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)


class TestTimeoutPolicy:
    """Tests for TimeoutPolicy."""

    @pytest.mark.asyncio
    async def test_fast_call_passes(self):
        policy = TimeoutPolicy(1.0)
        assert await policy.call(success) == "success"

    @pytest.mark.asyncio
    async def test_slow_call_raises_upstream_timeout(self):
        cancelled = False

        async def slow():
            nonlocal cancelled
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled = True
                raise

        policy = TimeoutPolicy(0.01, operation="overseerr")
        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await policy.call(slow)

        assert cancelled
        assert exc_info.value.operation == "overseerr"
        assert exc_info.value.code == "UPSTREAM_TIMEOUT"


class TestPolicyChain:
    """Tests for PolicyChain ordering."""

    @pytest.mark.asyncio
    async def test_first_policy_is_outermost(self):
        order = []

        class Tag:
            def __init__(self, name):
                self.name = name

            async def call(self, func, *args, **kwargs):
                order.append(f"enter {self.name}")
                result = await func(*args, **kwargs)
                order.append(f"exit {self.name}")
                return result

        chain = PolicyChain([Tag("outer"), Tag("inner")])
        assert await chain.call(success) == "success"
        assert order == ["enter outer", "enter inner", "exit inner", "exit outer"]

    def test_empty_chain_rejected(self):
        with pytest.raises(ValueError):
            PolicyChain([])


class TestResiliencePipeline:
    """Tests for the assembled retry -> breaker -> timeout pipeline."""

    def build(self, fake_sleep, max_retries=2, clock=None):
        return ResiliencePipeline.build(
            name="test",
            timeout_seconds=1.0,
            max_retries=max_retries,
            transient_exceptions=(httpx.TransportError, UpstreamTimeoutError, OSError),
            is_transient_result=lambda r: isinstance(r, httpx.Response) and r.status_code >= 500,
            sleep=fake_sleep,
            clock=clock or FakeClock(),
        )

    def scripted(self, *statuses):
        remaining = list(statuses)
        calls = []

        async def send():
            calls.append(1)
            return httpx.Response(remaining.pop(0) if len(remaining) > 1 else remaining[0])

        return send, calls

    def test_policy_order(self, fake_sleep):
        pipeline = self.build(fake_sleep)
        assert [type(p) for p in pipeline.policies] == [RetryPolicy, CircuitBreaker, TimeoutPolicy]

    @pytest.mark.asyncio
    async def test_retries_5xx_then_succeeds(self, fake_sleep):
        pipeline = self.build(fake_sleep)
        send, calls = self.scripted(503, 200)

        response = await pipeline.call(send)

        assert response.status_code == 200
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_exhausted_5xx_returns_last_response(self, fake_sleep):
        pipeline = self.build(fake_sleep, max_retries=2)
        send, calls = self.scripted(503)

        response = await pipeline.call(send)

        assert response.status_code == 503
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_4xx_is_not_retried(self, fake_sleep):
        pipeline = self.build(fake_sleep)
        send, calls = self.scripted(404)

        response = await pipeline.call(send)

        assert response.status_code == 404
        assert len(calls) == 1
        assert pipeline.breaker.stats.failure_count == 0

    @pytest.mark.asyncio
    async def test_transport_error_retried_then_raised(self, fake_sleep):
        pipeline = self.build(fake_sleep, max_retries=1)
        calls = 0

        async def refused():
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("refused")

        with pytest.raises(httpx.ConnectError):
            await pipeline.call(refused)
        assert calls == 2

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast_without_retry(self, fake_sleep):
        pipeline = self.build(fake_sleep, max_retries=4)
        send, calls = self.scripted(503)

        # 5 transient results open the breaker
        await pipeline.call(send)
        assert len(calls) == 5
        assert pipeline.breaker.state == CircuitState.OPEN

        sleeps_before = len(fake_sleep.delays)
        with pytest.raises(CircuitOpenError):
            await pipeline.call(send)
        assert len(calls) == 5
        assert len(fake_sleep.delays) == sleeps_before
