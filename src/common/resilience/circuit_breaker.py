"""
Circuit Breaker Pattern

Prevents cascading failures by failing fast when a service is unhealthy.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from src.common.exceptions import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation, requests flow through
    OPEN = "open"  # Service unhealthy, requests fail fast
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""

    failure_threshold: int = 5  # Consecutive failures before opening
    success_threshold: int = 1  # Successful trials to close from half-open
    recovery_timeout: float = 30.0  # Seconds before trying half-open


@dataclass
class CircuitStats:
    """Statistics for monitoring circuit breaker state."""

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: float | None = None
    total_calls: int = 0
    total_failures: int = 0
    total_successes: int = 0
    total_rejections: int = 0


class CircuitBreaker:
    """
    Circuit breaker implementation with configurable thresholds.

    States:
    - CLOSED: Normal operation. Requests pass through.
              After failure_threshold consecutive failures, transitions to OPEN.
    - OPEN: Failing fast. All requests raise CircuitOpenError without calling through.
            After recovery_timeout, transitions to HALF_OPEN.
    - HALF_OPEN: Testing recovery. Exactly one trial request at a time.
                 Success → CLOSED, Failure → OPEN (cool-down restarts).

    What counts as a failure is decided by two predicates:
    - is_failure(exc): raised exceptions (default: every Exception)
    - is_failure_result(result): returned values, e.g. a 5xx response. The
      result is still handed back to the caller.
    Any other outcome, including an exception rejected by is_failure, is a
    success and resets the consecutive failure count.

    asyncio.CancelledError is never counted.

    Example:
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=10.0)

        try:
            result = await breaker.call(my_api_call)
        except CircuitOpenError:
            result = cached_value
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        success_threshold: int = 1,
        is_failure: Callable[[Exception], bool] | None = None,
        is_failure_result: Callable[[Any], bool] | None = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening circuit
            recovery_timeout: Seconds to wait before allowing a trial call
            success_threshold: Successful trials needed to close from half-open
            is_failure: Predicate for exceptions that count as failures
            is_failure_result: Predicate for results that count as failures
            name: Name for logging/metrics
            clock: Monotonic time source (injectable for tests)
        """
        if failure_threshold <= 0:
            raise ValueError(f"failure_threshold must be > 0, got {failure_threshold}")
        if recovery_timeout < 0:
            raise ValueError(f"recovery_timeout must be >= 0, got {recovery_timeout}")

        self._config = CircuitBreakerConfig(
            failure_threshold=failure_threshold,
            success_threshold=success_threshold,
            recovery_timeout=recovery_timeout,
        )
        self._is_failure = is_failure
        self._is_failure_result = is_failure_result
        self._name = name
        self._clock = clock
        self._lock = asyncio.Lock()

        # State tracking
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._trial_in_flight = False

        # Metrics
        self._total_calls = 0
        self._total_failures = 0
        self._total_successes = 0
        self._total_rejections = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state

    @property
    def stats(self) -> CircuitStats:
        """Get current statistics."""
        return CircuitStats(
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            last_failure_time=self._last_failure_time,
            total_calls=self._total_calls,
            total_failures=self._total_failures,
            total_successes=self._total_successes,
            total_rejections=self._total_rejections,
        )

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Execute function through circuit breaker.

        Args:
            func: Async function to call
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Function result

        Raises:
            CircuitOpenError: If circuit is open (or a half-open trial is in flight)
            Exception: Any exception from the wrapped function
        """
        async with self._lock:
            is_trial = self._admit()
            self._total_calls += 1

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            if self._is_failure is None or self._is_failure(e):
                await self._on_failure(str(e), is_trial)
            else:
                await self._on_success(is_trial)
            raise
        except BaseException:
            # Cancellation: not an outcome, just free the trial slot
            await self._release(is_trial)
            raise

        if self._is_failure_result is not None and self._is_failure_result(result):
            await self._on_failure(f"failure result {result!r}", is_trial)
        else:
            await self._on_success(is_trial)
        return result

    def _admit(self) -> bool:
        """
        Decide whether a request may pass. Must be called with the lock held.

        Returns:
            True if the admitted request is the half-open trial
        """
        if self._state == CircuitState.CLOSED:
            return False

        if self._state == CircuitState.OPEN:
            elapsed = None
            if self._last_failure_time is not None:
                elapsed = self._clock() - self._last_failure_time
            if elapsed is None or elapsed >= self._config.recovery_timeout:
                logger.info(
                    f"Circuit breaker '{self._name}' transitioning to HALF_OPEN "
                    f"after {elapsed or 0.0:.1f}s recovery timeout"
                )
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
                self._trial_in_flight = True
                return True

            self._total_rejections += 1
            raise CircuitOpenError(
                self._name,
                retry_after=self._config.recovery_timeout - elapsed,
            )

        # HALF_OPEN - only one trial at a time
        if self._trial_in_flight:
            self._total_rejections += 1
            raise CircuitOpenError(self._name)
        self._trial_in_flight = True
        return True

    async def _release(self, is_trial: bool) -> None:
        if not is_trial:
            return
        async with self._lock:
            self._trial_in_flight = False

    async def _on_success(self, is_trial: bool = False) -> None:
        """Handle successful call."""
        async with self._lock:
            self._total_successes += 1

            if self._state == CircuitState.HALF_OPEN and is_trial:
                self._trial_in_flight = False
                self._success_count += 1
                if self._success_count >= self._config.success_threshold:
                    logger.info(
                        f"Circuit breaker '{self._name}' closing after "
                        f"{self._success_count} successful trial(s)"
                    )
                    self._state = CircuitState.CLOSED
                    self._failure_count = 0
                    self._success_count = 0

            elif self._state == CircuitState.CLOSED:
                # Only consecutive failures count
                self._failure_count = 0

    async def _on_failure(self, reason: str, is_trial: bool = False) -> None:
        """Handle failed call."""
        async with self._lock:
            self._total_failures += 1
            self._failure_count += 1
            self._last_failure_time = self._clock()

            logger.warning(
                f"Circuit breaker '{self._name}' recorded failure "
                f"({self._failure_count}/{self._config.failure_threshold}): {reason}"
            )

            if self._state == CircuitState.HALF_OPEN and is_trial:
                logger.info(
                    f"Circuit breaker '{self._name}' opening after failure in HALF_OPEN state"
                )
                self._state = CircuitState.OPEN
                self._trial_in_flight = False

            elif self._state == CircuitState.CLOSED:
                if self._failure_count >= self._config.failure_threshold:
                    logger.warning(
                        f"Circuit breaker '{self._name}' opening after "
                        f"{self._failure_count} consecutive failures"
                    )
                    self._state = CircuitState.OPEN

    def reset(self) -> None:
        """Manually reset circuit to closed state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None
        self._trial_in_flight = False
        logger.info(f"Circuit breaker '{self._name}' manually reset to CLOSED")
