"""
Resilience Pipeline

Composes resilience policies into an explicit ordered chain. The first policy
is outermost, so for the standard pipeline:

    retry -> circuit breaker -> per-attempt timeout -> call

Each retry attempt passes through the breaker (which can fail fast) and is
individually bounded by the timeout.
"""

from __future__ import annotations

import functools
import random
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol, TypeVar

from src.common.resilience.backoff import BackoffSchedule
from src.common.resilience.circuit_breaker import CircuitBreaker
from src.common.resilience.retry import RetryConfig, RetryPolicy, SleepFunc
from src.common.resilience.timeout import TimeoutPolicy

T = TypeVar("T")


class Policy(Protocol):
    """Anything that can run an async callable on the caller's behalf."""

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any: ...


class PolicyChain:
    """Ordered policy composition, outermost first."""

    def __init__(self, policies: Sequence[Policy]):
        if not policies:
            raise ValueError("PolicyChain needs at least one policy")
        self._policies = tuple(policies)

    @property
    def policies(self) -> tuple[Policy, ...]:
        return self._policies

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        wrapped: Callable[[], Awaitable[Any]] = functools.partial(func, *args, **kwargs)
        for policy in reversed(self._policies):
            wrapped = functools.partial(policy.call, wrapped)
        return await wrapped()


class ResiliencePipeline:
    """
    Retry, circuit breaker and timeout applied to every upstream call.

    Example:
        pipeline = ResiliencePipeline.build(
            name="overseerr",
            timeout_seconds=30,
            max_retries=3,
            transient_exceptions=(httpx.TransportError, UpstreamTimeoutError, OSError),
            is_transient_result=lambda r: r.status_code >= 500,
        )
        response = await pipeline.call(client.get, "/api/v1/status")
    """

    def __init__(self, retry: RetryPolicy, breaker: CircuitBreaker, timeout: TimeoutPolicy):
        self.retry = retry
        self.breaker = breaker
        self.timeout = timeout
        self._chain = PolicyChain([retry, breaker, timeout])

    @property
    def policies(self) -> tuple[Policy, ...]:
        """Policies in execution order, outermost first."""
        return self._chain.policies

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        return await self._chain.call(func, *args, **kwargs)

    @classmethod
    def build(
        cls,
        *,
        name: str,
        timeout_seconds: float,
        max_retries: int,
        transient_exceptions: tuple[type[Exception], ...],
        is_transient_result: Callable[[Any], bool] | None = None,
        initial_backoff_seconds: float = 1.0,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        sleep: SleepFunc | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> ResiliencePipeline:
        """
        Assemble the standard pipeline.

        max_retries is the number of extra attempts, so the retry policy makes
        at most max_retries + 1 calls.
        """
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")

        retry = RetryPolicy(
            RetryConfig(
                max_attempts=max_retries + 1,
                backoff=BackoffSchedule(initial_delay=initial_backoff_seconds),
                retryable_exceptions=transient_exceptions,
                retry_on_result=is_transient_result,
            ),
            sleep=sleep,
            rng=rng,
        )
        breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            is_failure=lambda e: isinstance(e, transient_exceptions),
            is_failure_result=is_transient_result,
            name=name,
            clock=clock,
        )
        timeout = TimeoutPolicy(timeout_seconds, operation=name)
        return cls(retry, breaker, timeout)
