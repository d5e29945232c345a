"""
Retry with Exponential Backoff

Retries failed operations with a configurable backoff schedule. Both raised
exceptions and returned results can be classified as retryable.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from src.common.resilience.backoff import BackoffSchedule

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    backoff: BackoffSchedule = field(default_factory=BackoffSchedule)
    retryable_exceptions: tuple[type[Exception], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,  # Includes network errors
    )
    # Returns True when a returned value should be retried (e.g. a 5xx response)
    retry_on_result: Callable[[Any], bool] | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    config: RetryConfig | None = None,
    on_retry: Callable[[int, Any, float], None] | None = None,
    sleep: SleepFunc | None = None,
    rng: random.Random | None = None,
    **kwargs,
) -> T:
    """
    Retry an async function with exponential backoff.

    Args:
        func: Async function to retry
        *args: Positional arguments for func
        config: Retry configuration
        on_retry: Optional callback(attempt, outcome, delay) on each retry, where
                  outcome is the raised exception or the rejected result
        sleep: Awaitable sleep used between attempts (defaults to asyncio.sleep)
        rng: Random source for jitter
        **kwargs: Keyword arguments for func

    Returns:
        Result from the first accepted call, or the last result if every
        attempt returned a retryable result

    Raises:
        Exception: Last exception after all retries exhausted, or any
                   non-retryable exception immediately

    Example:
        async def fetch_status():
            return await client.get("/api/v1/status")

        config = RetryConfig(
            max_attempts=4,
            retryable_exceptions=(httpx.TransportError,),
            retry_on_result=lambda r: r.status_code >= 500,
        )
        response = await retry_with_backoff(fetch_status, config=config)
    """
    config = config or RetryConfig()
    sleep = sleep or asyncio.sleep

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if attempt == config.max_attempts:
                logger.error(f"Retry exhausted after {attempt} attempts: {e}")
                raise
            outcome: Any = e
            reason = str(e)
        else:
            if config.retry_on_result is None or not config.retry_on_result(result):
                return result
            if attempt == config.max_attempts:
                logger.error(f"Retry exhausted after {attempt} attempts, returning last result")
                return result
            outcome = result
            reason = f"retryable result {result!r}"

        delay = config.backoff.delay(attempt, rng)
        logger.warning(
            f"Retry attempt {attempt}/{config.max_attempts} failed: {reason}. "
            f"Retrying in {delay:.2f}s"
        )

        if on_retry:
            on_retry(attempt, outcome, delay)

        await sleep(delay)

    raise RuntimeError("Retry logic error")


class RetryPolicy:
    """
    Retry as a composable policy.

    Example:
        policy = RetryPolicy(RetryConfig(max_attempts=3))
        result = await policy.call(fetch_status)
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        on_retry: Callable[[int, Any, float], None] | None = None,
        sleep: SleepFunc | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config or RetryConfig()
        self._on_retry = on_retry
        self._sleep = sleep
        self._rng = rng

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Execute function with retry logic."""
        return await retry_with_backoff(
            func,
            *args,
            config=self.config,
            on_retry=self._on_retry,
            sleep=self._sleep,
            rng=self._rng,
            **kwargs,
        )
