"""
Upstream HTTP Transport

Single GET/DELETE requests against the Overseerr/Jellyseerr API, each one
run through the resilience pipeline (retry -> circuit breaker -> timeout).
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import Any

import httpx

from src.common.exceptions import UpstreamTimeoutError
from src.common.resilience import CircuitBreaker, ResiliencePipeline
from src.common.resilience.retry import SleepFunc

from ..config import UpstreamSettings

logger = logging.getLogger(__name__)

# Failures worth retrying and counting against the circuit breaker.
# httpx.TransportError covers connect, read/write, protocol and httpx timeouts.
TRANSIENT_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.TransportError,
    UpstreamTimeoutError,
    ConnectionError,
    OSError,
)


def is_transient_exception(exc: BaseException) -> bool:
    return isinstance(exc, TRANSIENT_EXCEPTIONS)


def is_transient_response(result: Any) -> bool:
    """5xx responses are transient; 4xx and below are final answers."""
    return isinstance(result, httpx.Response) and result.status_code >= 500


def build_upstream_pipeline(
    settings: UpstreamSettings,
    *,
    name: str = "overseerr",
    sleep: SleepFunc | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> ResiliencePipeline:
    """Standard pipeline for upstream calls: 5 failures open the breaker for 30s."""
    return ResiliencePipeline.build(
        name=name,
        timeout_seconds=settings.timeout_seconds,
        max_retries=settings.max_retries,
        initial_backoff_seconds=settings.initial_backoff_seconds,
        transient_exceptions=TRANSIENT_EXCEPTIONS,
        is_transient_result=is_transient_response,
        failure_threshold=5,
        recovery_timeout=30.0,
        sleep=sleep,
        rng=rng,
        clock=clock,
    )


class UpstreamHttp:
    """
    Thin httpx wrapper that routes every request through the pipeline.

    Returns the final httpx.Response (any status) or raises once the
    pipeline gives up. Status interpretation is left to the caller.
    """

    def __init__(
        self,
        settings: UpstreamSettings,
        transport: httpx.AsyncBaseTransport | None = None,
        pipeline: ResiliencePipeline | None = None,
        sleep: SleepFunc | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            settings: Upstream settings snapshot
            transport: httpx transport override (httpx.MockTransport in tests)
            pipeline: Pre-built pipeline (defaults to build_upstream_pipeline)
            sleep: Backoff sleep for the pipeline's retry policy
            rng: Jitter source for the pipeline's retry policy
            clock: Monotonic clock for the circuit breaker
        """
        self._settings = settings
        self.pipeline = pipeline or build_upstream_pipeline(
            settings, sleep=sleep, rng=rng, clock=clock
        )

        headers = {"Accept": "application/json"}
        if settings.api_key:
            headers["X-Api-Key"] = settings.api_key

        # The pipeline owns the per-attempt timeout; httpx only bounds connect
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            headers=headers,
            timeout=httpx.Timeout(None, connect=settings.timeout_seconds),
            transport=transport,
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self.pipeline.breaker

    async def get(self, path: str) -> httpx.Response:
        return await self._send("GET", path)

    async def delete(self, path: str) -> httpx.Response:
        return await self._send("DELETE", path)

    async def _send(self, method: str, path: str) -> httpx.Response:
        logger.debug(f"{method} {path}")
        return await self.pipeline.call(self._client.request, method, path)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
