"""
Overseerr Client

Domain operations against Overseerr/Jellyseerr (health check, media lookup
by TMDB id, media deletion) on top of UpstreamHttp.

Lookup and delete run their own retry loop above the transport pipeline, so
a persistently failing upstream sees at most (max_retries + 1) ** 2 requests
per operation. Once a loop exhausts, the client marks the upstream
unavailable and skips further lookups/deletes until a health check (usually
from the availability monitor) succeeds again.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

from src.common.exceptions import MalformedResponseError, UnexpectedStatusError
from src.common.resilience import BackoffSchedule
from src.common.resilience.retry import SleepFunc
from src.common.telemetry import CallStatus, UpstreamMetrics, get_tracer, get_upstream_metrics

from ..config import UpstreamSettings
from .availability import AvailabilityFlag
from .models import MediaType
from .transport import UpstreamHttp

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

T = TypeVar("T")

OP_HEALTH = "health"
OP_GET_MEDIA = "get_media"
OP_DELETE_MEDIA = "delete_media"


def _as_media_id(value: Any) -> int | None:
    # bool is an int subclass; JSON true must not become id 1
    if isinstance(value, bool) or not isinstance(value, int) or value == 0:
        return None
    return value


def extract_media_id(payload: Any) -> int | None:
    """
    Pull the Overseerr media id out of a lookup response body.

    mediaInfo.id wins when present and non-zero, then the top-level id.
    """
    if not isinstance(payload, dict):
        return None
    media_info = payload.get("mediaInfo")
    if isinstance(media_info, dict):
        media_id = _as_media_id(media_info.get("id"))
        if media_id is not None:
            return media_id
    return _as_media_id(payload.get("id"))


class OverseerrClient:
    """
    Resilient Overseerr/Jellyseerr client.

    Features:
    - Per-request pipeline: timeout, transient retry, circuit breaker
    - Domain retry loop with jittered exponential backoff for lookup/delete
    - Shared availability flag gating lookup/delete
    - Calls/failures/latency metrics and one span per operation
    """

    def __init__(
        self,
        settings: UpstreamSettings,
        http: UpstreamHttp | None = None,
        metrics: UpstreamMetrics | None = None,
        sleep: SleepFunc = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        """
        Initialize the client.

        Args:
            settings: Upstream settings snapshot
            http: Transport (built from settings when omitted)
            metrics: Metrics sink (global instance when omitted)
            sleep: Backoff sleep, shared with the transport it builds
            rng: Jitter source, shared with the transport it builds
        """
        self._settings = settings
        self._http = http or UpstreamHttp(settings, sleep=sleep, rng=rng)
        self._metrics = metrics or get_upstream_metrics()
        self._sleep = sleep
        self._rng = rng
        self._backoff = BackoffSchedule(initial_delay=settings.initial_backoff_seconds)
        self._available = AvailabilityFlag()
        self._metrics.track_availability(self._available.get)

    @property
    def settings(self) -> UpstreamSettings:
        return self._settings

    def is_available(self) -> bool:
        """Whether lookups and deletes are currently attempted."""
        return self._available.get()

    async def health_check(self) -> tuple[bool, str]:
        """
        Probe GET /api/v1/status once (pipeline retries only).

        Never raises for upstream failures; the reason is returned instead.

        Returns:
            (True, "ok") on 2xx, otherwise (False, reason)
        """
        with tracer.start_as_current_span("overseerr.health_check") as span:
            self._metrics.record_call(OP_HEALTH, CallStatus.START)
            with self._metrics.timed(OP_HEALTH):
                try:
                    response = await self._http.get("/api/v1/status")
                except Exception as e:
                    self._available.set(False)
                    self._metrics.record_call(OP_HEALTH, CallStatus.EXCEPTION)
                    self._metrics.record_failure(OP_HEALTH)
                    logger.warning(f"Overseerr health check failed: {e!r}")
                    span.set_attribute("overseerr.healthy", False)
                    return False, str(e) or type(e).__name__

            span.set_attribute("http.status_code", response.status_code)
            if response.is_success:
                self._available.set(True)
                self._metrics.record_call(OP_HEALTH, CallStatus.OK)
                span.set_attribute("overseerr.healthy", True)
                return True, "ok"

            self._available.set(False)
            self._metrics.record_call(OP_HEALTH, CallStatus.ERROR)
            self._metrics.record_failure(OP_HEALTH)
            span.set_attribute("overseerr.healthy", False)
            return False, f"status: {response.status_code}"

    async def lookup_media_id(self, external_id: int, media_type: MediaType | str) -> int | None:
        """
        Resolve a TMDB id to the Overseerr media id.

        Args:
            external_id: TMDB id
            media_type: "movie" or "tv"

        Returns:
            Media id, or None if the upstream does not know the title or is
            currently marked unavailable

        Raises:
            ExternalServiceError: After every attempt failed
        """
        media_type = MediaType(media_type)
        with tracer.start_as_current_span("overseerr.lookup_media_id") as span:
            span.set_attribute("media.tmdb_id", external_id)
            span.set_attribute("media.type", media_type.value)
            self._metrics.record_call(OP_GET_MEDIA, CallStatus.START)

            if not self._available.get():
                logger.warning(f"Overseerr unavailable, skipping lookup for tmdb {external_id}")
                self._metrics.record_call(OP_GET_MEDIA, CallStatus.SKIPPED)
                span.set_attribute("overseerr.skipped", True)
                return None

            path = f"/api/v1/{media_type.value}/{external_id}"

            async def attempt() -> int | None:
                response = await self._http.get(path)

                if response.status_code == 404:
                    self._available.set(True)
                    self._metrics.record_call(OP_GET_MEDIA, CallStatus.NOT_FOUND)
                    return None

                if response.is_success:
                    self._available.set(True)
                    self._metrics.record_call(OP_GET_MEDIA, CallStatus.OK)
                    media_id = extract_media_id(_json_body(response))
                    if media_id is None:
                        raise MalformedResponseError("could not find media id in response")
                    return media_id

                self._metrics.record_call(OP_GET_MEDIA, CallStatus.ERROR)
                raise UnexpectedStatusError(response.status_code, response.text)

            media_id = await self._run_with_retries(OP_GET_MEDIA, attempt)
            if media_id is not None:
                span.set_attribute("media.id", media_id)
            return media_id

    async def delete_media(self, media_id: int) -> bool:
        """
        Delete a media item (and its requests) from Overseerr.

        Returns:
            True once deleted, False if skipped because the upstream is
            marked unavailable

        Raises:
            ExternalServiceError: After every attempt failed
        """
        with tracer.start_as_current_span("overseerr.delete_media") as span:
            span.set_attribute("media.id", media_id)
            self._metrics.record_call(OP_DELETE_MEDIA, CallStatus.START)

            if not self._available.get():
                logger.warning(f"Overseerr unavailable, skipping delete for media {media_id}")
                self._metrics.record_call(OP_DELETE_MEDIA, CallStatus.SKIPPED)
                span.set_attribute("overseerr.skipped", True)
                return False

            async def attempt() -> bool:
                response = await self._http.delete(f"/api/v1/media/{media_id}")
                if response.is_success:
                    self._available.set(True)
                    self._metrics.record_call(OP_DELETE_MEDIA, CallStatus.OK)
                    return True

                self._metrics.record_call(OP_DELETE_MEDIA, CallStatus.ERROR)
                raise UnexpectedStatusError(response.status_code, response.text)

            return await self._run_with_retries(OP_DELETE_MEDIA, attempt)

    async def _run_with_retries(self, operation: str, attempt: Callable[[], Awaitable[T]]) -> T:
        """
        Run attempt up to max_retries + 1 times with jittered backoff.

        Cancellation is a BaseException and passes straight through.
        """
        max_attempts = self._settings.max_retries + 1
        for attempt_number in range(1, max_attempts + 1):
            try:
                with self._metrics.timed(operation):
                    return await attempt()
            except Exception as e:
                self._metrics.record_failure(operation)
                if attempt_number < max_attempts:
                    delay = self._backoff.delay(attempt_number, self._rng)
                    logger.warning(
                        f"{operation} attempt {attempt_number}/{max_attempts} failed: {e}. "
                        f"Backing off {delay:.2f}s"
                    )
                    await self._sleep(delay)
                    continue

                self._available.set(False)
                self._metrics.record_call(operation, CallStatus.EXCEPTION)
                logger.error(f"{operation} failed after {attempt_number} attempts: {e}")
                raise

        raise RuntimeError("Retry logic error")

    @property
    def circuit_breaker_stats(self) -> dict[str, Any]:
        """Get circuit breaker statistics."""
        stats = self._http.circuit_breaker.stats
        return {
            "state": stats.state.value,
            "failure_count": stats.failure_count,
            "total_calls": stats.total_calls,
            "total_failures": stats.total_failures,
            "total_successes": stats.total_successes,
            "total_rejections": stats.total_rejections,
        }

    def reset_circuit_breaker(self) -> None:
        """Manually reset circuit breaker."""
        self._http.circuit_breaker.reset()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise MalformedResponseError(f"response is not JSON: {e}") from e
