"""
FastAPI HTTP Transport for ArrSync

Provides endpoints:
- /webhook/sonarr - Sonarr "series deleted" webhook
- /webhook/radarr - Radarr "movie deleted" webhook
- /health - Overseerr reachability (200 healthy / 503 degraded)
- / - Service info

NOTE: Do NOT add `from __future__ import annotations` to this file.
PEP 563 breaks FastAPI's runtime introspection for parameter sources.
"""

import logging
import secrets
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import uvicorn
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from src.common.telemetry import telemetry_status

from ...config import ArrSyncConfig
from ...core.cleanup import CleanupService
from ...core.client import OverseerrClient
from ...core.models import RadarrWebhook, SonarrWebhook
from ...core.monitor import AvailabilityMonitor

logger = logging.getLogger(__name__)

WEBHOOK_SECRET_HEADER = "X-Webhook-Secret"


@dataclass
class ServiceState:
    """Collaborators owned by the running app."""

    client: OverseerrClient
    cleanup: CleanupService
    monitor: AvailabilityMonitor | None = None


def get_state(request: Request) -> ServiceState:
    """Get the service state set up by the lifespan."""
    state = getattr(request.app.state, "arrsync", None)
    if state is None:
        raise RuntimeError("ArrSync service not initialized")
    return state


def create_app(
    config: ArrSyncConfig | None = None,
    client: OverseerrClient | None = None,
    cleanup: CleanupService | None = None,
) -> FastAPI:
    """
    Create a FastAPI application for the ArrSync service.

    Args:
        config: Service configuration
        client: Pre-built Overseerr client (built from config when omitted;
                an injected client is not closed on shutdown)
        cleanup: Pre-built cleanup service

    Returns:
        FastAPI application instance
    """
    _config = config or ArrSyncConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        logger.info(f"Starting ArrSync service: {_config.server_name}")
        if _config.dry_run:
            logger.warning("[DRY_RUN] Deletions will be logged, not performed")

        settings = _config.upstream_settings()
        owns_client = client is None
        _client = client or OverseerrClient(settings)
        _cleanup = cleanup or CleanupService(_client, dry_run=_config.dry_run)

        monitor = None
        if _config.monitor_enabled:
            monitor = AvailabilityMonitor(_client, settings)
            monitor.start()

        app.state.arrsync = ServiceState(client=_client, cleanup=_cleanup, monitor=monitor)
        logger.info(f"ArrSync service initialized (upstream {settings.base_url})")
        yield

        # Shutdown
        logger.info("Shutting down ArrSync service")
        if monitor:
            await monitor.stop()
        if owns_client:
            await _client.aclose()
        app.state.arrsync = None
        logger.info("ArrSync service shut down")

    app = FastAPI(
        title="ArrSync",
        description="Removes Overseerr media when Sonarr/Radarr delete it",
        version=_config.server_version,
        lifespan=lifespan,
    )

    def authenticate(secret: str | None) -> None:
        if not _config.webhook_secret:
            return
        if secret is None or not secrets.compare_digest(secret, _config.webhook_secret):
            raise HTTPException(status_code=401, detail="unauthorized")

    async def handle_webhook(
        source: str,
        payload: SonarrWebhook | RadarrWebhook,
        secret: str | None,
        process: Callable[[int], Awaitable[bool]],
    ) -> dict[str, str]:
        authenticate(secret)

        if payload.is_test:
            logger.info(f"{source} test event received from {payload.instance_name or 'unknown'}")
            return {"message": "test event ignored"}

        tmdb_id = payload.tmdb_id
        if tmdb_id <= 0:
            logger.info(f"{source} webhook without tmdb id ignored (event {payload.event_type})")
            return {"message": "no tmdb id found"}

        try:
            await process(tmdb_id)
        except Exception as e:
            logger.exception(f"Error processing {source} webhook for tmdbId={tmdb_id}: {e}")
            raise HTTPException(status_code=500, detail="processing failed")

        return {"message": "processed"}

    @app.post("/webhook/sonarr")
    async def sonarr_webhook(
        payload: SonarrWebhook,
        request: Request,
        x_webhook_secret: str | None = Header(default=None, alias=WEBHOOK_SECRET_HEADER),
    ) -> dict[str, str]:
        """Sonarr series deletion."""
        state = get_state(request)
        return await handle_webhook("sonarr", payload, x_webhook_secret, state.cleanup.process_sonarr)

    @app.post("/webhook/radarr")
    async def radarr_webhook(
        payload: RadarrWebhook,
        request: Request,
        x_webhook_secret: str | None = Header(default=None, alias=WEBHOOK_SECRET_HEADER),
    ) -> dict[str, str]:
        """Radarr movie deletion."""
        state = get_state(request)
        return await handle_webhook("radarr", payload, x_webhook_secret, state.cleanup.process_radarr)

    @app.get("/health")
    async def health_check(request: Request) -> JSONResponse:
        """Health check against Overseerr; 503 when it is unreachable."""
        state = get_state(request)
        ok, details = await state.client.health_check()
        if not ok:
            logger.warning(f"Health check degraded: {details}")
        return JSONResponse(
            content={
                "status": "healthy" if ok else "degraded",
                "service": _config.server_name,
                "healthy": ok,
                "overseerr": "available" if state.client.is_available() else "unavailable",
            },
            status_code=200 if ok else 503,
        )

    @app.get("/")
    async def root(request: Request) -> dict[str, Any]:
        """Root endpoint with service info."""
        state = get_state(request)
        return {
            "name": _config.server_name,
            "version": _config.server_version,
            "dry_run": _config.dry_run,
            "monitor": state.monitor is not None and state.monitor.running,
            "circuit_breaker": state.client.circuit_breaker_stats,
            "telemetry": telemetry_status(),
            "endpoints": {
                "health": "/health",
                "sonarr": "/webhook/sonarr",
                "radarr": "/webhook/radarr",
            },
        }

    return app


async def run_http_server(config: ArrSyncConfig | None = None) -> None:
    """
    Run the HTTP server.

    Args:
        config: Service configuration
    """
    _config = config or ArrSyncConfig()
    app = create_app(_config)

    logger.info(f"Starting HTTP server on {_config.host}:{_config.port}")

    server_config = uvicorn.Config(
        app,
        host=_config.host,
        port=_config.port,
        log_level=_config.log_level.lower(),
    )
    server = uvicorn.Server(server_config)
    await server.serve()
