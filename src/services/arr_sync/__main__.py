"""
ArrSync Service - CLI Entry Point

Usage:
    python -m src.services.arr_sync [options]

Examples:
    # Start HTTP server with settings from ARRSYNC_* environment variables
    python -m src.services.arr_sync

    # Point at a different Overseerr and only log deletions
    python -m src.services.arr_sync --overseerr-url http://overseerr:5055 --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from src.common.exceptions import ConfigurationError
from src.common.logging import configure_sanitized_logging
from src.common.telemetry import TelemetryConfig, init_telemetry, shutdown_telemetry

from .config import ArrSyncConfig, load_config


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="ArrSync - Sonarr/Radarr to Overseerr deletion sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # HTTP options
    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind (default: from config or 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind (default: from config or 8080)",
    )

    # Upstream options
    parser.add_argument(
        "--overseerr-url",
        default=None,
        help="Overseerr/Jellyseerr base URL",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log deletions instead of performing them",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default=None,
        help="Log level (default: from config or info)",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ArrSyncConfig:
    """Build configuration from args and environment."""
    overrides: dict[str, object] = {}

    if args.host:
        overrides["host"] = args.host
    if args.port:
        overrides["port"] = args.port
    if args.overseerr_url:
        overrides["overseerr_url"] = args.overseerr_url
    if args.dry_run:
        overrides["dry_run"] = True
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()

    return load_config(**overrides)


async def run_http(config: ArrSyncConfig) -> None:
    """Run HTTP server."""
    from .transports.http import run_http_server

    await run_http_server(config)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    configure_sanitized_logging(level=(args.log_level or "info").upper())
    logger = logging.getLogger(__name__)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    configure_sanitized_logging(level=config.log_level)
    init_telemetry(
        config=TelemetryConfig(
            service_name=config.server_name,
            service_version=config.server_version,
            environment=config.environment,
        )
    )

    logger.info(f"Starting ArrSync (upstream {config.overseerr_url}, dry_run={config.dry_run})")

    try:
        asyncio.run(run_http(config))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)
    finally:
        shutdown_telemetry()


if __name__ == "__main__":
    main()
