"""
ArrSync Service

Keeps an Overseerr/Jellyseerr catalog in sync with Sonarr/Radarr: when a
series or movie is deleted there, the matching Overseerr media is removed.

Usage:
    # As a service
    python -m src.services.arr_sync --port 8080

    # Programmatic
    from src.services.arr_sync import OverseerrClient, load_config
"""

__version__ = "0.1.0"

from .config import ArrSyncConfig, UpstreamSettings, load_config
from .core.cleanup import CleanupService
from .core.client import OverseerrClient
from .core.models import MediaType
from .core.monitor import AvailabilityMonitor

__all__ = [
    "ArrSyncConfig",
    "AvailabilityMonitor",
    "CleanupService",
    "MediaType",
    "OverseerrClient",
    "UpstreamSettings",
    "load_config",
]
