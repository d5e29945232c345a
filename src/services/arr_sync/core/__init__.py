"""
Core ArrSync logic.

Upstream client, availability monitor and cleanup service, independent of
any transport or framework.
"""

from .availability import AvailabilityFlag
from .cleanup import CleanupService
from .client import OverseerrClient, extract_media_id
from .models import MediaType, RadarrWebhook, SonarrWebhook
from .monitor import AvailabilityMonitor
from .transport import UpstreamHttp, build_upstream_pipeline

__all__ = [
    "AvailabilityFlag",
    "AvailabilityMonitor",
    "CleanupService",
    "MediaType",
    "OverseerrClient",
    "RadarrWebhook",
    "SonarrWebhook",
    "UpstreamHttp",
    "build_upstream_pipeline",
    "extract_media_id",
]
