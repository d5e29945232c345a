"""
Cleanup Service

Turns a Sonarr/Radarr deletion into an Overseerr media deletion.
"""

from __future__ import annotations

import asyncio
import logging

from .client import OverseerrClient
from .models import MediaType

logger = logging.getLogger(__name__)


class CleanupService:
    """Looks up the media by TMDB id and deletes it, unless running dry."""

    def __init__(self, client: OverseerrClient, dry_run: bool = False):
        self._client = client
        self.dry_run = dry_run

    async def process_sonarr(self, tmdb_id: int) -> bool:
        """Handle a series deletion from Sonarr."""
        _require_positive_tmdb_id(tmdb_id)
        return await self.process_deletion(tmdb_id, MediaType.TV)

    async def process_radarr(self, tmdb_id: int) -> bool:
        """Handle a movie deletion from Radarr."""
        _require_positive_tmdb_id(tmdb_id)
        return await self.process_deletion(tmdb_id, MediaType.MOVIE)

    async def process_deletion(self, external_id: int, media_type: MediaType | str) -> bool:
        """
        Delete the Overseerr media matching a TMDB id.

        Returns:
            True when there is nothing left to do (dry run, unknown title or
            deleted), otherwise whatever delete_media reported

        Raises:
            ExternalServiceError: Propagated from the client after logging
        """
        media_type = MediaType(media_type)

        if self.dry_run:
            logger.warning(
                f"[DRY_RUN] Would process media deletion for tmdbId={external_id}, "
                f"type={media_type.value}"
            )
            return True

        try:
            media_id = await self._client.lookup_media_id(external_id, media_type)
            if media_id is None:
                logger.info(
                    f"No media found in Overseerr for tmdbId={external_id}, type={media_type.value}"
                )
                return True

            deleted = await self._client.delete_media(media_id)
            if deleted:
                logger.info(
                    f"Deleted media from Overseerr: id={media_id}, tmdbId={external_id}, "
                    f"type={media_type.value}"
                )
            else:
                logger.error(
                    f"Failed to delete media from Overseerr: id={media_id}, "
                    f"tmdbId={external_id}, type={media_type.value}"
                )
            return deleted

        except asyncio.CancelledError:
            logger.debug(
                f"Media deletion cancelled for tmdbId={external_id}, type={media_type.value}"
            )
            raise
        except Exception as e:
            logger.error(
                f"Error processing media deletion for tmdbId={external_id}, "
                f"type={media_type.value}: {e}"
            )
            raise


def _require_positive_tmdb_id(tmdb_id: int) -> None:
    if tmdb_id <= 0:
        raise ValueError(f"TMDB id must be greater than 0, got {tmdb_id}")
