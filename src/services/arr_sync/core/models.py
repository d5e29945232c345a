"""
ArrSync Models

Media types and the webhook payloads sent by Sonarr and Radarr. Only the
fields the service reads are modelled; everything else is ignored.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

TEST_EVENT_TYPE = "Test"


class MediaType(str, Enum):
    """Upstream media kinds; the value is the lookup path segment."""

    MOVIE = "movie"
    TV = "tv"


class _WebhookModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SonarrSeries(_WebhookModel):
    """Series information from a Sonarr webhook."""

    id: int = 0
    title: str | None = None
    tmdb_id: int = Field(default=0, alias="tmdbId")


class SonarrWebhook(_WebhookModel):
    """Webhook payload received from Sonarr."""

    event_type: str | None = Field(default=None, alias="eventType")
    instance_name: str | None = Field(default=None, alias="instanceName")
    series: SonarrSeries | None = None

    @property
    def tmdb_id(self) -> int:
        return self.series.tmdb_id if self.series else 0

    @property
    def is_test(self) -> bool:
        return is_test_event(self.event_type)


class RadarrMovie(_WebhookModel):
    """Movie information from a Radarr webhook."""

    id: int = 0
    title: str | None = None
    tmdb_id: int = Field(default=0, alias="tmdbId")
    year: int | None = None
    has_file: bool = Field(default=False, alias="hasFile")


class RadarrWebhook(_WebhookModel):
    """Webhook payload received from Radarr."""

    event_type: str | None = Field(default=None, alias="eventType")
    instance_name: str | None = Field(default=None, alias="instanceName")
    movie: RadarrMovie | None = None

    @property
    def tmdb_id(self) -> int:
        return self.movie.tmdb_id if self.movie else 0

    @property
    def is_test(self) -> bool:
        return is_test_event(self.event_type)


def is_test_event(event_type: str | None) -> bool:
    """Sonarr/Radarr send eventType "Test" from their connection test button."""
    return event_type is not None and event_type.casefold() == TEST_EVENT_TYPE.casefold()
