"""ArrSync - keeps an Overseerr catalog in sync with Sonarr/Radarr deletions."""

__version__ = "0.1.0"
