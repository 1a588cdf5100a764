"""
Exception types raised by the planet-sync engine.

Every failure is scoped to a single source or operation. Pipelines catch
these and turn them into a ``status`` on their result objects, so callers
normally only see them when using the stores or capabilities directly.
"""

from __future__ import annotations


class PlanetSyncError(Exception):
    """Base class for all engine errors."""


class InvalidSourceError(PlanetSyncError, ValueError):
    """A source record carries fields that are illegal for its kind."""


class SourceNotFoundError(PlanetSyncError, LookupError):
    """No source exists with the requested id."""


class FetchError(PlanetSyncError):
    """Transport failure or non-200 status while fetching a URL."""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        super().__init__(f"{url}: {message}")
        self.url = url
        self.status_code = status_code


class FeedParseError(PlanetSyncError):
    """The whole feed document could not be parsed."""


class PersistenceError(PlanetSyncError):
    """A store transaction failed and was rolled back."""


class PublishStageError(PlanetSyncError):
    """One of the render/publish/pointer stages failed.

    Attributes:
        stage: "render", "publish" or "pointer"
    """

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
