"""Exceptions raised inside the engine.

Only fetch boundaries and request validation raise these. Everything above
the fetcher converts them into status values so that one failed source never
aborts the rest of a load.
"""


class GeoResolveError(Exception):
    """Base class for engine errors."""


class SourceUnavailable(GeoResolveError):
    """A remote file could not be fetched or was not the expected format."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}")


class UnknownGeography(GeoResolveError):
    """An unrecognized state code or geographic level."""
