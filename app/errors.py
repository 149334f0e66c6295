"""Exceptions raised while resolving previews."""

from __future__ import annotations


class PreviewError(Exception):
    """Base class for resolution failures."""


class MetadataNotFoundError(PreviewError):
    """The metadata provider has no record for the identifier."""


class MetadataUnavailableError(PreviewError):
    """A record exists but its detail payload could not be retrieved."""


class UpstreamError(PreviewError):
    """A single external call failed or returned an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
