"""
Exception types shared across the archive.
"""

from typing import Optional


class CanvasArchiveError(Exception):
    """Base class for all archive errors."""


class InvalidRangeError(CanvasArchiveError, ValueError):
    """A time range was built with its start after its end."""


class UpstreamReadError(CanvasArchiveError):
    """The event log or keyframe store could not be read."""


class UnsupportedPlatformError(CanvasArchiveError):
    """The image or video backend cannot run in this environment."""


class FeedFormatError(CanvasArchiveError, ValueError):
    """A row of the raw placement feed could not be decoded."""

    def __init__(self, message: str, row_number: Optional[int] = None):
        self.row_number = row_number
        if row_number is not None:
            message = f"row {row_number}: {message}"
        super().__init__(message)


class StorageWriteError(CanvasArchiveError):
    """Rows or images could not be persisted."""
