"""
Custom exception hierarchy for gifsig.

All gifsig exceptions inherit from GifSigError so callers can catch
the entire family with a single except clause.
"""

from __future__ import annotations


class GifSigError(Exception):
    """Base exception for all gifsig errors."""


class FetchError(GifSigError):
    """Raised when the source image bytes could not be obtained."""


class FormatError(GifSigError):
    """Raised when the source bitstream is malformed.

    ``reason`` is a short machine-readable tag such as ``"Truncated"`` or
    ``"FrameOutOfBounds"``.
    """

    def __init__(self, message: str, reason: str = "Malformed") -> None:
        super().__init__(f"{reason}: {message}")
        self.reason = reason


class MissingRequiredInput(GifSigError):
    """Raised when a required overlay field or the QR raster is absent."""

    def __init__(self, field: str, message: str = "") -> None:
        super().__init__(message or f"Missing required input: {field}")
        self.field = field


class ResourceLimitExceeded(GifSigError):
    """Raised when the source exceeds a configured size guard."""

    def __init__(self, limit: str, value: int, maximum: int) -> None:
        super().__init__(f"{limit} {value} exceeds the limit of {maximum}")
        self.limit = limit
        self.value = value
        self.maximum = maximum


class SinkWriteError(GifSigError):
    """Raised when the output consumer fails or disconnects mid-stream."""


class FontNotFoundError(GifSigError):
    """Raised when an explicitly requested font file does not exist."""
