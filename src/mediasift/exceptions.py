"""
Error taxonomy for MediaSift.

Per-candidate problems never surface as exceptions; they are absorbed by the
stage that sees them. Only the classes below cross module boundaries.
"""

from __future__ import annotations


class MediaSiftError(Exception):
    """Base class for all MediaSift errors."""

    pass


class ConfigurationError(MediaSiftError):
    """Raised at construction time when a rule table or setting is unusable."""

    pass


class ExtractionError(MediaSiftError):
    """Raised once at the pipeline boundary for an unexpected internal failure."""

    DEFAULT_MESSAGE = "Failed to parse the source code. Please ensure you copied the complete HTML source."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.DEFAULT_MESSAGE)


class SourceRejectedError(ValueError):
    """Raised by the caller layer when a submitted document is not acceptable.

    The message is client-facing and returned verbatim in the 400 response.
    """

    pass


class ProxyURLError(ValueError):
    """Raised when a playback proxy target is missing or not on the allow-list."""

    pass
