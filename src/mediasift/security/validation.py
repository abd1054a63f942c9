"""
Caller-layer input validation.

These checks run before the extraction core. Their messages are
client-facing and returned verbatim with a 400 response.
"""

from __future__ import annotations

from typing import Any, List, Optional
from urllib.parse import urlsplit

from mediasift.config import ServiceConfig
from mediasift.exceptions import ProxyURLError, SourceRejectedError

MISSING_SOURCE = "Source code is required and must be a string."
SOURCE_TOO_SHORT = "Source code seems too short. Please provide the complete HTML source code."
SOURCE_TOO_LARGE = "Source code is too large. Please try with a smaller page."
NOT_HTML = "The provided content does not appear to be valid HTML source code."

MISSING_PROXY_URL = "URL parameter is required"
PROXY_HOST_NOT_ALLOWED = "Only Facebook video URLs are allowed"


class SourceValidator:
    """Gatekeeping for submitted page sources."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        self.config = config or ServiceConfig()

    def validate(self, source: Any) -> str:
        """
        Validate a submitted document.

        Returns:
            The document, unchanged

        Raises:
            SourceRejectedError: If the document is missing, too short, too
                large, or does not look like HTML
        """
        if not source or not isinstance(source, str):
            raise SourceRejectedError(MISSING_SOURCE)
        if len(source) < self.config.min_source_length:
            raise SourceRejectedError(SOURCE_TOO_SHORT)
        if len(source) > self.config.max_source_length:
            raise SourceRejectedError(SOURCE_TOO_LARGE)
        if not any(marker in source for marker in self.config.html_markers):
            raise SourceRejectedError(NOT_HTML)
        return source


def validate_proxy_url(url: Optional[str], allowed_hosts: List[str]) -> str:
    """
    Check a playback proxy target against the host allow-list.

    A host is allowed when it equals an allow-list entry or is a subdomain of
    one.

    Raises:
        ProxyURLError: If the URL is missing, malformed, not http(s), or on
            another host
    """
    if not url:
        raise ProxyURLError(MISSING_PROXY_URL)

    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError as e:
        raise ProxyURLError(PROXY_HOST_NOT_ALLOWED) from e

    if parts.scheme not in ("http", "https") or not host:
        raise ProxyURLError(PROXY_HOST_NOT_ALLOWED)

    for allowed in allowed_hosts:
        allowed = allowed.lower().lstrip(".")
        if host == allowed or host.endswith(f".{allowed}"):
            return url
    raise ProxyURLError(PROXY_HOST_NOT_ALLOWED)
