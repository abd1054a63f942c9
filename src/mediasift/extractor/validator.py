"""
Structural validation of playable-asset URLs.

A URL qualifies only when it looks like a complete, signed, standalone CDN
asset: long, well-formed, on a recognized host and media path, named by an
opaque hash token, carrying the signed query markers, and free of any
manifest or segment marker.
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence
from urllib.parse import parse_qs, urlsplit

from mediasift.config import ValidationConfig

_FILENAME_TOKEN = r"[A-Za-z0-9_-]"


class UrlValidator:
    """Decides whether a candidate is a plausible standalone asset URL."""

    def __init__(self, config: ValidationConfig | None = None) -> None:
        self.config = config or ValidationConfig()
        self._host_pattern = re.compile(self.config.host_pattern, re.IGNORECASE)
        self._token_pattern = re.compile(rf"{_FILENAME_TOKEN}{{{self.config.min_hash_length},}}")
        self._exclusions = tuple(marker.lower() for marker in self.config.exclusion_markers)

    def is_valid(self, url: str) -> bool:
        return self.rejection_reason(url) is None

    def rejection_reason(self, url: str) -> str | None:
        """
        Return why ``url`` is rejected, or ``None`` when it qualifies.

        Parse failures count as rejections; this method never raises for
        string input.
        """
        if not isinstance(url, str):
            return "not a string"
        if len(url) < self.config.min_length:
            return "too short"
        if not url.isascii() or any(ch.isspace() for ch in url):
            return "non-ascii or whitespace"

        try:
            parts = urlsplit(url)
            host = parts.hostname or ""
        except ValueError:
            return "malformed"

        if parts.scheme not in ("http", "https") or not parts.netloc:
            return "not an absolute http(s) URL"

        lowered = url.lower()
        if any(marker in lowered for marker in self._exclusions):
            return "manifest or segment marker"

        extension = self._playable_extension(parts.path)
        if extension is None:
            return "no playable extension"
        if not self._host_pattern.fullmatch(host):
            return "unrecognized host"
        if not any(segment in parts.path for segment in self.config.media_path_segments):
            return "no media path segment"

        filename = parts.path.rsplit("/", 1)[-1]
        if not self._token_pattern.fullmatch(filename[: -len(extension)]):
            return "filename is not an opaque token"

        present = parse_qs(parts.query, keep_blank_values=True).keys()
        if not all(any(name in present for name in group) for group in self.config.required_params):
            return "missing signed query parameters"

        return None

    def filter(self, urls: Iterable[str]) -> list[str]:
        return [url for url in urls if self.is_valid(url)]

    def _playable_extension(self, path: str) -> str | None:
        lowered = path.lower()
        for extension in self.config.playable_extensions:
            if lowered.endswith(extension):
                return extension
        return None


def matches_bypass_signature(
    url: str,
    host_tokens: Sequence[str],
    extensions: Sequence[str],
    host_domains: Sequence[str] = ("fbcdn.net",),
) -> bool:
    """
    High-confidence signature for the permissive rule.

    Some legitimate assets are shorter than the general length heuristic
    allows; a URL on a recognized CDN host with a playable extension in its
    path is admitted on this signature alone. The host must sit under one of
    ``host_domains`` and its leading label must carry a host token, so
    ``scontent.evil.example`` does not qualify.
    """
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError:
        return False

    if parts.scheme not in ("http", "https") or not host:
        return False
    if not any(host.endswith(f".{domain.lower().lstrip('.')}") for domain in host_domains):
        return False

    leading_label = host.split(".", 1)[0]
    path = parts.path.lower()
    return any(token in leading_label for token in host_tokens) and any(ext in path for ext in extensions)
