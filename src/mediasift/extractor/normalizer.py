"""
Text normalization for pattern matching.

Page sources embed media URLs inside JSON strings, HTML attributes and inline
scripts, so the same URL can appear as ``https:\\/\\/scontent...``,
``https:\\u002F\\u002Fscontent...`` or ``...&amp;_nc_ht=...``. ``normalize_text`` folds all
of these into one canonical spelling before the scanner runs, and
``decode_candidate`` cleans an individual match.
"""

from __future__ import annotations

import re
from urllib.parse import unquote

# Order matters: surrogate pairs must be tried before single \u escapes.
_ESCAPE_PATTERN = re.compile(
    r"\\u([dD][89abAB][0-9a-fA-F]{2})\\u([dD][c-fC-F][0-9a-fA-F]{2})"
    r"|\\u([0-9a-fA-F]{4})"
    r"|\\x([0-9a-fA-F]{2})"
    r"|\\([/\"'\\])"
    r"|&#(\d{1,7});"
    r"|&#[xX]([0-9a-fA-F]{1,6});"
    r"|&(quot|amp|lt|gt|apos|nbsp);"
)

_NAMED_ENTITIES = {
    "quot": '"',
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "apos": "'",
    "nbsp": " ",
}

_WRAPPING_QUOTES = re.compile(r"^[\"']|[\"']$")
_LEADING_BASEURL = re.compile(r"^[^h]*<BaseURL>", re.IGNORECASE)
_TRAILING_BASEURL = re.compile(r"</BaseURL>.*", re.IGNORECASE | re.DOTALL)
_MARKUP_TAG = re.compile(r"<[^>]+>")

MIN_CANDIDATE_LENGTH = 20
MANIFEST_MARKERS = ("BaseURL", "SegmentBase", "indexRange", "<MPD", "Representation")


def _from_code_point(value: int, original: str) -> str:
    # Lone surrogates would make the text unencodable downstream.
    if 0xD800 <= value <= 0xDFFF:
        return original
    try:
        return chr(value)
    except (ValueError, OverflowError):
        return original


def _replace_escape(match: re.Match[str]) -> str:
    high, low, unicode_hex, byte_hex, escaped, decimal, hexadecimal, named = match.groups()
    original = match.group(0)

    if high is not None:
        code = 0x10000 + ((int(high, 16) - 0xD800) << 10) + (int(low, 16) - 0xDC00)
        return _from_code_point(code, original)
    if unicode_hex is not None:
        return _from_code_point(int(unicode_hex, 16), original)
    if byte_hex is not None:
        return chr(int(byte_hex, 16))
    if escaped is not None:
        return escaped
    if decimal is not None:
        return _from_code_point(int(decimal), original)
    if hexadecimal is not None:
        return _from_code_point(int(hexadecimal, 16), original)
    return _NAMED_ENTITIES[named]


def normalize_text(text: str) -> str:
    """
    Decode escape sequences and common HTML entities.

    Every substitution shortens the text, so iterating to a fixed point always
    terminates and makes the function idempotent. Never raises.

    Args:
        text: Raw document text

    Returns:
        Normalized text
    """
    if not text:
        return ""

    current = text
    while True:
        decoded = _ESCAPE_PATTERN.sub(_replace_escape, current)
        if decoded == current:
            return decoded
        current = decoded


def decode_candidate(raw: str) -> str | None:
    """
    Clean a single pattern match into a usable absolute URL.

    Strips wrapping quotes, stray manifest and markup tags and backslashes,
    percent-decodes, and trims. Returns ``None`` when what remains is too
    short, still carries markup or a manifest fragment marker, or is not an
    http(s) URL.
    """
    if not raw or not isinstance(raw, str):
        return None

    url = _WRAPPING_QUOTES.sub("", raw)
    url = _LEADING_BASEURL.sub("", url)
    url = _TRAILING_BASEURL.sub("", url)
    url = _MARKUP_TAG.sub("", url)
    url = unquote(url.replace("\\", "")).strip()

    if len(url) < MIN_CANDIDATE_LENGTH:
        return None
    if "<" in url or ">" in url:
        return None
    if any(marker in url for marker in MANIFEST_MARKERS):
        return None
    if not url.startswith(("http://", "https://")):
        return None
    return url
