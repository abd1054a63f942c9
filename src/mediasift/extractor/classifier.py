"""
Heuristic classification of admitted URLs.

Pure and deterministic: the same URL always yields the same MediaAsset.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from mediasift.config import ClassificationConfig, FormatProfile, KeywordRule

from .models import ContentType, MediaAsset

_FORMAT_CODE = re.compile(r"/(m\d+)/")
_IDENTITY_HASH = re.compile(r"/([A-Za-z0-9_-]{40,})\.")
_SECONDARY_ID = re.compile(r"/f2/([A-Za-z0-9_-]+)")

_EXTENSION_FORMATS = ((".m4v", "M4V"), (".mov", "MOV"), (".mp4", "MP4"))


def _keyword_pattern(keywords: list[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(word.lower()) for word in keywords)
    return re.compile(rf"(?<![a-z0-9])(?:{alternatives})(?![a-z0-9])")


def extract_format_code(url: str) -> str | None:
    match = _FORMAT_CODE.search(url)
    return match.group(1) if match else None


def extract_base_identity(url: str, prefix_length: int = 30, stem_length: int = 20) -> str:
    """
    Key shared by encodings of the same underlying asset.

    Prefers the opaque hash token, then the ``/f2/`` path identifier, then the
    filename stem.
    """
    match = _IDENTITY_HASH.search(url)
    if match:
        return match.group(1)[:prefix_length]

    match = _SECONDARY_ID.search(url)
    if match:
        return match.group(1)

    filename = url.split("?", 1)[0].rsplit("/", 1)[-1]
    return filename.split(".", 1)[0][:stem_length]


class MediaClassifier:
    """Derives quality, resolution, format and content type for a URL."""

    def __init__(self, config: ClassificationConfig | None = None) -> None:
        self.config = config or ClassificationConfig()
        self._keyword_rules: list[tuple[re.Pattern[str], KeywordRule]] = [
            (_keyword_pattern(rule.keywords), rule) for rule in self.config.keyword_rules
        ]

    def classify(
        self,
        url: str,
        *,
        source_rule: str = "",
        identity_prefix_length: int = 30,
        stem_length: int = 20,
    ) -> MediaAsset:
        code = extract_format_code(url)
        profile = self.config.format_profiles.get(code) if code else None

        if profile is not None:
            quality, resolution, score = profile.quality, profile.resolution, profile.score
            content_type = self._content_type_for(profile)
            group = profile.group
        else:
            keyword = self.match_keyword(url)
            if keyword is not None:
                quality, resolution, score = keyword.quality, keyword.resolution, keyword.score
            else:
                quality = self.config.default_quality
                resolution = self.config.default_resolution
                score = self.config.default_score
            content_type = ContentType(has_video=True, has_audio=True, description="Video + Audio")
            group = self.format_group(url)

        return MediaAsset(
            url=url,
            quality=quality,
            resolution=resolution,
            format=self.detect_format(url),
            content_type=content_type,
            estimated_size=self.config.size_estimates.get(quality, "Unknown"),
            quality_score=score,
            base_identity=extract_base_identity(url, identity_prefix_length, stem_length),
            format_code=code,
            format_group=group,
            source_rule=source_rule,
        )

    def match_keyword(self, url: str) -> KeywordRule | None:
        lowered = url.lower()
        for pattern, rule in self._keyword_rules:
            if pattern.search(lowered):
                return rule
        return None

    def is_high_confidence(self, url: str) -> bool:
        code = extract_format_code(url)
        profile = self.config.format_profiles.get(code) if code else None
        return bool(profile and profile.high_confidence)

    @staticmethod
    def detect_format(url: str) -> str:
        try:
            path = urlsplit(url).path.lower()
        except ValueError:
            path = url.lower()
        for extension, label in _EXTENSION_FORMATS:
            if path.endswith(extension):
                return label
        return "MP4"

    def format_group(self, url: str) -> str:
        """Diversity bucket for URLs without a known format code."""
        keyword = self.match_keyword(url)
        if keyword is None:
            return "other"
        return f"{keyword.quality.lower()}-{keyword.resolution.rstrip('p')}"

    @staticmethod
    def _content_type_for(profile: FormatProfile) -> ContentType:
        return ContentType(has_video=True, has_audio=profile.has_audio, description=profile.description)
