"""
Data models for the extraction pipeline.

Each stage hands the next one a typed, immutable value:
CandidateAsset -> MediaAsset -> AssetGroup -> ExtractionResult.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class CandidateAsset:
    """A decoded URL produced by the scanner, not yet admitted."""

    url: str
    source_rule: str
    bypass_validator: bool = False

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("Candidate URL cannot be empty")


@dataclass(slots=True, frozen=True)
class ContentType:
    """Video/audio presence of an asset."""

    has_video: bool
    has_audio: bool
    description: str

    @property
    def is_complete(self) -> bool:
        return self.has_video and self.has_audio


@dataclass(slots=True, frozen=True)
class MediaAsset:
    """A classified, admitted media URL."""

    url: str
    quality: str
    resolution: str
    format: str
    content_type: ContentType
    estimated_size: str
    quality_score: int
    base_identity: str
    format_code: str | None = None
    format_group: str = "other"
    source_rule: str = ""

    def __post_init__(self) -> None:
        if not (0 <= self.quality_score <= 100):
            raise ValueError("Quality score must be between 0 and 100")

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the shape returned by the HTTP API."""
        return {
            "url": self.url,
            "quality": self.quality,
            "type": self.format,
            "size": self.estimated_size,
            "contentType": {
                "hasVideo": self.content_type.has_video,
                "hasAudio": self.content_type.has_audio,
                "description": self.content_type.description,
            },
            "hasVideo": self.content_type.has_video,
            "hasAudio": self.content_type.has_audio,
            "resolution": self.resolution,
            "qualityScore": self.quality_score,
            "baseIdentity": self.base_identity,
            "formatCode": self.format_code,
            "thumbnail": None,
        }


@dataclass(slots=True, frozen=True)
class AssetGroup:
    """Variants of one underlying asset, in discovery order."""

    base_identity: str
    members: tuple[MediaAsset, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class ExtractionResult:
    """Outcome of one extraction call."""

    assets: tuple[MediaAsset, ...]
    total_found: int
    fallback_used: bool = False
    relaxed: bool = False
    raw_rescan_used: bool = False

    @property
    def count(self) -> int:
        return len(self.assets)

    @property
    def urls(self) -> list[str]:
        return [asset.url for asset in self.assets]
