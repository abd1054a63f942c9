"""
Contextual filtering of classified assets.

An asset survives when it correlates with the surrounding document (its
embedded numeric id is declared by the page, or its hash token appears near a
post/attachment marker) and it independently looks like main content rather
than a preview or segment. When correlation finds nothing, the filter relaxes
to the main-content test alone so a page without correlation markers still
yields its plausible assets.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Collection, Sequence
from urllib.parse import parse_qs, urlsplit

import structlog

from mediasift.config import ContextConfig
from mediasift.extractor.models import MediaAsset

logger = structlog.get_logger(__name__)

POST_MARKERS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern)
    for pattern in (
        r'"video_post"',
        r'"story_attachment"',
        r'"attachment":\s*\{[^}]*"video"',
        r'"media":\s*\{[^}]*"video"',
        r'"video_id":\s*"[^"]+"',
        r'"playable_url":"[^"]+"',
        r'"playable_url_quality_hd":"[^"]+"',
        r'"browser_native_hd_url":"[^"]+"',
        r'"browser_native_sd_url":"[^"]+"',
        r'"permalink_url":"[^"]+"',
        r'"permalinkUrl":"[^"]+"',
    )
)

DOCUMENT_ID_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern)
    for pattern in (
        r'"video_id":"(\d+)"',
        r'"videoId":"(\d+)"',
        r'"id":"(\d+)","is_video":true',
        r'data-video-id="(\d+)"',
    )
)

URL_ID_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"/videos/(\d+)"),
    re.compile(r"video_id=(\d+)"),
)


@dataclass(slots=True, frozen=True)
class DocumentContext:
    """Identity markers extracted once per document."""

    text: str
    identifiers: frozenset[str]
    windows: tuple[tuple[int, int], ...]

    def window_contains(self, token: str) -> bool:
        if not token:
            return False
        return any(self.text.find(token, start, end) != -1 for start, end in self.windows)


@dataclass(slots=True, frozen=True)
class FilterOutcome:
    assets: tuple[MediaAsset, ...]
    relaxed: bool = False


def build_context(text: str, config: ContextConfig | None = None) -> DocumentContext:
    config = config or ContextConfig()

    identifiers = {
        match.group(1)
        for pattern in DOCUMENT_ID_PATTERNS
        for match in pattern.finditer(text)
        if len(match.group(1)) >= config.min_document_id_length
    }

    raw_windows = sorted(
        (max(0, match.start() - config.window_radius), min(len(text), match.start() + config.window_radius))
        for pattern in POST_MARKERS
        for match in pattern.finditer(text)
    )
    windows: list[tuple[int, int]] = []
    for start, end in raw_windows:
        if windows and start <= windows[-1][1]:
            windows[-1] = (windows[-1][0], max(end, windows[-1][1]))
        else:
            windows.append((start, end))

    return DocumentContext(text=text, identifiers=frozenset(identifiers), windows=tuple(windows))


class ContextualFilter:
    """Correlates assets with document identity markers."""

    def __init__(self, config: ContextConfig | None = None, high_confidence_codes: Collection[str] = ()) -> None:
        self.config = config or ContextConfig()
        self.high_confidence_codes = frozenset(high_confidence_codes)
        self._hash_pattern = re.compile(rf"/([A-Za-z0-9_-]{{{self.config.min_hash_length},}})\.")
        self._preview_markers = tuple(marker.lower() for marker in self.config.preview_markers)
        self.logger = logger.bind(component="context_filter")

    def apply(self, assets: Sequence[MediaAsset], text: str) -> FilterOutcome:
        if not self.config.enabled or not assets:
            return FilterOutcome(assets=tuple(assets))

        context = build_context(text, self.config)
        main_content = [asset for asset in assets if self.is_main_content(asset)]
        correlated = [asset for asset in main_content if self.correlates(asset, context)]

        self.logger.debug(
            "Contextual filtering",
            candidates=len(assets),
            main_content=len(main_content),
            correlated=len(correlated),
            document_ids=len(context.identifiers),
            windows=len(context.windows),
        )

        if correlated or not self.config.relax_when_empty:
            return FilterOutcome(assets=tuple(correlated))

        if main_content:
            self.logger.info("No correlated assets, relaxing to main-content test", kept=len(main_content))
        return FilterOutcome(assets=tuple(main_content), relaxed=True)

    def correlates(self, asset: MediaAsset, context: DocumentContext) -> bool:
        url_id = extract_url_identifier(asset.url)
        if url_id is not None and url_id in context.identifiers:
            return True
        return context.window_contains(self.extract_hash(asset.url))

    def is_main_content(self, asset: MediaAsset) -> bool:
        """Standalone playable asset, as opposed to a preview or segment."""
        if asset.format_code not in self.high_confidence_codes:
            return False
        if len(asset.url) <= self.config.min_main_content_length:
            return False
        lowered = asset.url.lower()
        if any(marker in lowered for marker in self._preview_markers):
            return False
        try:
            present = parse_qs(urlsplit(asset.url).query, keep_blank_values=True).keys()
        except ValueError:
            return False
        return all(any(name in present for name in group) for group in self.config.required_params)

    def extract_hash(self, url: str) -> str:
        match = self._hash_pattern.search(url)
        return match.group(1) if match else ""


def extract_url_identifier(url: str) -> str | None:
    for pattern in URL_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None
