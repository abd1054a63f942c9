"""
Exact and same-asset deduplication.

Exact dedup threads an immutable seen-URL set through admission; each call
returns the updated set instead of mutating shared state. Cluster dedup
groups encodings of one asset by base identity and keeps a single
content-complete representative per group.
"""

from __future__ import annotations

from typing import Callable, Iterable, Sequence

import structlog

from mediasift.config import GroupingConfig
from mediasift.extractor.models import AssetGroup, CandidateAsset, MediaAsset

logger = structlog.get_logger(__name__)


def admit_candidates(
    candidates: Iterable[CandidateAsset],
    seen: frozenset[str],
    is_valid: Callable[[str], bool],
) -> tuple[list[CandidateAsset], frozenset[str]]:
    """
    Admit unseen candidates that carry the bypass flag or pass validation.

    Returns:
        The admitted candidates in discovery order and the extended seen set.
    """
    admitted: list[CandidateAsset] = []
    accumulated = set(seen)
    for candidate in candidates:
        if candidate.url in accumulated:
            continue
        if candidate.bypass_validator or is_valid(candidate.url):
            accumulated.add(candidate.url)
            admitted.append(candidate)
    return admitted, frozenset(accumulated)


def cluster_assets(assets: Iterable[MediaAsset]) -> list[AssetGroup]:
    """Group assets by base identity, in order of first appearance."""
    members: dict[str, list[MediaAsset]] = {}
    for asset in assets:
        members.setdefault(asset.base_identity, []).append(asset)
    return [AssetGroup(base_identity=key, members=tuple(group)) for key, group in members.items()]


def select_representative(group: AssetGroup) -> MediaAsset | None:
    """
    Highest-scoring member with both video and audio.

    Ties go to the earliest discovered member. A group without any
    content-complete member yields ``None``; a partial stream is never
    promoted in place of a rejected better version.
    """
    complete = [asset for asset in group.members if asset.content_type.is_complete]
    if not complete:
        return None
    return max(complete, key=lambda asset: asset.quality_score)


def collapse_groups(assets: Sequence[MediaAsset], config: GroupingConfig | None = None) -> list[MediaAsset]:
    """Replace each same-asset cluster with its representative."""
    config = config or GroupingConfig()
    if not config.enabled or len(assets) < config.cluster_min_candidates:
        return list(assets)

    groups = cluster_assets(assets)
    representatives = [select_representative(group) for group in groups]
    kept = [asset for asset in representatives if asset is not None]

    logger.debug(
        "Collapsed asset groups",
        assets=len(assets),
        groups=len(groups),
        dropped_groups=len(groups) - len(kept),
    )
    return kept
