"""
Ranking and capping of the final result list.
"""

from __future__ import annotations

from typing import Sequence

from mediasift.config import RankingConfig
from mediasift.extractor.models import MediaAsset


def rank_assets(assets: Sequence[MediaAsset], config: RankingConfig | None = None) -> list[MediaAsset]:
    """
    Stable sort by descending quality score, then cap.

    Equal scores keep discovery order. Above ``diversity_threshold`` results,
    at most ``per_format_limit`` assets per format group are kept before the
    global cap so one encoding family cannot crowd out the rest.
    """
    config = config or RankingConfig()
    ranked = sorted(assets, key=lambda asset: asset.quality_score, reverse=True)

    if len(ranked) <= config.result_cap:
        return ranked

    if len(ranked) > config.diversity_threshold:
        ranked = limit_per_group(ranked, config.per_format_limit)

    return ranked[: config.result_cap]


def limit_per_group(ranked: Sequence[MediaAsset], per_group: int) -> list[MediaAsset]:
    """Keep the first ``per_group`` assets of each format group, preserving order."""
    taken: dict[str, int] = {}
    kept: list[MediaAsset] = []
    for asset in ranked:
        count = taken.get(asset.format_group, 0)
        if count < per_group:
            taken[asset.format_group] = count + 1
            kept.append(asset)
    return kept
