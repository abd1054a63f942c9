"""Exact and same-asset deduplication."""

from .grouping import admit_candidates, cluster_assets, collapse_groups, select_representative

__all__ = ["admit_candidates", "cluster_assets", "collapse_groups", "select_representative"]
