from .ranker import limit_per_group, rank_assets

__all__ = ["limit_per_group", "rank_assets"]
