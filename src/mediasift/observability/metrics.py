"""
Defines the Prometheus metrics exported by MediaSift.
"""

from __future__ import annotations

from typing import Any, Dict

from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Histogram as _OrigHistogram

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Module reloads in the test suite would otherwise fail with duplicate
# registration errors.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            return _PROM_REGISTRY._names_to_collectors[name]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    return {
        "extractions": Counter(
            "mediasift_extractions_total",
            "Extraction calls by outcome",
            ["outcome"],
        ),
        "candidates": Counter(
            "mediasift_candidates_total",
            "Assets surviving each pipeline stage",
            ["stage"],
        ),
        "extraction_duration": Histogram(
            "mediasift_extraction_duration_seconds",
            "Wall-clock time of one extraction call",
            buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        ),
        "source_bytes": Histogram(
            "mediasift_source_length_chars",
            "Length of submitted documents",
            buckets=(1e3, 1e4, 1e5, 1e6, 5e6, 1e7, 5e7),
        ),
        "rejections": Counter(
            "mediasift_http_rejections_total",
            "Requests rejected by the HTTP layer",
            ["reason"],
        ),
        "proxy_requests": Counter(
            "mediasift_proxy_requests_total",
            "Playback proxy requests by upstream status class",
            ["status"],
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()
