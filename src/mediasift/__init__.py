"""
MediaSift - playable media URL extraction from page sources.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config
from .exceptions import ConfigurationError, ExtractionError, MediaSiftError, SourceRejectedError
from .extractor.models import ExtractionResult, MediaAsset
from .pipeline import ExtractionPipeline, extract_media

__all__ = [
    "__version__",
    "Config",
    "ConfigurationError",
    "ExtractionError",
    "ExtractionPipeline",
    "ExtractionResult",
    "MediaAsset",
    "MediaSiftError",
    "SourceRejectedError",
    "extract_media",
]
