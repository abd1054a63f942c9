"""
Candidate discovery, validation and classification.
"""

from .classifier import MediaClassifier, extract_base_identity, extract_format_code
from .models import AssetGroup, CandidateAsset, ContentType, ExtractionResult, MediaAsset
from .normalizer import decode_candidate, normalize_text
from .rules import FALLBACK_RULES, PRIMARY_RULES, PatternRule, compile_rule
from .scanner import CandidateScanner
from .validator import UrlValidator, matches_bypass_signature

__all__ = [
    "AssetGroup",
    "CandidateAsset",
    "CandidateScanner",
    "ContentType",
    "ExtractionResult",
    "FALLBACK_RULES",
    "MediaAsset",
    "MediaClassifier",
    "PRIMARY_RULES",
    "PatternRule",
    "UrlValidator",
    "compile_rule",
    "decode_candidate",
    "extract_base_identity",
    "extract_format_code",
    "matches_bypass_signature",
    "normalize_text",
]
