"""
Extraction pipeline orchestration for MediaSift.

Stages run in a fixed order, each a function of the previous stage's output:

    normalize -> scan -> admit -> classify -> collapse groups
              -> contextual filter -> rank and cap
              -> raw source rescan, only when nothing is left

Everything created during a call is local to that call, so one pipeline
instance can serve concurrent requests from worker threads.
"""

from __future__ import annotations

import time
from typing import Callable

import structlog

from mediasift.config import Config
from mediasift.dedup.grouping import admit_candidates, collapse_groups
from mediasift.exceptions import ConfigurationError, ExtractionError
from mediasift.extractor.classifier import MediaClassifier
from mediasift.extractor.models import CandidateAsset, ExtractionResult, MediaAsset
from mediasift.extractor.normalizer import normalize_text
from mediasift.extractor.rules import FALLBACK_RULES, PRIMARY_RULES, PatternRule, compile_rule, sort_rules
from mediasift.extractor.scanner import CandidateScanner
from mediasift.extractor.validator import UrlValidator
from mediasift.filtering.context import ContextualFilter
from mediasift.observability.metrics import METRICS
from mediasift.ranking.ranker import rank_assets

logger = structlog.get_logger(__name__)


class ExtractionPipeline:
    """
    Turns one raw document into a ranked, capped list of media assets.

    Construction validates the configuration and compiles every rule; a bad
    rule or pattern raises ConfigurationError here rather than mid-request.
    """

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or Config()
        self.logger = logger.bind(component="pipeline")

        try:
            self.validator = UrlValidator(self.config.validation)
            self.classifier = MediaClassifier(self.config.classification)
        except Exception as e:
            raise ConfigurationError(f"Invalid pipeline configuration: {e}") from e

        self.scanner = CandidateScanner(
            self.config.scanner,
            primary_rules=self._build_primary_rules(),
            fallback_rules=FALLBACK_RULES,
        )
        high_confidence = [
            code for code, profile in self.config.classification.format_profiles.items() if profile.high_confidence
        ]
        self.context_filter = ContextualFilter(self.config.context, high_confidence_codes=high_confidence)

    def _build_primary_rules(self) -> tuple[PatternRule, ...]:
        extra = [
            compile_rule(
                spec.rule_id,
                spec.pattern,
                group=spec.group,
                priority=spec.priority,
                bypass_validator=spec.bypass_validator,
                ignore_case=spec.ignore_case,
            )
            for spec in self.config.scanner.extra_rules
        ]
        rules = sort_rules([*PRIMARY_RULES, *extra])
        ids = [rule.rule_id for rule in rules]
        duplicates = sorted({rule_id for rule_id in ids if ids.count(rule_id) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate rule ids: {', '.join(duplicates)}")
        return rules

    def extract(self, document: str) -> ExtractionResult:
        """
        Run every stage over ``document``.

        An empty result is a normal outcome. Any unexpected failure is logged
        and re-raised as a single ExtractionError.
        """
        started = time.perf_counter()
        try:
            result = self._run(document)
        except Exception as e:
            METRICS["extractions"].labels(outcome="error").inc()
            self.logger.exception("Extraction failed", error=str(e))
            raise ExtractionError() from e
        finally:
            METRICS["extraction_duration"].observe(time.perf_counter() - started)

        METRICS["extractions"].labels(outcome="found" if result.assets else "empty").inc()
        self.logger.info(
            "Extraction complete",
            document_length=len(document),
            total_found=result.total_found,
            returned=result.count,
            fallback_used=result.fallback_used,
            relaxed=result.relaxed,
            raw_rescan_used=result.raw_rescan_used,
        )
        return result

    def _run(self, document: str) -> ExtractionResult:
        if not isinstance(document, str):
            raise TypeError(f"document must be str, not {type(document).__name__}")

        text = normalize_text(document)
        is_valid: Callable[[str], bool] = self.validator.is_valid
        scanner_config = self.config.scanner

        admitted, seen = admit_candidates(self.scanner.scan(text), frozenset(), is_valid)

        fallback_used = False
        if not admitted and scanner_config.enable_fallback:
            fallback_used = True
            admitted, seen = admit_candidates(self.scanner.scan_fallback(text), seen, is_valid)
            self.logger.debug("Fallback scan finished", admitted=len(admitted))

        if scanner_config.enable_structured_walkers:
            walked, seen = admit_candidates(self.scanner.walk_structured(document, is_valid), seen, is_valid)
            admitted = admitted + walked

        assets = self.classify(admitted)
        METRICS["candidates"].labels(stage="admitted").inc(len(assets))

        collapsed = collapse_groups(assets, self.config.grouping)
        METRICS["candidates"].labels(stage="grouped").inc(len(collapsed))

        outcome = self.context_filter.apply(collapsed, text)
        METRICS["candidates"].labels(stage="filtered").inc(len(outcome.assets))

        ranked = rank_assets(outcome.assets, self.config.ranking)

        raw_rescan_used = False
        if not ranked and scanner_config.enable_raw_rescan:
            raw_rescan_used = True
            ranked = self._rescan_raw(document)
            self.logger.debug("Raw source rescan finished", returned=len(ranked))
        METRICS["candidates"].labels(stage="returned").inc(len(ranked))

        return ExtractionResult(
            assets=tuple(ranked),
            total_found=len(assets),
            fallback_used=fallback_used,
            relaxed=outcome.relaxed,
            raw_rescan_used=raw_rescan_used,
        )

    def _rescan_raw(self, document: str) -> list[MediaAsset]:
        # Last resort: fully validated URLs only, grouped and ranked but not
        # cross-referenced against the page context.
        admitted, _ = admit_candidates(self.scanner.scan_raw(document), frozenset(), self.validator.is_valid)
        collapsed = collapse_groups(self.classify(admitted), self.config.grouping)
        return rank_assets(collapsed, self.config.ranking)

    def classify(self, candidates: list[CandidateAsset]) -> list[MediaAsset]:
        grouping = self.config.grouping
        return [
            self.classifier.classify(
                candidate.url,
                source_rule=candidate.source_rule,
                identity_prefix_length=grouping.identity_prefix_length,
                stem_length=grouping.stem_length,
            )
            for candidate in candidates
        ]


def extract_media(document: str, config: Config | None = None) -> ExtractionResult:
    """Convenience wrapper building a one-off pipeline."""
    return ExtractionPipeline(config).extract(document)
