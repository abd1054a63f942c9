"""
Candidate scanning over normalized document text.

The scanner only proposes candidates. Admission (deduplication plus either
the bypass signature or full validation) happens in the pipeline so that the
seen-URL accumulator stays explicit.
"""

from __future__ import annotations

import bisect
import json
import re
from typing import Any, Callable, Iterable, Sequence

import structlog
from selectolax.parser import HTMLParser

from mediasift.config import ScannerConfig

from .models import CandidateAsset
from .normalizer import decode_candidate, normalize_text
from .rules import FALLBACK_RULES, PRIMARY_RULES, RAW_SOURCE_RULES, PatternRule
from .validator import matches_bypass_signature

logger = structlog.get_logger(__name__)

_MANIFEST_BLOCKS = (
    re.compile(r"<MPD\b.*?</MPD>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<BaseURL>.*?</BaseURL>", re.IGNORECASE | re.DOTALL),
)


def _decode_raw_match(raw: str) -> str | None:
    return decode_candidate(normalize_text(raw))


class ManifestSpans:
    """
    Sorted, merged character ranges covered by embedded streaming manifests.

    Only closed blocks count. A lone opening tag hides nothing; fragments
    that still carry manifest markup are dropped by ``decode_candidate``.
    """

    def __init__(self, text: str) -> None:
        raw = sorted(match.span() for pattern in _MANIFEST_BLOCKS for match in pattern.finditer(text))
        merged: list[tuple[int, int]] = []
        for start, end in raw:
            if merged and start <= merged[-1][1]:
                merged[-1] = (merged[-1][0], max(end, merged[-1][1]))
            else:
                merged.append((start, end))
        self._spans = merged
        self._starts = [start for start, _ in merged]

    def __len__(self) -> int:
        return len(self._spans)

    def overlaps(self, start: int, end: int) -> bool:
        if not self._spans:
            return False
        index = bisect.bisect_right(self._starts, start) - 1
        if index >= 0 and self._spans[index][1] > start:
            return True
        following = index + 1
        return following < len(self._spans) and self._spans[following][0] < end


class CandidateScanner:
    """
    Applies prioritized pattern rules and structured-data walkers.

    Rules run in ascending priority. Matches overlapping an embedded manifest
    are discarded before decoding, so manifest fragments never become
    candidates.
    """

    def __init__(
        self,
        config: ScannerConfig | None = None,
        primary_rules: Sequence[PatternRule] = PRIMARY_RULES,
        fallback_rules: Sequence[PatternRule] = FALLBACK_RULES,
        raw_rules: Sequence[PatternRule] = RAW_SOURCE_RULES,
    ) -> None:
        self.config = config or ScannerConfig()
        self.primary_rules = tuple(sorted(primary_rules, key=lambda rule: rule.priority))
        self.fallback_rules = tuple(sorted(fallback_rules, key=lambda rule: rule.priority))
        self.raw_rules = tuple(sorted(raw_rules, key=lambda rule: rule.priority))
        self.logger = logger.bind(component="scanner")

    def scan(self, text: str, *, allow_bypass: bool = True) -> list[CandidateAsset]:
        """Run the primary rule table over normalized text."""
        return self._apply(self.primary_rules, text, allow_bypass=allow_bypass)

    def scan_fallback(self, text: str) -> list[CandidateAsset]:
        """Run the broader fallback table once over normalized text."""
        return self._apply(self.fallback_rules, text, allow_bypass=False)

    def scan_raw(self, document: str) -> list[CandidateAsset]:
        """
        Run the raw-source rules over the un-normalized document.

        Escapes are decoded per match instead of over the whole text, so a
        quoted URL is matched with the quoting it had in the page.
        """
        return self._apply(self.raw_rules, document, allow_bypass=False, decode=_decode_raw_match)

    def walk_structured(self, document: str, is_valid: Callable[[str], bool]) -> list[CandidateAsset]:
        """
        Collect candidates from the parsed document.

        Covers JSON-LD blocks, ``<video>``/``<source>`` elements and inline
        scripts that mention the configured keyword. Unparseable blocks are
        skipped.
        """
        if not document:
            return []

        tree = HTMLParser(document)
        candidates: list[CandidateAsset] = []
        candidates.extend(self._walk_media_elements(tree))
        candidates.extend(self._walk_scripts(tree))
        candidates.extend(self._walk_linked_data(tree, is_valid))
        return candidates

    # --- Rule application ---

    def _apply(
        self,
        rules: Iterable[PatternRule],
        text: str,
        *,
        allow_bypass: bool,
        decode: Callable[[str], str | None] = decode_candidate,
    ) -> list[CandidateAsset]:
        if not text:
            return []

        manifests = ManifestSpans(text)
        candidates: list[CandidateAsset] = []
        for rule in rules:
            matched = 0
            for match in rule.pattern.finditer(text):
                if manifests.overlaps(*match.span()):
                    continue
                url = decode(rule.extract(match))
                if url is None:
                    continue
                matched += 1
                candidates.append(
                    CandidateAsset(
                        url=url,
                        source_rule=rule.rule_id,
                        bypass_validator=allow_bypass and self._qualifies_for_bypass(rule, url),
                    )
                )
            if matched:
                self.logger.debug("Rule matched", rule=rule.rule_id, matches=matched)

        if manifests:
            self.logger.debug("Skipped embedded manifests", spans=len(manifests))
        return candidates

    def _qualifies_for_bypass(self, rule: PatternRule, url: str) -> bool:
        if not (rule.bypass_validator and self.config.permissive_bypass):
            return False
        return matches_bypass_signature(
            url,
            self.config.bypass_host_tokens,
            self.config.bypass_extensions,
            self.config.bypass_host_domains,
        )

    # --- Structured walkers ---

    def _walk_media_elements(self, tree: HTMLParser) -> list[CandidateAsset]:
        found: list[CandidateAsset] = []
        for selector in ("video[src]", "video source[src]"):
            for node in tree.css(selector):
                url = decode_candidate(node.attributes.get("src") or "")
                if url is not None:
                    found.append(CandidateAsset(url=url, source_rule=f"element:{selector}"))
        return found

    def _walk_scripts(self, tree: HTMLParser) -> list[CandidateAsset]:
        found: list[CandidateAsset] = []
        keyword = self.config.script_keyword
        for node in tree.css("script"):
            if (node.attributes.get("type") or "").lower() == "application/ld+json":
                continue
            content = node.text(deep=True)
            if not content or keyword not in content:
                continue
            for candidate in self.scan(normalize_text(content), allow_bypass=False):
                found.append(CandidateAsset(url=candidate.url, source_rule=f"script:{candidate.source_rule}"))
        return found

    def _walk_linked_data(self, tree: HTMLParser, is_valid: Callable[[str], bool]) -> list[CandidateAsset]:
        found: list[CandidateAsset] = []
        for node in tree.css('script[type="application/ld+json"]'):
            raw = node.text(deep=True)
            if not raw or not raw.strip():
                continue
            try:
                data = json.loads(raw)
            except (ValueError, RecursionError) as e:
                self.logger.debug("Skipping malformed JSON-LD block", error=str(e))
                continue
            for value in iter_strings(data):
                if is_valid(value):
                    found.append(CandidateAsset(url=value, source_rule="json_ld"))
        return found


def iter_strings(data: Any) -> Iterable[str]:
    """Yield every string value in a decoded JSON graph, depth first."""
    stack: list[Any] = [data]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            yield item
        elif isinstance(item, dict):
            stack.extend(reversed(list(item.values())))
        elif isinstance(item, list):
            stack.extend(reversed(item))
