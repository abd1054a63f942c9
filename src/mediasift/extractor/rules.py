"""
Declarative pattern rule tables for the candidate scanner.

A rule names the capture to extract (``group=None`` means the whole match),
its evaluation priority (lower runs first) and whether a match may skip the
general validator. Only the permissive CDN rule sets ``bypass_validator``;
the scanner still requires its matches to carry the bypass signature.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from mediasift.exceptions import ConfigurationError


@dataclass(slots=True, frozen=True)
class PatternRule:
    """One scanner rule."""

    rule_id: str
    pattern: re.Pattern[str]
    group: int | None = 1
    priority: int = 100
    bypass_validator: bool = False

    def extract(self, match: re.Match[str]) -> str:
        if self.group is None:
            return match.group(0)
        return match.group(self.group) or ""


def compile_rule(
    rule_id: str,
    source: str,
    *,
    group: int | None = 1,
    priority: int = 100,
    bypass_validator: bool = False,
    ignore_case: bool = False,
) -> PatternRule:
    """Compile a rule, turning regex errors into ConfigurationError."""
    try:
        pattern = re.compile(source, re.IGNORECASE if ignore_case else 0)
    except re.error as e:
        raise ConfigurationError(f"Rule '{rule_id}' has an invalid pattern: {e}") from e

    if group is not None and group > pattern.groups:
        raise ConfigurationError(
            f"Rule '{rule_id}' extracts group {group} but the pattern only has {pattern.groups} group(s)"
        )
    return PatternRule(
        rule_id=rule_id,
        pattern=pattern,
        group=group,
        priority=priority,
        bypass_validator=bypass_validator,
    )


def sort_rules(rules: Iterable[PatternRule]) -> tuple[PatternRule, ...]:
    """Order rules by priority. Ties keep their table order."""
    return tuple(sorted(rules, key=lambda rule: rule.priority))


def _json_field(name: str, priority: int) -> PatternRule:
    return compile_rule(name, rf'"{name}":"([^"]+)"', priority=priority)


# --- Primary rules ---

_MP4_URL_TAIL = r"\.mp4(?:\?[^\"'\s]*)?"

PRIMARY_RULES: tuple[PatternRule, ...] = sort_rules(
    [
        # Player payload fields
        _json_field("hd_src", 10),
        _json_field("sd_src", 11),
        _json_field("hd_src_no_ratelimit", 12),
        _json_field("sd_src_no_ratelimit", 13),
        _json_field("playable_url", 20),
        _json_field("playable_url_quality_hd", 21),
        _json_field("browser_native_hd_url", 22),
        _json_field("browser_native_sd_url", 23),
        _json_field("playback_url", 30),
        _json_field("video_url", 31),
        _json_field("videoUrl", 32),
        _json_field("videoSrc", 33),
        _json_field("playbackUrl", 34),
        _json_field("download_url", 35),
        # Progressive representations
        compile_rule("progressive", r'"progressive":\[.*?"url":"([^"]+)".*?\]', priority=40),
        compile_rule("quality_url", r'"url":"([^"]+)"[^}]*"quality":"[^"]*"', priority=41),
        # Bare URLs in the text
        compile_rule("direct_mp4", r"https://[^\"'\s]*" + _MP4_URL_TAIL, group=None, priority=50),
        compile_rule("scontent_mp4", r"https://[^\"'\s]*scontent[^\"'\s]*" + _MP4_URL_TAIL, group=None, priority=51),
        compile_rule("fbcdn_mp4", r"https://[^\"'\s]*fbcdn[^\"'\s]*" + _MP4_URL_TAIL, group=None, priority=52),
        # Generic JSON keys and attributes
        compile_rule("json_src", r'"src":\s*"([^"]*\.mp4[^"]*)"', priority=60),
        compile_rule("json_source", r'"source":\s*"([^"]*\.mp4[^"]*)"', priority=61),
        compile_rule("json_video", r'"video":\s*"([^"]*\.mp4[^"]*)"', priority=62),
        compile_rule("data_src_attr", r"data-src=['\"]([^'\"]*\.mp4[^'\"]*)['\"]", priority=70),
        compile_rule("src_attr", r"src=['\"]([^'\"]*\.mp4[^'\"]*)['\"]", priority=71),
        # Quoted CDN URLs; admitted on the bypass signature alone
        compile_rule(
            "quoted_cdn_mp4",
            r'"(https?://[^"]*scontent[^"]*\.mp4[^"]*)"',
            priority=1000,
            bypass_validator=True,
        ),
    ]
)


# --- Fallback rules ---

_PLAYABLE = r"\.(?:mp4|m4v|mov)"
_URL_CHARS = r"[^\s\"'<>]*"

FALLBACK_RULES: tuple[PatternRule, ...] = sort_rules(
    [
        compile_rule(
            "any_playable",
            rf"https?://{_URL_CHARS}{_PLAYABLE}{_URL_CHARS}",
            group=None,
            priority=10,
            ignore_case=True,
        ),
        compile_rule(
            "video_path_playable",
            rf"https?://{_URL_CHARS}video{_URL_CHARS}{_PLAYABLE}{_URL_CHARS}",
            group=None,
            priority=11,
            ignore_case=True,
        ),
        compile_rule(
            "cdn_playable",
            rf"https?://{_URL_CHARS}(?:scontent|fbcdn){_URL_CHARS}{_PLAYABLE}{_URL_CHARS}",
            group=None,
            priority=12,
            ignore_case=True,
        ),
        compile_rule("double_quoted_playable", rf'"(https?://[^"]*{_PLAYABLE}[^"]*)"', priority=20, ignore_case=True),
        compile_rule("single_quoted_playable", rf"'(https?://[^']*{_PLAYABLE}[^']*)'", priority=21, ignore_case=True),
    ]
)


# --- Raw source rescan ---

# Runs over the un-normalized document once every other stage came up empty.
# Slashes may still be JSON-escaped there.
RAW_SOURCE_RULES: tuple[PatternRule, ...] = (
    compile_rule(
        "raw_quoted_cdn_mp4",
        r"[\"'](https?:(?:\\?/){2}[^\"']*scontent[^\"']*\.mp4[^\"']*)[\"']",
        priority=10,
        ignore_case=True,
    ),
)


def rule_ids(rules: Sequence[PatternRule]) -> list[str]:
    return [rule.rule_id for rule in rules]
