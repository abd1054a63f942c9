"""
Configuration management for MediaSift using Pydantic.
"""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, cast

import yaml
from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

# --- Setup Logging ---
log = logging.getLogger(__name__)


def _check_pattern(value: str) -> str:
    try:
        re.compile(value)
    except re.error as e:
        raise ValueError(f"invalid regular expression {value!r}: {e}") from e
    return value


# --- Nested Configuration Models ---


class RuleSpec(BaseModel):
    """A user-supplied scanner rule."""

    rule_id: str
    pattern: str
    group: Optional[int] = Field(default=1, ge=0, description="Capture group to extract. None for the whole match.")
    priority: int = Field(default=500, description="Lower priorities run first.")
    bypass_validator: bool = False
    ignore_case: bool = False

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        return _check_pattern(v)


class ScannerConfig(BaseModel):
    """Candidate scanner configuration."""

    enable_fallback: bool = Field(default=True, description="Run the broad rules when the primary scan admits nothing.")
    enable_structured_walkers: bool = Field(default=True, description="Walk JSON-LD, media elements and scripts.")
    enable_raw_rescan: bool = Field(
        default=True, description="Rescan the un-normalized source for quoted CDN URLs when nothing else survives."
    )
    permissive_bypass: bool = Field(
        default=True, description="Admit bypass-flagged matches that carry the CDN signature without validation."
    )
    bypass_host_tokens: List[str] = Field(default_factory=lambda: ["scontent"])
    bypass_host_domains: List[str] = Field(
        default_factory=lambda: ["fbcdn.net"], description="Bypass hosts must be subdomains of one of these."
    )
    bypass_extensions: List[str] = Field(default_factory=lambda: [".mp4"])
    script_keyword: str = Field(default="video", description="Inline scripts mentioning this are re-scanned.")
    extra_rules: List[RuleSpec] = Field(default_factory=list, description="Additional primary rules.")


class ValidationConfig(BaseModel):
    """Structural checks every admitted URL must pass."""

    min_length: int = Field(default=200, ge=1)
    playable_extensions: List[str] = Field(default_factory=lambda: [".mp4", ".m4v", ".mov"])
    host_pattern: str = Field(
        default=r"scontent[\w.-]*\.fna\.fbcdn\.net",
        description="Regular expression the whole hostname must match.",
    )
    media_path_segments: List[str] = Field(default_factory=lambda: ["/o1/v/", "/o2/v/"])
    min_hash_length: int = Field(default=40, ge=1)
    required_params: List[List[str]] = Field(
        default_factory=lambda: [["_nc_cat"], ["_nc_ht"], ["oh", "_nc_ohc"]],
        description="Each inner list is satisfied when any one of its query parameters is present.",
    )
    exclusion_markers: List[str] = Field(
        default_factory=lambda: [".mpd", ".m3u8", "segment", "manifest", "init.mp4", "dash", "fragment", "chunk"]
    )

    @field_validator("host_pattern")
    @classmethod
    def validate_host_pattern(cls, v: str) -> str:
        return _check_pattern(v)

    @field_validator("playable_extensions")
    @classmethod
    def validate_extensions(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("playable_extensions must contain at least one extension")
        return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in v]


class FormatProfile(BaseModel):
    """Known encoding profile behind a CDN format code."""

    resolution: str
    quality: str
    has_audio: bool = True
    score: int = Field(ge=0, le=100)
    high_confidence: bool = False
    group: str = "other"
    description: str = "Video + Audio"


class KeywordRule(BaseModel):
    """Quality keyword used when a URL carries no known format code."""

    keywords: List[str]
    quality: str
    resolution: str
    score: int = Field(ge=0, le=100)


def _default_format_profiles() -> Dict[str, FormatProfile]:
    high = "High Quality Video + Audio"
    return {
        "m412": FormatProfile(
            resolution="1080p+",
            quality="HD",
            score=100,
            high_confidence=True,
            group="hd-m412",
            description=high,
        ),
        "m540": FormatProfile(
            resolution="720p",
            quality="HD",
            score=100,
            high_confidence=True,
            group="hd-m540",
            description=high,
        ),
        "m720": FormatProfile(resolution="720p", quality="HD", score=100, group="hd-720", description=high),
        "m1080": FormatProfile(resolution="1080p", quality="HD", score=100, group="hd-1080", description=high),
        "m366": FormatProfile(
            resolution="480p",
            quality="SD",
            score=80,
            high_confidence=True,
            group="sd-m366",
            description="Standard Quality Video + Audio",
        ),
        "m78": FormatProfile(
            resolution="720p+",
            quality="HD",
            score=60,
            group="audio-m78",
            description="Audio Optimized Video",
        ),
        # Seen both as muxed and as video-only renditions; treated as video-only.
        "m69": FormatProfile(
            resolution="360p",
            quality="Low",
            has_audio=False,
            score=20,
            group="low-m69",
            description="Video Only (Low Quality)",
        ),
    }


def _default_keyword_rules() -> List[KeywordRule]:
    return [
        KeywordRule(keywords=["4k", "2160p"], quality="4K", resolution="2160p", score=95),
        KeywordRule(keywords=["2k", "1440p"], quality="2K", resolution="1440p", score=92),
        KeywordRule(keywords=["1080p", "1080", "hd"], quality="HD", resolution="1080p", score=90),
        KeywordRule(keywords=["720p", "720"], quality="HD", resolution="720p", score=85),
        KeywordRule(keywords=["480p", "480", "sd"], quality="SD", resolution="480p", score=70),
        KeywordRule(keywords=["360p", "360"], quality="Low", resolution="360p", score=50),
        KeywordRule(keywords=["240p", "240", "low"], quality="Low", resolution="240p", score=35),
    ]


class ClassificationConfig(BaseModel):
    """Quality tables used by the classifier."""

    format_profiles: Dict[str, FormatProfile] = Field(default_factory=_default_format_profiles)
    keyword_rules: List[KeywordRule] = Field(default_factory=_default_keyword_rules)
    default_score: int = Field(default=40, ge=0, le=100)
    default_quality: str = "Unknown Quality"
    default_resolution: str = "Auto"
    size_estimates: Dict[str, str] = Field(
        default_factory=lambda: {"4K": "~500MB", "2K": "~200MB", "HD": "~100MB", "SD": "~50MB", "Low": "~20MB"}
    )

    @field_validator("format_profiles")
    @classmethod
    def validate_codes(cls, v: Dict[str, FormatProfile]) -> Dict[str, FormatProfile]:
        for code in v:
            if not re.fullmatch(r"m\d+", code):
                raise ValueError(f"format code {code!r} must look like 'm<digits>'")
        return v


class GroupingConfig(BaseModel):
    """Same-asset clustering."""

    enabled: bool = True
    cluster_min_candidates: int = Field(default=2, ge=1, description="Cluster only when this many assets survive.")
    identity_prefix_length: int = Field(default=30, ge=1)
    stem_length: int = Field(default=20, ge=1)


class ContextConfig(BaseModel):
    """Contextual correlation against the surrounding document."""

    enabled: bool = True
    window_radius: int = Field(default=2000, ge=0, description="Characters kept on each side of a post marker.")
    min_document_id_length: int = Field(default=6, ge=1)
    min_hash_length: int = Field(default=30, ge=1)
    min_main_content_length: int = Field(default=300, ge=0, description="Main-content URLs must be longer than this.")
    required_params: List[List[str]] = Field(
        default_factory=lambda: [["_nc_cat"], ["efg"], ["oh", "_nc_ohc"], ["_nc_ht"]]
    )
    preview_markers: List[str] = Field(
        default_factory=lambda: ["preview", "thumb", "segment", "chunk", "short", "snippet", "dash", "manifest"]
    )
    relax_when_empty: bool = True


class RankingConfig(BaseModel):
    """Result ordering and capping."""

    result_cap: int = Field(default=15, ge=1)
    diversity_threshold: int = Field(default=20, ge=1, description="Above this many results, cap per format group.")
    per_format_limit: int = Field(default=3, ge=1)


class ServiceConfig(BaseModel):
    """HTTP service configuration."""

    host: str = Field(default="127.0.0.1", description="Host for the web server.")
    port: int = Field(default=3000, description="Port for the web server.")
    min_source_length: int = Field(default=1000, ge=0)
    max_source_length: int = Field(default=50 * 1024 * 1024, ge=1)
    html_markers: List[str] = Field(default_factory=lambda: ["<html", "<!DOCTYPE"])
    rate_limit_requests: int = Field(default=10, ge=1, description="Extraction requests allowed per window per IP.")
    rate_limit_window_seconds: int = Field(default=60, ge=1)
    trust_forwarded_for: bool = Field(
        default=False, description="Key rate limits on X-Forwarded-For. Enable only behind a trusted reverse proxy."
    )
    proxy_allowed_hosts: List[str] = Field(default_factory=lambda: ["fbcdn.net", "facebook.com"])
    proxy_timeout_seconds: float = Field(default=30.0, gt=0)
    proxy_user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
        ),
        description="User-Agent sent upstream by the playback proxy.",
    )
    proxy_referer: str = "https://www.facebook.com/"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator("max_source_length")
    @classmethod
    def validate_bounds(cls, v: int, info: ValidationInfo) -> int:
        minimum = info.data.get("min_source_length", 0)
        if v < minimum:
            raise ValueError("max_source_length must not be smaller than min_source_length")
        return v


class MonitoringConfig(BaseModel):
    """Configuration for logging and metrics."""

    enabled: bool = True
    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(default=None, description="Path to log file. If None, logs to console.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "MediaSift"
    version: str = "0.1.0"
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    grouping: GroupingConfig = Field(default_factory=GroupingConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="MEDIASIFT_", env_nested_delimiter="__", case_sensitive=False)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # MEDIASIFT_* variables override values read from a YAML file
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls()
        if not isinstance(yaml_data, dict):
            raise ValueError(f"Configuration file must contain a mapping at the top level: {path}")
        return cls(**yaml_data)


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    for path in (current_dir / "config.yaml", current_dir / "config.yml"):
        if path.exists():
            return path

    example_path = current_dir / "config.example.yaml"
    if example_path.exists():
        return example_path

    return None


def load_config(path: Path | None = None) -> Config:
    """Load from an explicit file, a discovered file, or defaults."""
    if path is not None:
        return Config.from_yaml(path)
    discovered = find_config_file()
    if discovered is not None:
        return Config.from_yaml(discovered)
    return Config()


# --- Lazy Configuration Loader ---


class LazyConfig:
    """
    A proxy for the Config object that delays its loading and validation
    until an attribute is first accessed, so a broken config file cannot
    crash the application on import.
    """

    _config: ClassVar[Config | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __getattr__(self, name: str) -> Any:
        if self.__class__._config is None:
            with self.__class__._lock:
                if self.__class__._config is None:
                    self.__class__._config = self._load_config_with_fallback()
        return getattr(self.__class__._config, name)

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._config = None

    def _load_config_with_fallback(self) -> Config:
        config_path = find_config_file()
        if config_path:
            try:
                log.info("Lazy loading configuration from: %s", config_path)
                return Config.from_yaml(config_path)
            except (ValueError, OSError, yaml.YAMLError) as e:
                log.error(
                    "Failed to load or validate configuration from '%s': %s. "
                    "Falling back to default settings. Please check your config file.",
                    config_path,
                    e,
                    exc_info=log.getEffectiveLevel() <= logging.DEBUG,
                )
        else:
            log.info("No config file found. Using default settings for lazy load.")

        try:
            return Config()
        except ValidationError as e:
            log.critical("FATAL: Default configuration is invalid: %s", e, exc_info=True)
            raise RuntimeError(f"Default configuration is invalid, cannot start: {e}") from e


# --- Global Settings Instance ---
settings: "Config" = cast("Config", LazyConfig())
