"""Configuration models and loaders."""

from .config import (
    ClassificationConfig,
    Config,
    ContextConfig,
    FormatProfile,
    GroupingConfig,
    KeywordRule,
    LazyConfig,
    MonitoringConfig,
    RankingConfig,
    RuleSpec,
    ScannerConfig,
    ServiceConfig,
    ValidationConfig,
    find_config_file,
    load_config,
    settings,
)

__all__ = [
    "ClassificationConfig",
    "Config",
    "ContextConfig",
    "FormatProfile",
    "GroupingConfig",
    "KeywordRule",
    "LazyConfig",
    "MonitoringConfig",
    "RankingConfig",
    "RuleSpec",
    "ScannerConfig",
    "ServiceConfig",
    "ValidationConfig",
    "find_config_file",
    "load_config",
    "settings",
]
