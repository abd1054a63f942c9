"""Logging and metrics."""

from .logging import configure_logging
from .metrics import METRICS

__all__ = ["configure_logging", "METRICS"]
