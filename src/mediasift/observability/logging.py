"""
Configures structured logging for the application using structlog.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any, List, Optional, TextIO

import structlog

if TYPE_CHECKING:
    from mediasift.config import MonitoringConfig


def configure_logging(config: MonitoringConfig, stream: Optional[TextIO] = None) -> None:
    """
    Routes stdlib logging and structlog through one renderer.

    JSON lines go to ``config.log_file`` when set; otherwise a coloured
    console renderer writes to ``stream`` (stdout by default). Values bound
    with ``structlog.contextvars`` (the HTTP request id) are merged into
    every event.
    """
    shared_processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    handler: logging.Handler
    if config.log_file:
        handler = logging.FileHandler(config.log_file)
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        handler = logging.StreamHandler(stream or sys.stdout)
        renderer = structlog.dev.ConsoleRenderer(colors=stream is None)

    logging.basicConfig(
        format="%(message)s",
        level=config.log_level.upper(),
        handlers=[handler],
        force=True,
    )

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger("mediasift.logging")
    logger.debug("Logging configured", level=config.log_level, output=config.log_file or "console")
