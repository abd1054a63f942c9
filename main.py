#!/usr/bin/env python3
"""
Production entry point for MediaSift.

``python main.py`` serves the web application; ``python main.py health``
builds the extraction pipeline from the active configuration and reports
whether it is usable, for container orchestration probes.
"""

from __future__ import annotations

import json
import os
import sys
import time
from pathlib import Path

import structlog
import uvicorn

from mediasift import __version__
from mediasift.config import Config, load_config
from mediasift.exceptions import MediaSiftError
from mediasift.observability import configure_logging
from mediasift.pipeline import ExtractionPipeline

logger = structlog.get_logger(__name__)


def _config_from_env() -> Config:
    config_path = os.getenv("MEDIASIFT_CONFIG")
    return load_config(Path(config_path) if config_path else None)


def health_check() -> dict:
    """Perform health check for container orchestration."""
    try:
        config = _config_from_env()
        ExtractionPipeline(config)
        return {"status": "healthy", "version": __version__, "timestamp": time.time()}
    except (MediaSiftError, ValueError, OSError) as e:
        return {"status": "unhealthy", "error": str(e), "timestamp": time.time()}


def serve() -> None:
    from mediasift.web.main import create_app

    config = _config_from_env()
    configure_logging(config.monitoring)
    logger.info("MediaSift production server starting", host=config.service.host, port=config.service.port)
    try:
        uvicorn.run(create_app(config), host=config.service.host, port=config.service.port, log_level="info")
    finally:
        logger.info("MediaSift production server stopped")


def main() -> None:
    """Main entry point."""
    if len(sys.argv) > 1 and sys.argv[1] == "health":
        health = health_check()
        print(json.dumps(health, indent=2))
        sys.exit(0 if health["status"] == "healthy" else 1)

    try:
        serve()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down")
    except Exception as e:
        logger.error("Unhandled exception in main", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
