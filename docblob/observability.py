"""
Logging setup for applications embedding docblob.

The library itself only creates module loggers (logging.getLogger(__name__))
and attaches structured context through `extra`. Applications call
setup_logging() once at startup to route those records to stderr as plain
text or as JSON lines.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import ObservabilityConfig


def setup_logging(config: ObservabilityConfig | None = None) -> None:
    """Configure logging based on configuration.

    Args:
        config: Observability configuration (loaded from env if not provided)
    """
    config = config or ObservabilityConfig.from_env()
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)
