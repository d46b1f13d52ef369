#!/usr/bin/env python3
"""
StatusLight - Configuration structlog

Centralised structlog configuration for structured logging.

Usage:
    from config.logging import configure_logging

    # At application start-up
    configure_logging()

    # In modules
    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("message", key=value)
"""

import logging
import os
import sys

import structlog
from structlog.types import EventDict, WrappedLogger


def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add application context to every log line.

    Adds:
    - app: "statuslight"
    - environment: value of STATUSLIGHT_ENV (default "development")
    """
    event_dict["app"] = "statuslight"
    event_dict["environment"] = os.getenv("STATUSLIGHT_ENV", "development")
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    enable_colors: bool = False,
) -> None:
    """
    Configure structlog for StatusLight.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, JSON lines. If False, human readable (dev)
        enable_colors: If True, colorize console output (dev only)

    Example:
        >>> configure_logging(level="DEBUG", json_format=False, enable_colors=True)
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=enable_colors))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
