"""
Structured logging

Thin wrapper over structlog: ``configure_logging`` sets the level and renderer once
per process, ``get_logger`` returns a bound logger for a module.
"""

from __future__ import annotations

import logging
import sys

import structlog

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def configure_logging(log_level: str = "INFO", json_format: bool = False) -> None:
    """Configure structlog and the stdlib root logger.

    Unknown levels fall back to INFO. Safe to call more than once.
    """
    level_name = log_level.upper()
    if level_name not in _LEVELS:
        level_name = "INFO"
    level = getattr(logging, level_name)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
