"""Logging configuration for applications using typed_beans.

The library only obtains loggers with `structlog.get_logger(__name__)`; it
never configures logging itself. Applications call `configure_logging()` once.
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.stdlib import BoundLogger

_LOGGING_CONFIGURED = False


def configure_logging(level: str | int = "INFO", json: bool = False) -> BoundLogger:
    """Route structlog events through the standard library's root logger.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ...) or number.
        json: Render events as JSON lines instead of console key/value text.

    Returns:
        A logger for the caller.
    """
    global _LOGGING_CONFIGURED

    numeric = level if isinstance(level, int) else getattr(logging, level.upper())
    if _LOGGING_CONFIGURED:
        logging.getLogger().setLevel(numeric)
        return structlog.get_logger()

    logging.basicConfig(level=numeric, stream=sys.stderr, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    _LOGGING_CONFIGURED = True
    return structlog.get_logger()


__all__ = ["configure_logging"]
