"""Diagnostic logging configuration using loguru.

User-facing output is printed directly by the CLI. This module only configures
the diagnostic stream, which goes to stderr and is quiet by default.
"""

import logging
import sys

from loguru import logger

DEFAULT_LOG_LEVEL = "WARNING"

# stdlib loggers of the HTTP stack, routed into loguru
LIBRARY_LOGGERS = ("httpx", "httpcore")


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        logger.opt(exception=record.exc_info).log(
            level, "[{}] {}", record.name, record.getMessage()
        )


def configure_logging(*, log_level: str = DEFAULT_LOG_LEVEL, verbose: bool = False) -> None:
    """Configure loguru for the CLI.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        verbose: If True, force DEBUG regardless of log_level.
    """
    level = "DEBUG" if verbose else log_level.upper()

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan> | "
            "<level>{message}</level>"
        ),
        colorize=None,
        backtrace=False,
        # Variable values in tracebacks could include tokens
        diagnose=False,
    )

    _intercept_library_logging(level)


def _intercept_library_logging(log_level: str) -> None:
    """Send httpx and httpcore records to loguru only.

    The root logger is left alone; the library loggers stop propagating so
    each record is emitted once.
    """
    handler = InterceptHandler()
    for name in LIBRARY_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.handlers = [handler]
        library_logger.setLevel(log_level)
        library_logger.propagate = False
