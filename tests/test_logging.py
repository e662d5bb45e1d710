"""Unit tests for diagnostic logging configuration."""

import logging
import sys
from collections.abc import Iterator

import pytest
from loguru import logger

from basecamp_cli.logging import LIBRARY_LOGGERS, InterceptHandler, configure_logging


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    root_handlers = list(logging.getLogger().handlers)
    root_level = logging.getLogger().level
    saved = {
        name: (
            list(logging.getLogger(name).handlers),
            logging.getLogger(name).level,
            logging.getLogger(name).propagate,
        )
        for name in LIBRARY_LOGGERS
    }
    yield
    logger.remove()
    logger.add(sys.stderr)
    logging.getLogger().handlers = root_handlers
    logging.getLogger().setLevel(root_level)
    for name, (handlers, level, propagate) in saved.items():
        library_logger = logging.getLogger(name)
        library_logger.handlers = handlers
        library_logger.setLevel(level)
        library_logger.propagate = propagate


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_root_logger_untouched(self) -> None:
        """Only the HTTP library loggers are redirected."""
        root = logging.getLogger()
        handlers_before = list(root.handlers)
        level_before = root.level

        configure_logging(log_level="INFO")

        assert root.handlers == handlers_before
        assert root.level == level_before

    def test_library_loggers_intercepted(self) -> None:
        """httpx and httpcore hand records to loguru without propagating."""
        configure_logging(log_level="info")

        for name in LIBRARY_LOGGERS:
            library_logger = logging.getLogger(name)
            assert len(library_logger.handlers) == 1
            assert isinstance(library_logger.handlers[0], InterceptHandler)
            assert library_logger.level == logging.INFO
            assert library_logger.propagate is False

    def test_verbose_forces_debug(self, capsys: pytest.CaptureFixture[str]) -> None:
        """--verbose lets debug records through whatever the level."""
        configure_logging(log_level="ERROR", verbose=True)

        logging.getLogger("httpx").debug("HTTP Request: GET %s", "https://example.com")

        err = capsys.readouterr().err
        assert "DEBUG" in err
        assert "[httpx] HTTP Request: GET https://example.com" in err

    def test_level_filters(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Records below the configured level are dropped."""
        configure_logging(log_level="WARNING")

        logging.getLogger("httpcore").info("connect_tcp.started")
        logger.info("hidden")
        logger.warning("shown")

        err = capsys.readouterr().err
        assert "connect_tcp.started" not in err
        assert "hidden" not in err
        assert "shown" in err
