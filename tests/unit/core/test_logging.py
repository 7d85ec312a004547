# tests/unit/core/test_logging.py
"""Tests for SDK diagnostic logging configuration."""

import io
import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from appinsights.core.logging import SDK_LOGGER_NAME, configure_logging, get_logger


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    """configure_logging() mutates process-wide state; undo it per test."""
    sdk_logger = logging.getLogger(SDK_LOGGER_NAME)
    handlers, level, propagate = sdk_logger.handlers[:], sdk_logger.level, sdk_logger.propagate
    transport_levels = {name: logging.getLogger(name).level for name in ("httpx", "httpcore")}
    yield
    structlog.reset_defaults()
    sdk_logger.handlers = handlers
    sdk_logger.setLevel(level)
    sdk_logger.propagate = propagate
    for name, transport_level in transport_levels.items():
        logging.getLogger(name).setLevel(transport_level)


@pytest.fixture
def stream() -> io.StringIO:
    return io.StringIO()


def last_json_line(stream: io.StringIO) -> dict[str, object]:
    return json.loads(stream.getvalue().strip().split("\n")[-1])


class TestLoggingConfig:
    """Tests for logging configuration."""

    def test_get_logger_returns_logger(self) -> None:
        logger = get_logger("appinsights.test")

        assert hasattr(logger, "info")
        assert hasattr(logger, "warning")
        assert hasattr(logger, "bind")

    def test_json_output(self, stream: io.StringIO) -> None:
        configure_logging(json_output=True, stream=stream)

        get_logger("appinsights.channel.sender").warning("Sender queue full; persisting batch to disk", items=3)

        data = last_json_line(stream)
        assert data["event"] == "Sender queue full; persisting batch to disk"
        assert data["items"] == 3
        assert data["level"] == "warning"
        assert data["component"] == "channel.sender"
        assert "timestamp" in data

    def test_console_output(self, stream: io.StringIO) -> None:
        configure_logging(json_output=False, level="INFO", stream=stream)

        get_logger("appinsights.channel.sender").info("Sender closed", delivered=2)

        output = stream.getvalue()
        assert "Sender closed" in output
        assert not output.strip().startswith("{")

    def test_stdlib_records_in_sdk_namespace_are_rendered(self, stream: io.StringIO) -> None:
        configure_logging(json_output=True, stream=stream)

        logging.getLogger("appinsights.core").error("message from stdlib logger")

        data = last_json_line(stream)
        assert data["event"] == "message from stdlib logger"
        assert data["component"] == "core"

    def test_host_loggers_untouched(self, stream: io.StringIO) -> None:
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level

        configure_logging(json_output=True, stream=stream)
        logging.getLogger("host.module").error("host message")

        assert root.handlers == handlers
        assert root.level == level
        assert "host message" not in stream.getvalue()
        assert logging.getLogger(SDK_LOGGER_NAME).propagate is False

    def test_default_level_is_warning(self, stream: io.StringIO) -> None:
        configure_logging(json_output=True, stream=stream)

        get_logger("appinsights.test").info("hidden")
        get_logger("appinsights.test").warning("shown")

        assert "hidden" not in stream.getvalue()
        assert "shown" in stream.getvalue()

    def test_transport_loggers_silenced(self) -> None:
        """Per-request HTTP client logs stay quiet even at DEBUG."""
        configure_logging(level="DEBUG")

        assert logging.getLogger(SDK_LOGGER_NAME).level == logging.DEBUG
        for name in ("httpx", "httpcore"):
            assert logging.getLogger(name).getEffectiveLevel() >= logging.WARNING

    def test_reconfigure_replaces_handler(self, stream: io.StringIO) -> None:
        configure_logging(stream=io.StringIO())
        configure_logging(json_output=True, stream=stream)

        assert len(logging.getLogger(SDK_LOGGER_NAME).handlers) == 1
        get_logger("appinsights.test").error("once")
        assert stream.getvalue().count("once") == 1
