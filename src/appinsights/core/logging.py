"""Diagnostic logging for the SDK itself.

Every SDK module logs through ``structlog.get_logger(__name__)``, so all
SDK events land on stdlib loggers under the ``appinsights`` namespace.
configure_logging() attaches one handler to that namespace only: the host
application's root logger and its handlers are left alone.

It is called by create_telemetry_client() when ``diagnostics.enabled`` is
set, or directly by a host that wants the SDK's own output:

    configure_logging(json_output=True, level="DEBUG")

Note that structlog configuration is process-wide. A host that already
configures structlog should route the ``appinsights`` logger itself
instead of calling this.
"""

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

SDK_LOGGER_NAME = "appinsights"

# The sender's HTTP client logs every request at DEBUG/INFO
_TRANSPORT_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")


def _remove_internal_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Remove ProcessorFormatter bookkeeping fields from output.

    ProcessorFormatter always adds _record and _from_structlog, so a
    KeyError here would indicate a bug in the structlog integration.
    """
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _add_component(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Name the SDK component: ``appinsights.channel.sender`` -> ``channel.sender``."""
    record: logging.LogRecord = event_dict["_record"]
    name = record.name
    if name.startswith(SDK_LOGGER_NAME + "."):
        event_dict.setdefault("component", name[len(SDK_LOGGER_NAME) + 1 :])
    return event_dict


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "WARNING",
    stream: TextIO | None = None,
) -> None:
    """Route SDK diagnostics to a stream.

    Calling it again replaces the previous handler.

    Args:
        json_output: If True, output JSON. If False, human-readable.
        level: Level for SDK loggers (DEBUG, INFO, WARNING, ERROR).
        stream: Destination. Defaults to stderr.
    """
    log_level = getattr(logging, level.upper())

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    final_processors: list[Any] = [
        _add_component,
        _remove_internal_fields,
        structlog.processors.format_exc_info,
        renderer,
    ]

    structlog.configure(
        processors=[*shared_processors, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Allows reconfiguration in tests
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(
        ProcessorFormatter(
            processors=final_processors,
            foreign_pre_chain=shared_processors,
        )
    )

    sdk_logger = logging.getLogger(SDK_LOGGER_NAME)
    sdk_logger.handlers = [handler]
    sdk_logger.setLevel(log_level)
    sdk_logger.propagate = False

    # Never make transport loggers less restrictive than the SDK level
    transport_level = max(log_level, logging.WARNING)
    for logger_name in _TRANSPORT_LOGGERS:
        logging.getLogger(logger_name).setLevel(transport_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a bound logger for an SDK module."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
