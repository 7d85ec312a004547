"""Core infrastructure: configuration, logging, scheduling."""

from appinsights.core.config import (
    ChannelSettings,
    DiagnosticsSettings,
    DiskRetrySettings,
    InsightsSettings,
    PerformanceSettings,
    PreAggregatedMetricsSettings,
    RetrySettings,
    load_settings,
    parse_connection_string,
)
from appinsights.core.logging import SDK_LOGGER_NAME, configure_logging, get_logger
from appinsights.core.scheduling import Cancellable, TimerFactory, start_daemon_timer

__all__ = [
    "Cancellable",
    "ChannelSettings",
    "DiagnosticsSettings",
    "DiskRetrySettings",
    "InsightsSettings",
    "PerformanceSettings",
    "PreAggregatedMetricsSettings",
    "RetrySettings",
    "SDK_LOGGER_NAME",
    "TimerFactory",
    "configure_logging",
    "get_logger",
    "load_settings",
    "parse_connection_string",
    "start_daemon_timer",
]
