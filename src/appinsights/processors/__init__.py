"""Telemetry processors and their plugin hooks."""

from appinsights.processors.builtin import (
    AzureRoleEnvironmentProcessor,
    BuiltinProcessorsPlugin,
    PerformanceCounterProcessor,
    PreAggregatedMetricsProcessor,
)
from appinsights.processors.hookspecs import PROJECT_NAME, AppInsightsProcessorSpec, hookimpl, hookspec

__all__ = [
    "PROJECT_NAME",
    "AppInsightsProcessorSpec",
    "AzureRoleEnvironmentProcessor",
    "BuiltinProcessorsPlugin",
    "PerformanceCounterProcessor",
    "PreAggregatedMetricsProcessor",
    "hookimpl",
    "hookspec",
]
