"""Factory for building a TelemetryClient from settings.

Glue between configuration and the runtime client:
1. Applying diagnostics settings to the SDK loggers
2. Building the TelemetryClient (sender, buffer, samplers)
3. Discovering telemetry processors via pluggy hooks
4. Registering them on the client in hook order

Usage:
    from appinsights.core.config import load_settings
    from appinsights.factory import create_telemetry_client

    client = create_telemetry_client(load_settings(Path("appinsights.yaml")))
    client.start()
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pluggy
import structlog

from appinsights.client import TelemetryClient
from appinsights.core.config import InsightsSettings
from appinsights.core.logging import configure_logging
from appinsights.errors import InsightsConfigurationError
from appinsights.processors.builtin import BuiltinProcessorsPlugin
from appinsights.processors.hookspecs import PROJECT_NAME, AppInsightsProcessorSpec

logger = structlog.get_logger(__name__)


def _build_plugin_manager(processor_plugins: Iterable[Any]) -> pluggy.PluginManager:
    """Register the built-in plugin plus caller plugins.

    Raises:
        InsightsConfigurationError: If a plugin does not match the hook
            specification or is registered twice.
    """
    plugin_manager = pluggy.PluginManager(PROJECT_NAME)
    plugin_manager.add_hookspecs(AppInsightsProcessorSpec)

    for plugin in [BuiltinProcessorsPlugin(), *list(processor_plugins)]:
        try:
            plugin_manager.register(plugin)
            plugin_manager.check_pending()
        except (pluggy.PluginValidationError, ValueError) as e:
            # PluginValidationError: hook spec mismatch; ValueError: duplicate plugin
            if isinstance(e, pluggy.PluginValidationError):
                plugin_manager.unregister(plugin=plugin)
            raise InsightsConfigurationError(
                "processor_plugins",
                f"Invalid telemetry processor plugin {type(plugin).__name__}: {e}",
            ) from e
    return plugin_manager


def discover_telemetry_processors(client: TelemetryClient, processor_plugins: Iterable[Any] = ()) -> list[Any]:
    """Collect processors from every plugin, flattened in hook call order.

    Raises:
        InsightsConfigurationError: If a plugin fails or returns something
            other than a list of callables.
    """
    plugin_manager = _build_plugin_manager(processor_plugins)

    processors: list[Any] = []
    for hook_impl in reversed(plugin_manager.hook.appinsights_get_telemetry_processors.get_hookimpls()):
        plugin_name = type(hook_impl.plugin).__name__
        try:
            contributed = hook_impl.function(client)
        except Exception as e:
            raise InsightsConfigurationError(
                "processor_plugins",
                f"Plugin {plugin_name} failed in appinsights_get_telemetry_processors: {e}",
            ) from e

        if not isinstance(contributed, list | tuple):
            raise InsightsConfigurationError(
                "processor_plugins",
                f"appinsights_get_telemetry_processors in plugin {plugin_name} returned {type(contributed).__name__}; expected a list of processors",
            )
        for processor in contributed:
            if not callable(processor):
                raise InsightsConfigurationError(
                    "processor_plugins",
                    f"Plugin {plugin_name} returned non-callable processor {processor!r}",
                )
            processors.append(processor)
    return processors


def create_telemetry_client(
    settings: InsightsSettings,
    *,
    processor_plugins: Iterable[Any] = (),
    **client_kwargs: Any,
) -> TelemetryClient:
    """Create a TelemetryClient with all discovered processors registered.

    Args:
        settings: Validated SDK settings.
        processor_plugins: Additional plugin objects implementing
            ``appinsights_get_telemetry_processors``.
        **client_kwargs: Passed through to TelemetryClient (sender, probe,
            timer_factory).

    Returns:
        The client, not yet started.

    Raises:
        InsightsConfigurationError: If processor discovery fails.
    """
    if settings.diagnostics.enabled:
        configure_logging(json_output=settings.diagnostics.json_output, level=settings.diagnostics.level)

    client = TelemetryClient(settings, **client_kwargs)
    try:
        processors = discover_telemetry_processors(client, processor_plugins)
    except InsightsConfigurationError:
        client.sender.close()
        raise

    for processor in processors:
        client.add_telemetry_processor(processor)
    logger.debug(
        "telemetry_client_created",
        instrumentation_key=client.instrumentation_key,
        processors=len(processors),
    )
    return client
