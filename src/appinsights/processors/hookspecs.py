"""pluggy hook specifications for telemetry processors.

Plugins contribute processors that run on every envelope before it is
buffered. The factory calls these hooks when it builds a TelemetryClient.

Usage (implementing a processor plugin):
    from appinsights.processors.hookspecs import hookimpl

    class ScrubPlugin:
        @hookimpl
        def appinsights_get_telemetry_processors(self, client):
            return [scrub_user_ids]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from appinsights.client import TelemetryClient
    from appinsights.contracts.envelope import TelemetryProcessor

PROJECT_NAME = "appinsights"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class AppInsightsProcessorSpec:
    """Hook specifications for telemetry processor plugins."""

    @hookspec
    def appinsights_get_telemetry_processors(self, client: "TelemetryClient") -> list["TelemetryProcessor"]:  # type: ignore[empty-body]
        """Return telemetry processors bound to ``client``.

        Processors run in the order returned. Results of later-registered
        plugins come first, so the built-in processors always run last.

        Args:
            client: The client being built; processors may capture its
                aggregators.

        Returns:
            List of processor callables (instances, not classes)
        """
