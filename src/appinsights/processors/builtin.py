"""Built-in telemetry processors.

- AzureRoleEnvironmentProcessor: names the cloud role after the Azure
  Web App / Functions site.
- PreAggregatedMetricsProcessor: feeds the standard metrics and marks
  items as already extracted.
- PerformanceCounterProcessor: feeds the request/dependency/exception
  rate counters.

All three always accept the envelope.
"""

import os
from typing import TYPE_CHECKING, Any

from appinsights.aggregation.preaggregated import MetricDimension, PreAggregatedMetrics
from appinsights.aggregation.rates import RateCounterAggregator
from appinsights.contracts.enums import TelemetryBaseType
from appinsights.contracts.envelope import ACCEPT, Envelope, ProcessorResult, TelemetryProcessor, base_data_of, base_type_of
from appinsights.envelopes import ContextTagKey
from appinsights.processors.hookspecs import hookimpl

if TYPE_CHECKING:
    from appinsights.client import TelemetryClient

WEBSITE_SITE_NAME = "WEBSITE_SITE_NAME"
EXTRACTOR_PROPERTY = "_MS.ProcessedByMetricExtractors"


def _tags(envelope: Envelope) -> dict[str, Any]:
    tags = envelope.get("tags")
    if not isinstance(tags, dict):
        tags = envelope["tags"] = {}
    return tags


class AzureRoleEnvironmentProcessor:
    """Sets the ``ai.cloud.role`` tag from WEBSITE_SITE_NAME when it is set."""

    def __call__(self, envelope: Envelope, context_objects: dict[str, Any]) -> ProcessorResult:
        site_name = os.environ.get(WEBSITE_SITE_NAME)
        if site_name:
            _tags(envelope)[ContextTagKey.CLOUD_ROLE.value] = site_name
        return ACCEPT


class PreAggregatedMetricsProcessor:
    """Counts requests, dependencies, exceptions and traces per dimension set."""

    def __init__(self, metrics: PreAggregatedMetrics) -> None:
        self._metrics = metrics

    def __call__(self, envelope: Envelope, context_objects: dict[str, Any]) -> ProcessorResult:
        if not self._metrics.is_enabled:
            return ACCEPT

        base_type = base_type_of(envelope)
        base_data = base_data_of(envelope)
        if base_data is None:
            return ACCEPT

        tags = _tags(envelope)
        dimensions: dict[str, object] = {
            MetricDimension.CLOUD_ROLE_INSTANCE: tags.get(ContextTagKey.CLOUD_ROLE_INSTANCE.value),
            MetricDimension.CLOUD_ROLE_NAME: tags.get(ContextTagKey.CLOUD_ROLE.value),
        }

        if base_type == TelemetryBaseType.EXCEPTION:
            self._mark(base_data, "Exceptions")
            self._metrics.count_exception(dimensions)
        elif base_type == TelemetryBaseType.TRACE:
            self._mark(base_data, "Traces")
            dimensions[MetricDimension.TRACE_SEVERITY_LEVEL] = base_data.get("severityLevel")
            self._metrics.count_trace(dimensions)
        elif base_type == TelemetryBaseType.REQUEST:
            self._mark(base_data, "Requests")
            dimensions[MetricDimension.OPERATION_SYNTHETIC] = tags.get(ContextTagKey.OPERATION_SYNTHETIC_SOURCE.value)
            dimensions[MetricDimension.REQUEST_SUCCESS] = base_data.get("success")
            dimensions[MetricDimension.REQUEST_RESULT_CODE] = base_data.get("responseCode")
            self._metrics.count_request(base_data.get("duration"), dimensions)
        elif base_type == TelemetryBaseType.DEPENDENCY:
            self._mark(base_data, "Dependencies")
            dimensions[MetricDimension.OPERATION_SYNTHETIC] = tags.get(ContextTagKey.OPERATION_SYNTHETIC_SOURCE.value)
            dimensions[MetricDimension.DEPENDENCY_SUCCESS] = base_data.get("success")
            dimensions[MetricDimension.DEPENDENCY_TYPE] = base_data.get("type")
            dimensions[MetricDimension.DEPENDENCY_TARGET] = base_data.get("target")
            dimensions[MetricDimension.DEPENDENCY_RESULT_CODE] = base_data.get("resultCode")
            self._metrics.count_dependency(base_data.get("duration"), dimensions)
        return ACCEPT

    @staticmethod
    def _mark(base_data: dict[str, Any], extractor: str) -> None:
        properties = base_data.get("properties")
        properties = dict(properties) if isinstance(properties, dict) else {}
        properties[EXTRACTOR_PROPERTY] = f"(Name:'{extractor}', Ver:'1.1')"
        base_data["properties"] = properties


class PerformanceCounterProcessor:
    """Counts envelopes into the rate counters read by PerformanceSampler."""

    def __init__(self, aggregator: RateCounterAggregator) -> None:
        self._aggregator = aggregator

    def __call__(self, envelope: Envelope, context_objects: dict[str, Any]) -> ProcessorResult:
        if not self._aggregator.enabled:
            return ACCEPT

        base_type = base_type_of(envelope)
        base_data = base_data_of(envelope) or {}
        if base_type == TelemetryBaseType.REQUEST:
            self._aggregator.count_request(base_data.get("duration"), base_data.get("success", True))
        elif base_type == TelemetryBaseType.DEPENDENCY:
            self._aggregator.count_dependency(base_data.get("duration"), base_data.get("success", True))
        elif base_type == TelemetryBaseType.EXCEPTION:
            self._aggregator.count_exception()
        return ACCEPT


class BuiltinProcessorsPlugin:
    """Registers the built-in processors, in the order they must run."""

    @hookimpl
    def appinsights_get_telemetry_processors(self, client: "TelemetryClient") -> list[TelemetryProcessor]:
        return [
            AzureRoleEnvironmentProcessor(),
            PreAggregatedMetricsProcessor(client.pre_aggregated_metrics),
            PerformanceCounterProcessor(client.aggregator),
        ]
