"""Envelope shaping for SDK-generated metrics.

Only the MetricData envelope is built here; the samplers need it to hand
their records to the channel. Other telemetry types are shaped by the
caller and passed to TelemetryClient.track() as ready envelopes.
"""

import platform
import socket
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import StrEnum

from appinsights.contracts.enums import TelemetryBaseType
from appinsights.contracts.envelope import Envelope
from appinsights.contracts.metrics import MetricRecord


class ContextTagKey(StrEnum):
    """Envelope tag keys the SDK reads or writes."""

    CLOUD_ROLE = "ai.cloud.role"
    CLOUD_ROLE_INSTANCE = "ai.cloud.roleInstance"
    DEVICE_OS_VERSION = "ai.device.osVersion"
    OPERATION_SYNTHETIC_SOURCE = "ai.operation.syntheticSource"
    INTERNAL_SDK_VERSION = "ai.internal.sdkVersion"


DEFAULT_ROLE_NAME = "Web"


def default_context_tags(sdk_version: str) -> dict[str, str]:
    """Tags describing this process, applied to every envelope the client shapes."""
    return {
        ContextTagKey.CLOUD_ROLE.value: DEFAULT_ROLE_NAME,
        ContextTagKey.CLOUD_ROLE_INSTANCE.value: socket.gethostname(),
        ContextTagKey.DEVICE_OS_VERSION.value: f"{platform.system()} {platform.release()}",
        ContextTagKey.INTERNAL_SDK_VERSION.value: f"python:{sdk_version}",
    }


def envelope_name(instrumentation_key: str, base_type: str) -> str:
    """``Microsoft.ApplicationInsights.<key without dashes>.<base type without "Data">``."""
    kind = base_type.removesuffix("Data")
    return f"Microsoft.ApplicationInsights.{instrumentation_key.replace('-', '')}.{kind}"


def utc_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    moment = moment or datetime.now(UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def merge_common_properties(properties: Mapping[str, str], common_properties: Mapping[str, str]) -> dict[str, str]:
    """Item properties win; common properties only fill unset names."""
    merged = dict(properties)
    for name, value in common_properties.items():
        if not merged.get(name):
            merged[name] = value
    return merged


def create_metric_envelope(
    record: MetricRecord,
    *,
    instrumentation_key: str,
    tags: Mapping[str, str],
    common_properties: Mapping[str, str] | None = None,
) -> Envelope:
    """Wrap a metric record in a MetricData envelope.

    Metrics are never sampled, so sampleRate is always 100.
    """
    base_data: dict[str, object] = {"ver": 2, "metrics": [record.to_dict()]}
    properties = merge_common_properties(record.properties, common_properties or {})
    if properties:
        base_data["properties"] = properties

    return {
        "name": envelope_name(instrumentation_key, TelemetryBaseType.METRIC),
        "time": utc_timestamp(),
        "iKey": instrumentation_key,
        "ver": 1,
        "sampleRate": 100,
        "tags": dict(tags),
        "data": {"baseType": TelemetryBaseType.METRIC.value, "baseData": base_data},
    }
