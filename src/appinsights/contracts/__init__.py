"""Shared contracts: enums, counter/metric value types, envelope hooks.

This is a leaf package. Nothing here imports from the rest of appinsights
except other contracts modules.
"""

from appinsights.contracts.enums import (
    CounterCategory,
    DeliveryOutcome,
    ProvisioningState,
    SamplerState,
    TelemetryBaseType,
)
from appinsights.contracts.envelope import (
    ACCEPT,
    REJECT,
    Envelope,
    ProcessorResult,
    SendCallback,
    TelemetryProcessor,
    base_data_of,
    base_type_of,
)
from appinsights.contracts.metrics import (
    CounterSnapshot,
    LiveMetricsCounter,
    MetricRecord,
    PerformanceCounter,
    RateSample,
)

__all__ = [
    "ACCEPT",
    "REJECT",
    "CounterCategory",
    "CounterSnapshot",
    "DeliveryOutcome",
    "Envelope",
    "LiveMetricsCounter",
    "MetricRecord",
    "PerformanceCounter",
    "ProcessorResult",
    "ProvisioningState",
    "RateSample",
    "SamplerState",
    "SendCallback",
    "TelemetryBaseType",
    "TelemetryProcessor",
    "base_data_of",
    "base_type_of",
]
