"""Counter snapshots, rate samples, and metric records.

These are the values that cross the boundary between the aggregation
engine, the samplers, and the delivery channel. All are frozen: a snapshot
is a point-in-time reading and a metric record is owned by the buffer as
soon as it is emitted.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any


class PerformanceCounter(StrEnum):
    """Standard performance counter names reported every interval."""

    PROCESSOR_TIME = "\\Processor(_Total)\\% Processor Time"
    PROCESS_TIME = "\\Process(??APP_WIN32_PROC??)\\% Processor Time"
    PRIVATE_BYTES = "\\Process(??APP_WIN32_PROC??)\\Private Bytes"
    AVAILABLE_BYTES = "\\Memory\\Available Bytes"
    REQUEST_RATE = "\\ASP.NET Applications(??APP_W3SVC_PROC??)\\Requests/Sec"
    REQUEST_DURATION = "\\ASP.NET Applications(??APP_W3SVC_PROC??)\\Request Execution Time"


class LiveMetricsCounter(StrEnum):
    """Counters only reported when live-metrics mode is enabled."""

    COMMITTED_BYTES = "\\Memory\\Committed Bytes"
    REQUEST_FAILURE_RATE = "\\ApplicationInsights\\Requests Failed/Sec"
    DEPENDENCY_RATE = "\\ApplicationInsights\\Dependency Calls/Sec"
    DEPENDENCY_FAILURE_RATE = "\\ApplicationInsights\\Dependency Calls Failed/Sec"
    DEPENDENCY_DURATION = "\\ApplicationInsights\\Dependency Call Duration"
    EXCEPTION_RATE = "\\ApplicationInsights\\Exceptions/Sec"


@dataclass(frozen=True, slots=True)
class CounterSnapshot:
    """Point-in-time reading of one monotonic counter category.

    Attributes:
        count: Total events recorded since process start.
        failed_count: Subset of ``count`` reported as unsuccessful.
        interval_duration_sum: Sum of event durations in milliseconds.
        captured_at_ms: Wall-clock capture time in epoch milliseconds.
    """

    count: int
    failed_count: int
    interval_duration_sum: float
    captured_at_ms: int

    def __post_init__(self) -> None:
        if self.failed_count < 0 or self.count < self.failed_count:
            raise ValueError(f"CounterSnapshot requires count >= failed_count >= 0, got count={self.count}, failed_count={self.failed_count}")
        if self.interval_duration_sum < 0:
            raise ValueError(f"interval_duration_sum must be >= 0, got {self.interval_duration_sum}")

    @classmethod
    def empty(cls, captured_at_ms: int) -> "CounterSnapshot":
        return cls(count=0, failed_count=0, interval_duration_sum=0.0, captured_at_ms=captured_at_ms)


@dataclass(frozen=True, slots=True)
class RateSample:
    """Rates derived from a (previous, current) snapshot window."""

    interval_count: int
    interval_failed_count: int
    elapsed_seconds: float
    rate_per_second: float
    failure_rate_per_second: float
    average_duration_ms: float


def _freeze_properties(properties: dict[str, str] | None) -> MappingProxyType[str, str]:
    return MappingProxyType(dict(properties or {}))


@dataclass(frozen=True, slots=True)
class MetricRecord:
    """Normalized metric value sent downstream.

    ``count`` and ``properties`` are only meaningful for pre-aggregated
    metrics (a value that summarises several observations, with dimensions).
    """

    name: str
    value: float
    namespace: str | None = None
    count: int = 1
    properties: MappingProxyType[str, str] = field(default_factory=lambda: _freeze_properties(None))

    @classmethod
    def with_properties(
        cls,
        name: str,
        value: float,
        properties: dict[str, str],
        *,
        count: int = 1,
        namespace: str | None = None,
    ) -> "MetricRecord":
        return cls(name=name, value=value, namespace=namespace, count=count, properties=_freeze_properties(properties))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "value": self.value, "count": self.count}
        if self.namespace is not None:
            data["ns"] = self.namespace
        return data
