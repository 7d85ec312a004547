"""Standard metrics pre-aggregated per dimension set.

Requests, dependencies, exceptions and traces are counted in-process,
keyed by their dimension values (cloud role, result code, success...).
Every collection interval one MetricRecord per active dimension set is
emitted, carrying the interval's count and average duration, so the
ingestion side does not have to extract them from individual items.

Unlike the rate counters these series are per-interval: a tick swaps in
an empty table and reports what the old one accumulated.
"""

import functools
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum

import structlog

from appinsights.aggregation.rates import parse_duration
from appinsights.contracts.enums import SamplerState
from appinsights.contracts.metrics import MetricRecord
from appinsights.core.scheduling import Cancellable, TimerFactory, start_daemon_timer

logger = structlog.get_logger(__name__)

MetricSink = Callable[[MetricRecord], None]
DimensionKey = tuple[tuple[str, str], ...]


class MetricDimension(StrEnum):
    """Property names of the standard metric dimensions."""

    CLOUD_ROLE_INSTANCE = "cloud/roleInstance"
    CLOUD_ROLE_NAME = "cloud/roleName"
    OPERATION_SYNTHETIC = "operation/synthetic"
    REQUEST_SUCCESS = "Request.Success"
    REQUEST_RESULT_CODE = "request/resultCode"
    DEPENDENCY_SUCCESS = "Dependency.Success"
    DEPENDENCY_TYPE = "Dependency.Type"
    DEPENDENCY_TARGET = "dependency/target"
    DEPENDENCY_RESULT_CODE = "dependency/resultCode"
    TRACE_SEVERITY_LEVEL = "trace/severityLevel"


@dataclass(frozen=True, slots=True)
class MetricKind:
    """A standard metric: its ``_MS.MetricId`` and display name."""

    metric_id: str
    name: str
    # Durations are averaged; kinds without one report the interval count
    has_duration: bool


REQUESTS = MetricKind("requests/duration", "Server response time", True)
DEPENDENCIES = MetricKind("dependencies/duration", "Dependency duration", True)
EXCEPTIONS = MetricKind("exceptions/count", "Exceptions", False)
TRACES = MetricKind("traces/count", "Traces", False)


def dimension_key(dimensions: Mapping[str, object]) -> DimensionKey:
    """Normalize dimensions to a hashable key, dropping unset values."""
    return tuple(sorted((str(name), str(value)) for name, value in dimensions.items() if value is not None))


@dataclass(slots=True)
class _Series:
    count: int = 0
    duration_sum: float = 0.0


class PreAggregatedMetrics:
    """Per-dimension counters reported as metric records every interval.

    Thread Safety:
        count_*() may be called from any thread. The tick runs on the
        timer thread and swaps the series table under the same lock.

    Example:
        metrics = PreAggregatedMetrics(client.track_metric_record)
        metrics.enable(True)
        metrics.count_request(120, {MetricDimension.REQUEST_SUCCESS: True})
    """

    def __init__(
        self,
        sink: MetricSink,
        *,
        interval_ms: int = 60_000,
        timer_factory: TimerFactory = start_daemon_timer,
    ) -> None:
        self._sink = sink
        self._interval_ms = interval_ms
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._series: dict[tuple[MetricKind, DimensionKey], _Series] = {}
        self._state = SamplerState.STOPPED
        self._timer: Cancellable | None = None
        self._generation = 0
        self._initialized = False

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def is_enabled(self) -> bool:
        return self._state is SamplerState.RUNNING

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def enable(self, is_enabled: bool, interval_ms: int | None = None) -> None:
        """Start or stop interval reporting. Idempotent."""
        with self._lock:
            if is_enabled:
                self._initialized = True
                if self._state is SamplerState.RUNNING:
                    return
                if interval_ms:
                    self._interval_ms = interval_ms
                self._state = SamplerState.RUNNING
                self._generation += 1
                self._arm_timer()
            else:
                self._state = SamplerState.STOPPED
                if self._timer is not None:
                    self._timer.cancel()
                    self._timer = None

    def dispose(self) -> None:
        self.enable(False)
        with self._lock:
            self._series = {}
        self._initialized = False

    def count_request(self, duration: object, dimensions: Mapping[str, object]) -> None:
        self._record(REQUESTS, dimensions, duration)

    def count_dependency(self, duration: object, dimensions: Mapping[str, object]) -> None:
        self._record(DEPENDENCIES, dimensions, duration)

    def count_exception(self, dimensions: Mapping[str, object]) -> None:
        self._record(EXCEPTIONS, dimensions, 0)

    def count_trace(self, dimensions: Mapping[str, object]) -> None:
        self._record(TRACES, dimensions, 0)

    def _record(self, kind: MetricKind, dimensions: Mapping[str, object], duration: object) -> None:
        if not self.is_enabled:
            return
        duration_ms = parse_duration(duration)
        if duration_ms is None:
            logger.debug("Ignoring pre-aggregated event with invalid duration", metric_id=kind.metric_id)
            return
        key = (kind, dimension_key(dimensions))
        with self._lock:
            series = self._series.get(key)
            if series is None:
                series = self._series[key] = _Series()
            series.count += 1
            series.duration_sum += duration_ms

    def track_metrics(self) -> list[MetricRecord]:
        """Emit one record per dimension set that saw events this interval.

        Returns:
            The records handed to the sink.
        """
        with self._lock:
            interval, self._series = self._series, {}

        records: list[MetricRecord] = []
        for (kind, key), series in interval.items():
            if kind.has_duration:
                value = series.duration_sum / series.count
            else:
                value = float(series.count)
            properties = dict(key)
            properties["_MS.MetricId"] = kind.metric_id
            properties["_MS.IsAutocollected"] = "True"
            records.append(MetricRecord.with_properties(kind.name, value, properties, count=series.count))

        for record in records:
            try:
                self._sink(record)
            except Exception as e:
                logger.warning("Failed to emit pre-aggregated metric", metric=record.name, error=str(e))
        return records

    def _tick(self, generation: int) -> None:
        try:
            self.track_metrics()
        except Exception as e:
            logger.error("Pre-aggregated metrics tick failed", error=str(e))
        with self._lock:
            if self._state is SamplerState.RUNNING and generation == self._generation:
                self._arm_timer()

    def _arm_timer(self) -> None:
        """Schedule the next tick. Must be called while holding _lock."""
        self._timer = self._timer_factory(self._interval_ms / 1000, functools.partial(self._tick, self._generation))
