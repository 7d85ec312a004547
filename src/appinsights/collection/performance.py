"""Periodic sampling of the standard performance counters.

Every interval the sampler reads CPU and memory from a SystemProbe and the
request/dependency/exception counters from a RateCounterAggregator, turns
them into metric records and hands each one to a sink (normally
TelemetryClient.track_metric_record, which routes it into the channel).

Lifecycle:
    STOPPED --enable(True)--> RUNNING --enable(False)/dispose()--> STOPPED

While RUNNING a one-shot daemon timer is re-armed after every tick, so a
slow tick never overlaps the next one and the timer never keeps the
interpreter alive.
"""

import functools
import math
import threading
import time
from collections.abc import Callable

import structlog

from appinsights.aggregation.rates import RateCounterAggregator, compute_rate
from appinsights.collection.probes import CpuTimes, ProcessCpuTimes, PsutilProbe, SystemProbe
from appinsights.contracts.enums import CounterCategory, SamplerState
from appinsights.contracts.metrics import CounterSnapshot, LiveMetricsCounter, MetricRecord, PerformanceCounter, RateSample
from appinsights.core.scheduling import Cancellable, TimerFactory, start_daemon_timer

logger = structlog.get_logger(__name__)

MetricSink = Callable[[MetricRecord], None]


def _delta(current: float, previous: float) -> float:
    """Difference of two readings; a non-finite result counts as 0."""
    difference = current - previous
    return difference if math.isfinite(difference) else 0.0


class PerformanceSampler:
    """Collects CPU, memory and request-rate counters on a timer.

    In live-metrics mode the sampler additionally reports committed memory,
    request failure rate, dependency rates/duration and exception rate.

    Thread Safety:
        enable()/dispose() may be called from any thread. Ticks run on the
        timer thread; a tick scheduled by an earlier enable() generation
        does not re-arm after the sampler was stopped and restarted.

    Example:
        sampler = PerformanceSampler(aggregator, client.track_metric_record)
        sampler.enable(True)
        ...
        sampler.dispose()
    """

    def __init__(
        self,
        aggregator: RateCounterAggregator,
        sink: MetricSink,
        probe: SystemProbe | None = None,
        *,
        interval_ms: int = 60_000,
        live_metrics: bool = False,
        timer_factory: TimerFactory = start_daemon_timer,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the sampler in the STOPPED state.

        Args:
            aggregator: Shared counters; enabled/disabled together with the sampler.
            sink: Receives every emitted metric record.
            probe: OS readings. Defaults to PsutilProbe.
            interval_ms: Default collection interval.
            live_metrics: Also emit the live-metrics counters.
            timer_factory: Schedules ticks. Tests inject a manual factory.
            monotonic: Wall-time source for process CPU percentage, seconds.
        """
        self._aggregator = aggregator
        self._sink = sink
        self._probe: SystemProbe = probe if probe is not None else PsutilProbe()
        self._interval_ms = interval_ms
        self._live_metrics = live_metrics
        self._timer_factory = timer_factory
        self._monotonic = monotonic

        self._lock = threading.Lock()
        self._state = SamplerState.STOPPED
        self._initialized = False
        self._timer: Cancellable | None = None
        self._generation = 0

        # Baselines, only set while RUNNING
        self._last_cpus: list[CpuTimes] | None = None
        self._last_process_cpu: ProcessCpuTimes | None = None
        self._last_wall: float | None = None
        self._last_snapshots: dict[CounterCategory, CounterSnapshot] = {}

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SamplerState.RUNNING

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def live_metrics(self) -> bool:
        return self._live_metrics

    def enable(self, is_enabled: bool, interval_ms: int | None = None) -> None:
        """Start or stop collection. Both directions are idempotent.

        Args:
            is_enabled: True to start sampling, False to stop.
            interval_ms: Overrides the collection interval when starting.
        """
        with self._lock:
            if is_enabled:
                self._initialized = True
                self._aggregator.set_enabled(True)
                if self._state is SamplerState.RUNNING:
                    return
                if interval_ms:
                    self._interval_ms = interval_ms
                self._capture_baselines()
                self._state = SamplerState.RUNNING
                self._generation += 1
                self._arm_timer()
                logger.debug("Performance sampler started", interval_ms=self._interval_ms, live_metrics=self._live_metrics)
            else:
                self._aggregator.set_enabled(False)
                if self._state is SamplerState.STOPPED:
                    return
                self._state = SamplerState.STOPPED
                if self._timer is not None:
                    self._timer.cancel()
                    self._timer = None
                self._last_cpus = None
                self._last_process_cpu = None
                self._last_wall = None
                self._last_snapshots = {}
                logger.debug("Performance sampler stopped")

    def dispose(self) -> None:
        self.enable(False)
        self._initialized = False

    def track_performance(self) -> list[MetricRecord]:
        """Run one collection pass and emit its metrics.

        Never raises. A failing step (probe error) is logged and the
        remaining steps still run.

        Returns:
            The records handed to the sink during this pass.
        """
        emitted: list[MetricRecord] = []
        steps = (self._track_cpu, self._track_memory, self._track_requests)
        if self._live_metrics:
            steps += (self._track_dependencies, self._track_exceptions)
        for step in steps:
            try:
                step(emitted)
            except Exception as e:
                logger.warning("Performance counter collection failed", step=step.__name__, error=str(e))
        return emitted

    def _capture_baselines(self) -> None:
        try:
            self._last_cpus = self._probe.per_cpu_times()
            self._last_process_cpu = self._probe.process_cpu_times()
        except Exception as e:
            # First tick refreshes the baseline and skips CPU metrics
            logger.warning("Failed to capture CPU baseline", error=str(e))
            self._last_cpus = None
            self._last_process_cpu = None
        self._last_wall = self._monotonic()
        self._last_snapshots = {category: self._aggregator.snapshot(category) for category in CounterCategory}

    def _emit(self, emitted: list[MetricRecord], name: str, value: float) -> None:
        record = MetricRecord(name=str(name), value=value)
        emitted.append(record)
        try:
            self._sink(record)
        except Exception as e:
            logger.warning("Failed to emit performance counter", metric=record.name, error=str(e))

    def _track_cpu(self, emitted: list[MetricRecord]) -> None:
        cpus = self._probe.per_cpu_times()
        last_cpus = self._last_cpus
        self._last_cpus = cpus

        process_cpu = self._probe.process_cpu_times()
        wall = self._monotonic()
        last_process_cpu, last_wall = self._last_process_cpu, self._last_wall
        self._last_process_cpu, self._last_wall = process_cpu, wall

        # Hot-plugged cores make per-core deltas meaningless for one interval
        if not cpus or last_cpus is None or len(cpus) != len(last_cpus):
            return

        total_user = total_idle = combined = 0.0
        for current, previous in zip(cpus, last_cpus, strict=True):
            user = _delta(current.user, previous.user)
            idle = _delta(current.idle, previous.idle)
            total_user += user
            total_idle += idle
            combined += (
                user
                + idle
                + _delta(current.nice, previous.nice)
                + _delta(current.system, previous.system)
                + _delta(current.irq, previous.irq)
            )
        combined = combined or 1.0

        app_cpu_percent: float | None = None
        if process_cpu is not None and last_process_cpu is not None and last_wall is not None:
            process_seconds = _delta(process_cpu.user, last_process_cpu.user) + _delta(process_cpu.system, last_process_cpu.system)
            elapsed = _delta(wall, last_wall)
            if elapsed > 0:
                app_cpu_percent = 100 * process_seconds / (elapsed * len(cpus))

        self._emit(emitted, PerformanceCounter.PROCESSOR_TIME, (combined - total_idle) / combined * 100)
        self._emit(emitted, PerformanceCounter.PROCESS_TIME, app_cpu_percent or total_user / combined * 100)

    def _track_memory(self, emitted: list[MetricRecord]) -> None:
        available = self._probe.available_memory_bytes()
        self._emit(emitted, PerformanceCounter.PRIVATE_BYTES, float(self._probe.process_resident_bytes()))
        self._emit(emitted, PerformanceCounter.AVAILABLE_BYTES, float(available))
        if self._live_metrics:
            self._emit(emitted, LiveMetricsCounter.COMMITTED_BYTES, float(self._probe.total_memory_bytes() - available))

    def _sample(self, category: CounterCategory) -> RateSample | None:
        current = self._aggregator.snapshot(category)
        previous = self._last_snapshots.get(category)
        if previous is None:
            self._last_snapshots[category] = current
            return None
        sample = compute_rate(previous, current)
        # Zero-length window: keep the old baseline so its events land in the next one
        if sample is not None:
            self._last_snapshots[category] = current
        return sample

    def _track_requests(self, emitted: list[MetricRecord]) -> None:
        sample = self._sample(CounterCategory.REQUESTS)
        if sample is None:
            return
        self._emit(emitted, PerformanceCounter.REQUEST_RATE, sample.rate_per_second)
        if not self._live_metrics or sample.interval_count > 0:
            self._emit(emitted, PerformanceCounter.REQUEST_DURATION, sample.average_duration_ms)
        if self._live_metrics:
            self._emit(emitted, LiveMetricsCounter.REQUEST_FAILURE_RATE, sample.failure_rate_per_second)

    def _track_dependencies(self, emitted: list[MetricRecord]) -> None:
        sample = self._sample(CounterCategory.DEPENDENCIES)
        if sample is None:
            return
        self._emit(emitted, LiveMetricsCounter.DEPENDENCY_RATE, sample.rate_per_second)
        self._emit(emitted, LiveMetricsCounter.DEPENDENCY_FAILURE_RATE, sample.failure_rate_per_second)
        if sample.interval_count > 0:
            self._emit(emitted, LiveMetricsCounter.DEPENDENCY_DURATION, sample.average_duration_ms)

    def _track_exceptions(self, emitted: list[MetricRecord]) -> None:
        sample = self._sample(CounterCategory.EXCEPTIONS)
        if sample is None:
            return
        self._emit(emitted, LiveMetricsCounter.EXCEPTION_RATE, sample.rate_per_second)

    def _tick(self, generation: int) -> None:
        try:
            self.track_performance()
        except Exception as e:
            logger.error("Performance sampler tick failed", error=str(e))
        with self._lock:
            if self._state is SamplerState.RUNNING and generation == self._generation:
                self._arm_timer()

    def _arm_timer(self) -> None:
        """Schedule the next tick. Must be called while holding _lock."""
        self._timer = self._timer_factory(self._interval_ms / 1000, functools.partial(self._tick, self._generation))
