"""Rate counter aggregation.

Producers (request/dependency instrumentation, telemetry processors) record
discrete events; a single sampler reads snapshots once per interval and
turns the (previous, current) pair into per-second rates and average
durations.

Key design decisions:
- Counters are monotonic since process start; the sampler keeps its own
  previous snapshot, so reads never reset producer state.
- Increments take a lock. Producers run on arbitrary threads and
  ``count += 1`` is not atomic under preemptive threading.
- Bad input never raises: an unparseable duration is a no-op.
"""

import math
import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from appinsights.contracts.enums import CounterCategory
from appinsights.contracts.metrics import CounterSnapshot, RateSample

logger = structlog.get_logger(__name__)

# [d.]HH:MM:SS[.fraction] - the textual timespan format used in envelopes
_TIMESPAN_PATTERN = re.compile(r"^(?:(\d+)\.)?(\d{1,2}):(\d{2}):(\d{2})(?:\.(\d+))?$")


def parse_duration(value: object) -> float | None:
    """Convert a duration to milliseconds.

    Accepts a number of milliseconds, or a timespan string
    ``"HH:MM:SS.mmm"`` (optionally ``"d.HH:MM:SS.fffffff"``).

    Returns:
        Duration in milliseconds, or None if the value is not a valid,
        finite, non-negative duration.

    Example:
        >>> parse_duration("00:00:01.500")
        1500.0
        >>> parse_duration(1500)
        1500.0
    """
    # bool is an int subclass; True is not a duration
    if isinstance(value, bool):
        return None

    if isinstance(value, int | float):
        duration_ms = float(value)
    elif isinstance(value, str):
        match = _TIMESPAN_PATTERN.match(value.strip())
        if match is None:
            return None
        days_text, hours_text, minutes_text, seconds_text, fraction_text = match.groups()
        hours = int(hours_text)
        minutes = int(minutes_text)
        seconds = int(seconds_text)
        if hours > 23 or minutes > 59 or seconds > 59:
            return None
        total_seconds = ((int(days_text or 0) * 24 + hours) * 60 + minutes) * 60 + seconds
        fraction_ms = float(f"0.{fraction_text}") * 1000 if fraction_text else 0.0
        duration_ms = total_seconds * 1000 + fraction_ms
    else:
        return None

    if not math.isfinite(duration_ms) or duration_ms < 0:
        return None
    return duration_ms


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def compute_rate(previous: CounterSnapshot, current: CounterSnapshot) -> RateSample | None:
    """Derive per-second rates from two snapshots of the same counter.

    A counter that went backwards (process-level reset) yields an interval
    count of 0, never a negative rate.

    Returns:
        RateSample, or None when no time elapsed between the snapshots
        (nothing meaningful can be emitted for that window).
    """
    elapsed_ms = current.captured_at_ms - previous.captured_at_ms
    if elapsed_ms <= 0:
        return None
    elapsed_seconds = elapsed_ms / 1000

    interval_count = max(current.count - previous.count, 0)
    interval_failed = max(current.failed_count - previous.failed_count, 0)

    if interval_count > 0:
        average_duration_ms = max(current.interval_duration_sum - previous.interval_duration_sum, 0.0) / interval_count
    else:
        average_duration_ms = 0.0

    return RateSample(
        interval_count=interval_count,
        interval_failed_count=interval_failed,
        elapsed_seconds=elapsed_seconds,
        rate_per_second=interval_count / elapsed_seconds,
        failure_rate_per_second=interval_failed / elapsed_seconds,
        average_duration_ms=average_duration_ms,
    )


@dataclass(slots=True)
class _Counter:
    count: int = 0
    failed_count: int = 0
    duration_sum: float = 0.0


class RateCounterAggregator:
    """Process-wide monotonic counters for requests, dependencies and exceptions.

    One instance is created by the client and injected into every producer
    and into the PerformanceSampler that reads it. Recording is a no-op
    until the owning sampler enables the aggregator.

    Thread Safety:
        record_event()/count_*() may be called from any thread.
        snapshot() is consistent per category (count, failed_count and
        duration sum are read under the same lock).

    Example:
        aggregator = RateCounterAggregator()
        aggregator.set_enabled(True)
        aggregator.count_request("00:00:00.250", success=True)
        snap = aggregator.snapshot(CounterCategory.REQUESTS)
    """

    def __init__(self, *, clock_ms: Callable[[], int] | None = None) -> None:
        """Initialize the aggregator.

        Args:
            clock_ms: Epoch-milliseconds clock used to stamp snapshots.
                Defaults to wall-clock time; tests inject a fake.
        """
        self._lock = threading.Lock()
        self._counters: dict[CounterCategory, _Counter] = {category: _Counter() for category in CounterCategory}
        self._enabled = False
        self._clock_ms = clock_ms or _now_ms

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    def now_ms(self) -> int:
        return self._clock_ms()

    def record_event(self, category: CounterCategory, duration: object, success: bool) -> bool:
        """Record one completed event.

        Args:
            category: Counter to increment.
            duration: Milliseconds or a ``"HH:MM:SS.mmm"`` timespan.
            success: Only ``False`` counts as a failure.

        Returns:
            True if the event was counted, False if it was ignored
            (aggregator disabled or invalid duration).
        """
        if not self._enabled:
            return False

        duration_ms = parse_duration(duration)
        if duration_ms is None:
            logger.debug("Ignoring event with invalid duration", category=category.value, duration=repr(duration))
            return False

        with self._lock:
            counter = self._counters[category]
            counter.count += 1
            if success is False:
                counter.failed_count += 1
            counter.duration_sum += duration_ms
        return True

    def count_request(self, duration: object, success: bool) -> bool:
        return self.record_event(CounterCategory.REQUESTS, duration, success)

    def count_dependency(self, duration: object, success: bool) -> bool:
        return self.record_event(CounterCategory.DEPENDENCIES, duration, success)

    def count_exception(self) -> bool:
        """Record one exception. Exceptions carry no duration."""
        return self.record_event(CounterCategory.EXCEPTIONS, 0, True)

    def snapshot(self, category: CounterCategory) -> CounterSnapshot:
        """Read the current totals for one category, stamped with the clock."""
        with self._lock:
            counter = self._counters[category]
            count, failed, duration_sum = counter.count, counter.failed_count, counter.duration_sum
        return CounterSnapshot(
            count=count,
            failed_count=failed,
            interval_duration_sum=duration_sum,
            captured_at_ms=self._clock_ms(),
        )

    compute_rate = staticmethod(compute_rate)
