# tests/unit/aggregation/test_rates.py
"""Unit tests for the rate counter aggregator.

Tests cover:
- Duration parsing (numbers, timespan strings, invalid input)
- Event recording and the enabled gate
- compute_rate() arithmetic, zero-length windows and counter resets
"""

import math
import threading
from unittest.mock import patch

import pytest

from appinsights.aggregation.rates import RateCounterAggregator, compute_rate, parse_duration
from appinsights.contracts.enums import CounterCategory
from appinsights.contracts.metrics import CounterSnapshot


class ManualClock:
    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def aggregator(clock: ManualClock) -> RateCounterAggregator:
    aggregator = RateCounterAggregator(clock_ms=clock)
    aggregator.set_enabled(True)
    return aggregator


def snapshot(count: int, failed: int, duration_sum: float, at_ms: int) -> CounterSnapshot:
    return CounterSnapshot(count=count, failed_count=failed, interval_duration_sum=duration_sum, captured_at_ms=at_ms)


# =============================================================================
# parse_duration
# =============================================================================


class TestParseDuration:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (0, 0.0),
            (1500, 1500.0),
            (12.5, 12.5),
            ("00:00:01.500", 1500.0),
            ("00:00:00.123", 123.0),
            ("01:02:03", 3_723_000.0),
            ("1.00:00:00", 86_400_000.0),
            ("00:00:00.1234567", 123.4567),
        ],
    )
    def test_valid_durations(self, value: object, expected: float) -> None:
        assert parse_duration(value) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "value",
        [
            None,
            True,
            False,
            -1,
            math.nan,
            math.inf,
            "",
            "abc",
            "1500",
            "00:60:00",
            "00:00:60",
            "24:00:00",
            "00:00",
            [1],
        ],
    )
    def test_invalid_durations_return_none(self, value: object) -> None:
        assert parse_duration(value) is None


# =============================================================================
# Recording
# =============================================================================


class TestRecordEvent:
    def test_disabled_aggregator_ignores_events(self, clock: ManualClock) -> None:
        aggregator = RateCounterAggregator(clock_ms=clock)

        assert aggregator.count_request(100, True) is False
        assert aggregator.count_exception() is False
        assert aggregator.snapshot(CounterCategory.REQUESTS).count == 0
        assert aggregator.snapshot(CounterCategory.EXCEPTIONS).count == 0

    def test_request_success_and_failure(self, aggregator: RateCounterAggregator) -> None:
        aggregator.count_request(100, True)
        aggregator.count_request("00:00:00.300", False)

        snap = aggregator.snapshot(CounterCategory.REQUESTS)
        assert snap.count == 2
        assert snap.failed_count == 1
        assert snap.interval_duration_sum == pytest.approx(400.0)

    def test_only_false_counts_as_failure(self, aggregator: RateCounterAggregator) -> None:
        aggregator.record_event(CounterCategory.DEPENDENCIES, 10, None)  # type: ignore[arg-type]
        aggregator.record_event(CounterCategory.DEPENDENCIES, 10, 0)  # type: ignore[arg-type]

        assert aggregator.snapshot(CounterCategory.DEPENDENCIES).failed_count == 0

    def test_invalid_duration_is_a_no_op(self, aggregator: RateCounterAggregator) -> None:
        assert aggregator.count_request("not a duration", False) is False
        assert aggregator.count_dependency(-5, True) is False

        assert aggregator.snapshot(CounterCategory.REQUESTS).count == 0
        assert aggregator.snapshot(CounterCategory.DEPENDENCIES).count == 0

    def test_exception_counts_without_duration(self, aggregator: RateCounterAggregator) -> None:
        aggregator.count_exception()
        aggregator.count_exception()

        snap = aggregator.snapshot(CounterCategory.EXCEPTIONS)
        assert snap.count == 2
        assert snap.interval_duration_sum == 0.0

    def test_categories_are_independent(self, aggregator: RateCounterAggregator) -> None:
        aggregator.count_request(10, True)

        assert aggregator.snapshot(CounterCategory.DEPENDENCIES).count == 0

    def test_snapshot_is_stamped_with_clock(self, aggregator: RateCounterAggregator, clock: ManualClock) -> None:
        clock.advance(2500)
        assert aggregator.snapshot(CounterCategory.REQUESTS).captured_at_ms == clock.now

    def test_invalid_duration_logged_at_debug(self, aggregator: RateCounterAggregator) -> None:
        with patch("appinsights.aggregation.rates.logger") as mock_logger:
            aggregator.count_request("garbage", True)

        mock_logger.debug.assert_called_once()
        assert mock_logger.debug.call_args[1]["category"] == "requests"

    def test_concurrent_increments_are_not_lost(self, aggregator: RateCounterAggregator) -> None:
        def hammer() -> None:
            for _ in range(2000):
                aggregator.count_request(1, False)

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snap = aggregator.snapshot(CounterCategory.REQUESTS)
        assert snap.count == 16_000
        assert snap.failed_count == 16_000
        assert snap.interval_duration_sum == 16_000.0


# =============================================================================
# compute_rate
# =============================================================================


class TestComputeRate:
    def test_rates_over_window(self) -> None:
        previous = snapshot(10, 1, 1000.0, 0)
        current = snapshot(30, 5, 5000.0, 10_000)

        sample = compute_rate(previous, current)

        assert sample is not None
        assert sample.interval_count == 20
        assert sample.interval_failed_count == 4
        assert sample.elapsed_seconds == 10.0
        assert sample.rate_per_second == 2.0
        assert sample.failure_rate_per_second == 0.4
        assert sample.average_duration_ms == 200.0

    def test_zero_elapsed_yields_none(self) -> None:
        assert compute_rate(snapshot(0, 0, 0, 500), snapshot(5, 0, 50, 500)) is None

    def test_negative_elapsed_yields_none(self) -> None:
        assert compute_rate(snapshot(0, 0, 0, 500), snapshot(5, 0, 50, 400)) is None

    def test_idle_interval_has_zero_average(self) -> None:
        sample = compute_rate(snapshot(3, 0, 300, 0), snapshot(3, 0, 300, 1000))

        assert sample is not None
        assert sample.interval_count == 0
        assert sample.rate_per_second == 0.0
        assert sample.average_duration_ms == 0.0

    def test_counter_reset_clamps_to_zero(self) -> None:
        sample = compute_rate(snapshot(100, 10, 9000, 0), snapshot(4, 1, 100, 1000))

        assert sample is not None
        assert sample.interval_count == 0
        assert sample.interval_failed_count == 0
        assert sample.rate_per_second == 0.0

    def test_available_as_static_method(self) -> None:
        sample = RateCounterAggregator.compute_rate(snapshot(0, 0, 0, 0), snapshot(1, 0, 10, 1000))

        assert sample is not None
        assert sample.rate_per_second == 1.0

    def test_end_to_end_with_aggregator(self, aggregator: RateCounterAggregator, clock: ManualClock) -> None:
        before = aggregator.snapshot(CounterCategory.REQUESTS)
        aggregator.count_request(100, True)
        aggregator.count_request(300, False)
        clock.advance(2000)

        sample = compute_rate(before, aggregator.snapshot(CounterCategory.REQUESTS))

        assert sample is not None
        assert sample.rate_per_second == 1.0
        assert sample.failure_rate_per_second == 0.5
        assert sample.average_duration_ms == 200.0
