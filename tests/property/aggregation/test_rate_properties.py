# tests/property/aggregation/test_rate_properties.py
"""Property-based tests for duration parsing and rate computation.

These tests verify that:
- parse_duration never raises and never returns a negative or non-finite value
- Timespan strings round-trip to the expected number of milliseconds
- compute_rate yields None exactly when no time elapsed
- Rates are never negative, even across counter resets
- Aggregated counts equal the number of valid events recorded
"""

from __future__ import annotations

import math

import pytest
from hypothesis import given
from hypothesis import strategies as st

from appinsights.aggregation.rates import RateCounterAggregator, compute_rate, parse_duration
from appinsights.contracts.enums import CounterCategory
from appinsights.contracts.metrics import CounterSnapshot
from tests.property.conftest import arbitrary_values, numeric_durations, snapshots, timespans
from tests.property.settings import STANDARD_SETTINGS

# =============================================================================
# parse_duration
# =============================================================================


class TestParseDurationProperties:
    @given(value=arbitrary_values)
    @STANDARD_SETTINGS
    def test_never_raises_and_result_is_valid(self, value: object) -> None:
        """Any input yields None or a finite non-negative duration."""
        result = parse_duration(value)

        assert result is None or (math.isfinite(result) and result >= 0)

    @given(value=numeric_durations)
    @STANDARD_SETTINGS
    def test_numbers_are_milliseconds(self, value: float) -> None:
        assert parse_duration(value) == float(value)

    @given(span=timespans())
    @STANDARD_SETTINGS
    def test_timespans_parse_to_milliseconds(self, span: tuple[str, float]) -> None:
        text, expected = span

        assert parse_duration(text) == pytest.approx(expected)


# =============================================================================
# compute_rate
# =============================================================================


class TestComputeRateProperties:
    @given(previous=snapshots(), current=snapshots())
    @STANDARD_SETTINGS
    def test_none_iff_no_time_elapsed(self, previous: CounterSnapshot, current: CounterSnapshot) -> None:
        sample = compute_rate(previous, current)

        assert (sample is None) == (current.captured_at_ms <= previous.captured_at_ms)

    @given(previous=snapshots(), current=snapshots())
    @STANDARD_SETTINGS
    def test_rates_never_negative(self, previous: CounterSnapshot, current: CounterSnapshot) -> None:
        sample = compute_rate(previous, current)
        if sample is None:
            return

        assert sample.interval_count >= 0
        assert sample.interval_failed_count >= 0
        assert sample.rate_per_second >= 0
        assert sample.failure_rate_per_second >= 0
        assert sample.average_duration_ms >= 0

    @given(previous=snapshots(), current=snapshots())
    @STANDARD_SETTINGS
    def test_idle_window_has_zero_average(self, previous: CounterSnapshot, current: CounterSnapshot) -> None:
        sample = compute_rate(previous, current)
        if sample is None or sample.interval_count > 0:
            return

        assert sample.average_duration_ms == 0.0


# =============================================================================
# RateCounterAggregator
# =============================================================================


class TestAggregatorProperties:
    @given(events=st.lists(st.tuples(st.one_of(numeric_durations, st.text(max_size=8)), st.booleans()), max_size=50))
    @STANDARD_SETTINGS
    def test_counts_match_valid_events(self, events: list[tuple[object, bool]]) -> None:
        aggregator = RateCounterAggregator(clock_ms=lambda: 0)
        aggregator.set_enabled(True)

        for duration, success in events:
            aggregator.count_request(duration, success)

        valid = [(d, s) for d, s in events if parse_duration(d) is not None]
        snap = aggregator.snapshot(CounterCategory.REQUESTS)
        assert snap.count == len(valid)
        assert snap.failed_count == sum(1 for _, s in valid if s is False)
        assert snap.interval_duration_sum == pytest.approx(sum(parse_duration(d) or 0.0 for d, _ in valid))

    @given(events=st.lists(numeric_durations, max_size=20))
    @STANDARD_SETTINGS
    def test_disabled_aggregator_counts_nothing(self, events: list[float]) -> None:
        aggregator = RateCounterAggregator(clock_ms=lambda: 0)

        for duration in events:
            aggregator.count_dependency(duration, False)

        assert aggregator.snapshot(CounterCategory.DEPENDENCIES).count == 0
