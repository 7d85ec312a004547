# tests/property/conftest.py
"""Shared Hypothesis strategies for property-based tests.

Strategy Categories:
- Durations (numeric milliseconds and timespan strings)
- Counter snapshots (monotonic and reset sequences)
- Envelopes (JSON-safe telemetry items)

Usage:
    from tests.property.conftest import timespans, snapshots

    @given(text=timespans)
    def test_parse(text: str) -> None:
        ...
"""

# =============================================================================
# Hypothesis Settings
# =============================================================================
#
# For standardized @settings decorators, import from tests.property.settings:
#   from tests.property.settings import STANDARD_SETTINGS, STATE_MACHINE_SETTINGS
#
# Tiers: STATE_MACHINE (200), STANDARD (100), SLOW (50), QUICK (20)
# =============================================================================

from __future__ import annotations

from typing import Any

from hypothesis import strategies as st

from appinsights.contracts.metrics import CounterSnapshot

# =============================================================================
# Durations
# =============================================================================

# Finite, non-negative milliseconds
numeric_durations = st.one_of(
    st.integers(min_value=0, max_value=10**12),
    st.floats(min_value=0, max_value=1e12, allow_nan=False, allow_infinity=False),
)


@st.composite
def timespans(draw: st.DrawFn) -> tuple[str, float]:
    """A ``[d.]HH:MM:SS[.fff]`` string and its value in milliseconds."""
    days = draw(st.integers(min_value=0, max_value=30))
    hours = draw(st.integers(min_value=0, max_value=23))
    minutes = draw(st.integers(min_value=0, max_value=59))
    seconds = draw(st.integers(min_value=0, max_value=59))
    millis = draw(st.integers(min_value=0, max_value=999))

    text = f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"
    if days:
        text = f"{days}.{text}"
    expected = ((((days * 24 + hours) * 60 + minutes) * 60 + seconds) * 1000) + millis
    return text, float(expected)


# Anything at all; parse_duration must never raise on it
arbitrary_values = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(),
    st.floats(),
    st.text(max_size=30),
    st.lists(st.integers(), max_size=3),
)


# =============================================================================
# Counter snapshots
# =============================================================================


@st.composite
def snapshots(draw: st.DrawFn) -> CounterSnapshot:
    count = draw(st.integers(min_value=0, max_value=10**9))
    failed = draw(st.integers(min_value=0, max_value=count))
    return CounterSnapshot(
        count=count,
        failed_count=failed,
        interval_duration_sum=draw(st.floats(min_value=0, max_value=1e12, allow_nan=False, allow_infinity=False)),
        captured_at_ms=draw(st.integers(min_value=0, max_value=2**41)),
    )


# =============================================================================
# Envelopes
# =============================================================================

json_scalars = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(2**53 - 1), max_value=2**53 - 1),
    st.floats(allow_nan=False, allow_infinity=False),
    st.text(max_size=20),
)

properties = st.dictionaries(st.text(min_size=1, max_size=10), st.text(max_size=20), max_size=5)


@st.composite
def envelopes(draw: st.DrawFn) -> dict[str, Any]:
    """A minimal EventData envelope with random properties."""
    return {
        "name": draw(st.text(min_size=1, max_size=20)),
        "data": {
            "baseType": "EventData",
            "baseData": {
                "name": draw(st.text(max_size=20)),
                "properties": draw(properties),
                "measurement": draw(json_scalars),
            },
        },
    }
