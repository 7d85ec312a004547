# tests/property/settings.py
"""Standardized Hypothesis settings profiles for property tests.

Provides consistent test intensity across all property test modules.
Import these instead of using inline @settings(max_examples=...).

Usage:
    from tests.property.settings import STANDARD_SETTINGS

    @given(duration=durations)
    @STANDARD_SETTINGS
    def test_something(duration):
        ...

Tiers:
- STATE_MACHINE_SETTINGS: 200 examples - Stateful tests (buffer flush interleavings)
- STANDARD_SETTINGS: 100 examples - Regular property tests
- SLOW_SETTINGS: 50 examples - File system tests (disk retry store)
- QUICK_SETTINGS: 20 examples - Fast validation tests (simple rejection)
"""

from hypothesis import settings

# Stateful tests need enough steps to explore state space
STATE_MACHINE_SETTINGS = settings(max_examples=200, stateful_step_count=50)

# Standard property tests - good balance of coverage and speed
STANDARD_SETTINGS = settings(max_examples=100)

# I/O-bound tests - real file system
# Fewer examples due to inherent slowness
SLOW_SETTINGS = settings(max_examples=50)

# Quick validation tests - simple input rejection
QUICK_SETTINGS = settings(max_examples=20)
