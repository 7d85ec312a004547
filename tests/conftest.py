# tests/conftest.py
"""Shared test fixtures and helpers.

Timer Control:
- fake_timers: a FakeTimerFactory (tests/helpers/timers.py). Pass it as
  ``timer_factory`` and fire timers explicitly.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from hypothesis import Phase, Verbosity, settings

from appinsights.channel.access import DirectoryAccessControl
from appinsights.contracts.config.runtime import RuntimeRetryConfig, RuntimeSenderConfig
from appinsights.core.config import InsightsSettings
from tests.helpers.timers import FakeTimerFactory

TEST_IKEY = "1aa11111-bbbb-1ccc-8ddd-eeeeffff3333"
TEST_INGESTION_URL = "https://ingest.example.com/v2/track"


@pytest.fixture
def fake_timers() -> FakeTimerFactory:
    return FakeTimerFactory()


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def insights_settings() -> InsightsSettings:
    """Minimal valid settings; disk retry off so nothing touches the temp dir."""
    return InsightsSettings(
        connection_string=f"InstrumentationKey={TEST_IKEY};IngestionEndpoint=https://ingest.example.com/",
        compress=False,
        disk_retry={"enabled": False},
        retry={"max_attempts": 1, "initial_delay_seconds": 0, "max_delay_seconds": 0},
    )


@pytest.fixture
def make_sender_config(tmp_path: Path) -> Callable[..., RuntimeSenderConfig]:
    """Build a RuntimeSenderConfig rooted in tmp_path, overridable per test."""

    def _make(**overrides: object) -> RuntimeSenderConfig:
        values: dict[str, object] = {
            "instrumentation_key": TEST_IKEY,
            "ingestion_url": TEST_INGESTION_URL,
            "timeout_seconds": 5.0,
            "compress": False,
            "disk_retry_enabled": True,
            "disk_retry_max_bytes": 1024 * 1024,
            "resend_interval_seconds": 60.0,
            "temp_root": tmp_path,
            "retry": RuntimeRetryConfig.no_retry(),
        }
        values.update(overrides)
        return RuntimeSenderConfig(**values)  # type: ignore[arg-type]

    return _make


@pytest.fixture(autouse=True)
def reset_access_control() -> Iterator[None]:
    """Provisioning state is process-wide; isolate it per test."""
    DirectoryAccessControl.reset_for_tests()
    yield
    DirectoryAccessControl.reset_for_tests()


# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
