"""Runtime configuration dataclasses.

These dataclasses are the immutable view of Settings that runtime
components receive. Settings (Pydantic, user-facing) are converted with
``from_settings()``; internal knobs come from INTERNAL_DEFAULTS.

Design Principles:
1. Frozen (immutable) - a sender never sees its config change underneath it
2. Slots - memory efficient, prevents attribute typos
3. Factory methods - from_settings(), default(), no_retry()
"""

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from appinsights.contracts.config.defaults import INTERNAL_DEFAULTS

if TYPE_CHECKING:
    from appinsights.core.config import InsightsSettings, RetrySettings


@dataclass(frozen=True, slots=True)
class RuntimeRetryConfig:
    """Transport retry behavior for a single transmission.

    Field Origins:
        - max_attempts: RetrySettings.max_attempts (direct mapping)
        - base_delay: RetrySettings.initial_delay_seconds (renamed)
        - max_delay: RetrySettings.max_delay_seconds (renamed)
        - jitter: INTERNAL (see INTERNAL_DEFAULTS["retry"]["jitter"])

    Note: max_attempts is the TOTAL number of tries, not the number of retries.
    """

    max_attempts: int
    base_delay: float  # seconds
    max_delay: float  # seconds
    jitter: float  # seconds - INTERNAL, not from Settings

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def default(cls) -> "RuntimeRetryConfig":
        return cls(
            max_attempts=3,
            base_delay=0.5,
            max_delay=10.0,
            jitter=float(INTERNAL_DEFAULTS["retry"]["jitter"]),
        )

    @classmethod
    def no_retry(cls) -> "RuntimeRetryConfig":
        """Single attempt; failures go straight to disk."""
        return cls(max_attempts=1, base_delay=0.0, max_delay=0.0, jitter=0.0)

    @classmethod
    def from_settings(cls, settings: "RetrySettings") -> "RuntimeRetryConfig":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.initial_delay_seconds,
            max_delay=settings.max_delay_seconds,
            jitter=float(INTERNAL_DEFAULTS["retry"]["jitter"]),
        )


@dataclass(frozen=True, slots=True)
class RuntimeSenderConfig:
    """Everything RetryingSender and DiskRetryStore need.

    Field Origins:
        - instrumentation_key / ingestion_url: resolved by InsightsSettings
        - timeout_seconds, compress: InsightsSettings (direct)
        - disk_retry_*: DiskRetrySettings (renamed)
        - temp_root: DiskRetrySettings.temp_root, None means the OS temp dir
        - retry: RuntimeRetryConfig.from_settings(settings.retry)
    """

    instrumentation_key: str
    ingestion_url: str
    timeout_seconds: float
    compress: bool
    disk_retry_enabled: bool
    disk_retry_max_bytes: int
    resend_interval_seconds: float
    temp_root: Path | None
    retry: RuntimeRetryConfig

    @classmethod
    def from_settings(cls, settings: "InsightsSettings") -> "RuntimeSenderConfig":
        disk = settings.disk_retry
        return cls(
            instrumentation_key=settings.resolved_instrumentation_key,
            ingestion_url=settings.ingestion_url,
            timeout_seconds=settings.timeout_seconds,
            compress=settings.compress,
            disk_retry_enabled=disk.enabled,
            disk_retry_max_bytes=disk.max_bytes,
            resend_interval_seconds=disk.resend_interval_ms / 1000,
            temp_root=disk.temp_root,
            retry=RuntimeRetryConfig.from_settings(settings.retry),
        )
