"""Configuration schema and loading for the telemetry SDK.

Settings are Pydantic models (validated, frozen). ``load_settings`` reads a
YAML file plus APPINSIGHTS_* environment overrides through Dynaconf.

The connection string is parsed into a single resolved pair
(instrumentation key, ingestion URL). Deriving that pair from other
sources is the caller's job.
"""

import re
from pathlib import Path
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, Field, field_validator, model_validator

from appinsights.errors import InsightsConfigurationError

DEFAULT_INGESTION_ENDPOINT = "https://dc.services.visualstudio.com"
INGESTION_PATH = "/v2/track"


class ConnectionString(NamedTuple):
    instrumentation_key: str
    ingestion_endpoint: str


def parse_connection_string(connection_string: str) -> ConnectionString:
    """Parse ``Key=Value;Key=Value`` into the fields the SDK uses.

    Keys are case-insensitive. Only InstrumentationKey and IngestionEndpoint
    are read; other keys (LiveEndpoint, Authorization, ...) are ignored.

    Raises:
        InsightsConfigurationError: If a segment is malformed or the
            instrumentation key is missing.
    """
    fields: dict[str, str] = {}
    for segment in connection_string.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep or not key.strip():
            raise InsightsConfigurationError("connection_string", f"malformed segment {segment!r}")
        fields[key.strip().lower()] = value.strip()

    instrumentation_key = fields.get("instrumentationkey", "")
    if not instrumentation_key:
        raise InsightsConfigurationError("connection_string", "InstrumentationKey is required")

    endpoint = fields.get("ingestionendpoint") or DEFAULT_INGESTION_ENDPOINT
    return ConnectionString(instrumentation_key=instrumentation_key, ingestion_endpoint=endpoint.rstrip("/"))


class ChannelSettings(BaseModel):
    """In-memory batching configuration."""

    model_config = {"frozen": True}

    disabled: bool = Field(default=False, description="Drop all telemetry instead of buffering it")
    max_batch_size: int = Field(default=250, gt=0, description="Flush when this many envelopes are buffered")
    max_batch_interval_ms: int = Field(default=15_000, gt=0, description="Flush this long after the first buffered envelope")


class DiskRetrySettings(BaseModel):
    """Disk-backed retry of undelivered batches.

    Example YAML:
        disk_retry:
          enabled: true
          max_bytes: 52428800
          resend_interval_ms: 60000
    """

    model_config = {"frozen": True}

    enabled: bool = Field(default=True, description="Persist undeliverable batches for later resubmission")
    max_bytes: int = Field(default=50 * 1024 * 1024, ge=0, description="Directory size cap; writes above it are dropped")
    resend_interval_ms: int = Field(default=60_000, ge=0, description="Delay before resubmitting persisted batches")
    temp_root: Path | None = Field(default=None, description="Parent of the retry directory (default: OS temp dir)")


class RetrySettings(BaseModel):
    """Transport-level retry before falling back to disk."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, gt=0, description="Total transmission attempts per batch")
    initial_delay_seconds: float = Field(default=0.5, ge=0, description="Initial backoff delay")
    max_delay_seconds: float = Field(default=10.0, ge=0, description="Maximum backoff delay")


class PerformanceSettings(BaseModel):
    """Performance counter collection."""

    model_config = {"frozen": True}

    enabled: bool = True
    collection_interval_ms: int = Field(default=60_000, gt=0)
    live_metrics: bool = Field(default=False, description="Also report dependency/exception rates and committed bytes")


class PreAggregatedMetricsSettings(BaseModel):
    """Standard metrics pre-aggregated in-process per dimension set."""

    model_config = {"frozen": True}

    enabled: bool = True
    collection_interval_ms: int = Field(default=60_000, gt=0)


class DiagnosticsSettings(BaseModel):
    """The SDK's own diagnostic output (see core.logging).

    Example YAML:
        diagnostics:
          enabled: true
          level: DEBUG
    """

    model_config = {"frozen": True}

    enabled: bool = Field(default=False, description="Route SDK log events to stderr when the client is created")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="WARNING", description="Minimum level of SDK log events")
    json_output: bool = Field(default=False, description="Render SDK log events as JSON lines")


class InsightsSettings(BaseModel):
    """Top-level SDK configuration.

    Exactly one of ``connection_string`` or ``instrumentation_key`` must
    resolve to an instrumentation key.
    """

    model_config = {"frozen": True}

    connection_string: str | None = Field(default=None, description="Key=Value;... connection string")
    instrumentation_key: str | None = Field(default=None, description="Used when no connection string is given")
    ingestion_endpoint: str = Field(default=DEFAULT_INGESTION_ENDPOINT, description="Used when no connection string is given")
    timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP timeout per transmission")
    compress: bool = Field(default=True, description="gzip request bodies")

    channel: ChannelSettings = Field(default_factory=ChannelSettings)
    disk_retry: DiskRetrySettings = Field(default_factory=DiskRetrySettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings)
    pre_aggregated_metrics: PreAggregatedMetricsSettings = Field(default_factory=PreAggregatedMetricsSettings)
    diagnostics: DiagnosticsSettings = Field(default_factory=DiagnosticsSettings)

    @field_validator("connection_string")
    @classmethod
    def validate_connection_string(cls, v: str | None) -> str | None:
        if v is not None:
            try:
                parse_connection_string(v)
            except InsightsConfigurationError as e:
                raise ValueError(e.message) from None
        return v

    @model_validator(mode="after")
    def validate_key_present(self) -> "InsightsSettings":
        if self.connection_string is None and not self.instrumentation_key:
            raise ValueError("Either connection_string or instrumentation_key is required")
        return self

    @property
    def resolved_instrumentation_key(self) -> str:
        if self.connection_string is not None:
            return parse_connection_string(self.connection_string).instrumentation_key
        assert self.instrumentation_key is not None  # guaranteed by validate_key_present
        return self.instrumentation_key

    @property
    def ingestion_url(self) -> str:
        if self.connection_string is not None:
            endpoint = parse_connection_string(self.connection_string).ingestion_endpoint
        else:
            endpoint = self.ingestion_endpoint.rstrip("/")
        return endpoint + INGESTION_PATH


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values."""
    import os

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            default = match.group(2)
            if default is not None:
                return default
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def load_settings(config_path: Path) -> InsightsSettings:
    """Load settings from YAML file with environment variable overrides.

    Precedence:
    1. Environment variables (APPINSIGHTS_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema

    Nested keys use a double underscore: APPINSIGHTS_CHANNEL__MAX_BATCH_SIZE=10.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="APPINSIGHTS",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): _lower_keys(v) for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _expand_env_vars(raw_config)

    return InsightsSettings(**raw_config)
