"""TelemetryClient: the application-facing entry point.

Wires one RateCounterAggregator, PerformanceSampler, PreAggregatedMetrics,
DeliveryBuffer and RetryingSender together. Envelopes passed to track()
run through the telemetry processors and, if accepted, go to the buffer.

Usage:
    settings = load_settings(Path("appinsights.yaml"))
    client = create_telemetry_client(settings)
    client.start()
    client.track(envelope)
    client.flush()
    client.close()
"""

from collections.abc import Callable
from typing import Any

import structlog

from appinsights import __version__
from appinsights.aggregation.preaggregated import PreAggregatedMetrics
from appinsights.aggregation.rates import RateCounterAggregator
from appinsights.channel.buffer import DeliveryBuffer
from appinsights.channel.sender import RetryingSender
from appinsights.collection.performance import PerformanceSampler
from appinsights.collection.probes import SystemProbe
from appinsights.contracts.config.runtime import RuntimeSenderConfig
from appinsights.contracts.envelope import Envelope, SendCallback, TelemetryProcessor
from appinsights.contracts.metrics import MetricRecord
from appinsights.core.config import InsightsSettings
from appinsights.core.scheduling import TimerFactory, start_daemon_timer
from appinsights.envelopes import create_metric_envelope, default_context_tags

logger = structlog.get_logger(__name__)


class TelemetryClient:
    """Tracks telemetry and owns the delivery pipeline.

    Attributes:
        common_properties: Added to every metric the client shapes, unless
            the item already sets the same property.
        context_tags: Envelope tags for metrics the client shapes.
        aggregator: Rate counters shared with the performance sampler.
        performance: Performance counter sampler.
        pre_aggregated_metrics: Standard metrics per dimension set.
        channel: In-memory batching buffer.
        sender: Network sender with disk retry.

    Thread Safety:
        track() may be called from any thread. Processor registration is
        expected at setup; the processor list is copied per item.
    """

    def __init__(
        self,
        settings: InsightsSettings,
        *,
        sender: RetryingSender | None = None,
        probe: SystemProbe | None = None,
        timer_factory: TimerFactory = start_daemon_timer,
    ) -> None:
        """Build the pipeline. Nothing is collected until start().

        Args:
            settings: Validated SDK settings.
            sender: Pre-built sender (tests inject one with a mocked transport).
            probe: OS readings for the performance sampler.
            timer_factory: Schedules every background timer of the pipeline.
        """
        self._settings = settings
        self._processors: list[TelemetryProcessor] = []
        self.common_properties: dict[str, str] = {}
        self.context_tags: dict[str, str] = default_context_tags(__version__)

        self.sender = sender if sender is not None else RetryingSender(
            RuntimeSenderConfig.from_settings(settings),
            timer_factory=timer_factory,
        )
        # Getters read the current settings on every call
        self.channel = DeliveryBuffer(
            is_disabled=lambda: self._settings.channel.disabled,
            batch_size=lambda: self._settings.channel.max_batch_size,
            batch_interval_ms=lambda: self._settings.channel.max_batch_interval_ms,
            sender=self.sender,
            timer_factory=timer_factory,
        )

        self.aggregator = RateCounterAggregator()
        self.performance = PerformanceSampler(
            self.aggregator,
            self.track_metric_record,
            probe,
            interval_ms=settings.performance.collection_interval_ms,
            live_metrics=settings.performance.live_metrics,
            timer_factory=timer_factory,
        )
        self.pre_aggregated_metrics = PreAggregatedMetrics(
            self.track_metric_record,
            interval_ms=settings.pre_aggregated_metrics.collection_interval_ms,
            timer_factory=timer_factory,
        )

    @property
    def settings(self) -> InsightsSettings:
        return self._settings

    @settings.setter
    def settings(self, value: InsightsSettings) -> None:
        """Swap settings at runtime. Channel settings apply to the next envelope.

        Endpoint and disk retry settings are fixed when the sender is built.
        """
        self._settings = value

    @property
    def instrumentation_key(self) -> str:
        return self._settings.resolved_instrumentation_key

    @property
    def telemetry_processors(self) -> tuple[TelemetryProcessor, ...]:
        return tuple(self._processors)

    def start(self) -> None:
        """Start auto-collection according to settings."""
        self.performance.enable(self._settings.performance.enabled)
        self.pre_aggregated_metrics.enable(self._settings.pre_aggregated_metrics.enabled)

    def add_telemetry_processor(self, processor: TelemetryProcessor) -> None:
        """Append a processor. Processors run in the order they were added."""
        self._processors.append(processor)

    def clear_telemetry_processors(self) -> None:
        self._processors = []

    def track(self, envelope: Envelope, context_objects: dict[str, Any] | None = None) -> None:
        """Run processors on an envelope and buffer it if accepted."""
        if not envelope:
            logger.warning("track() requires an envelope")
            return
        if self._run_processors(envelope, context_objects):
            self.channel.send(envelope)

    def track_metric(
        self,
        name: str,
        value: float,
        *,
        count: int = 1,
        namespace: str | None = None,
        properties: dict[str, str] | None = None,
    ) -> None:
        """Track a single metric value (or a pre-aggregated one with ``count``)."""
        self.track_metric_record(
            MetricRecord.with_properties(name, value, properties or {}, count=count, namespace=namespace)
        )

    def track_metric_record(self, record: MetricRecord) -> None:
        envelope = create_metric_envelope(
            record,
            instrumentation_key=self.instrumentation_key,
            tags=self.context_tags,
            common_properties=self.common_properties,
        )
        self.track(envelope)

    def count_request(self, duration: object, success: bool) -> None:
        self.aggregator.count_request(duration, success)

    def count_dependency(self, duration: object, success: bool) -> None:
        self.aggregator.count_dependency(duration, success)

    def count_exception(self) -> None:
        self.aggregator.count_exception()

    def flush(self, is_app_crashing: bool = False, callback: SendCallback | None = None) -> None:
        """Send everything buffered now.

        Args:
            is_app_crashing: Persist to disk synchronously instead of sending.
            callback: Receives the response text ("" if nothing was sent).
        """
        self.channel.trigger_send(is_app_crashing, callback)

    def close(self) -> None:
        """Stop collection, flush the buffer and shut the sender down."""
        self.performance.dispose()
        self.pre_aggregated_metrics.dispose()
        self.flush()
        self.sender.close()

    def _run_processors(self, envelope: Envelope, context_objects: dict[str, Any] | None) -> bool:
        """Return False if any processor rejects the envelope.

        A processor that raises counts as accepting; the remaining
        processors still run.
        """
        context = dict(context_objects or {})
        for processor in list(self._processors):
            try:
                accepted = processor(envelope, context).accept
            except Exception as e:
                logger.warning(
                    "Telemetry processor failed; item will be sent",
                    processor=_processor_name(processor),
                    envelope_name=envelope.get("name"),
                    error=str(e),
                )
                continue
            if not accepted:
                return False
        return True


def _processor_name(processor: Callable[..., Any]) -> str:
    return getattr(processor, "__name__", type(processor).__name__)
