"""In-memory batching of serialized envelopes.

Envelopes are serialized on arrival (so a later mutation by the caller
cannot change what is sent) and accumulated until either the batch size
is reached or the batch interval elapses after the first buffered item.
Flushing hands the whole buffer to the sender as one batch.

Key design decisions:
- Config getters are evaluated on every call so runtime settings changes
  (disable, batch size) take effect immediately.
- Taking the buffer and cancelling the pending timer happen under one
  lock, so no envelope lands in two batches.
- Aggregate logging: dropped envelopes are logged every N drops, not per
  envelope.
"""

import functools
import json
import threading
from collections.abc import Callable
from typing import Protocol

import structlog

from appinsights.contracts.config.defaults import INTERNAL_DEFAULTS
from appinsights.contracts.envelope import Envelope, SendCallback
from appinsights.core.scheduling import Cancellable, TimerFactory, start_daemon_timer

logger = structlog.get_logger(__name__)


class BatchSender(Protocol):
    """The part of RetryingSender the buffer needs."""

    def send(self, batch: list[str], callback: SendCallback | None = None) -> None: ...

    def save_on_crash(self, payload: str) -> bool: ...


class DeliveryBuffer:
    """Batches envelopes for the sender.

    Thread Safety:
        send() and trigger_send() may be called from any thread, including
        the flush timer thread. The sender is called outside the lock.

    Example:
        buffer = DeliveryBuffer(
            is_disabled=lambda: settings.channel.disabled,
            batch_size=lambda: settings.channel.max_batch_size,
            batch_interval_ms=lambda: settings.channel.max_batch_interval_ms,
            sender=sender,
        )
        buffer.send(envelope)
        buffer.trigger_send(is_crashing=False)
    """

    _LOG_INTERVAL = int(INTERNAL_DEFAULTS["buffer"]["drop_log_interval"])

    def __init__(
        self,
        is_disabled: Callable[[], bool],
        batch_size: Callable[[], int],
        batch_interval_ms: Callable[[], int],
        sender: BatchSender,
        *,
        timer_factory: TimerFactory = start_daemon_timer,
    ) -> None:
        self._is_disabled = is_disabled
        self._batch_size = batch_size
        self._batch_interval_ms = batch_interval_ms
        self._sender = sender
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._buffer: list[str] = []
        self._timer: Cancellable | None = None
        # Bumped on every flush; a timer from an earlier generation is stale
        self._generation = 0

        self._dropped_count = 0
        self._last_logged_drop_count = 0

    @property
    def dropped_count(self) -> int:
        """Envelopes rejected as empty or unserializable."""
        return self._dropped_count

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def __len__(self) -> int:
        return len(self._buffer)

    def send(self, envelope: Envelope | None) -> None:
        """Buffer one envelope.

        Empty or unserializable envelopes are dropped with a warning. When
        the channel is disabled the envelope is discarded silently.
        """
        if not envelope:
            logger.warning("Cannot send empty envelope")
            self._count_drop()
            return

        if self._is_disabled():
            return

        try:
            serialized = json.dumps(envelope, allow_nan=False)
        except (TypeError, ValueError) as e:
            # TypeError: unsupported type; ValueError: circular reference or NaN
            name = envelope.get("name") if isinstance(envelope, dict) else None
            logger.warning("Failed to serialize envelope; dropped", envelope_name=name, error=str(e))
            self._count_drop()
            return

        flush_now = False
        with self._lock:
            self._buffer.append(serialized)
            if len(self._buffer) >= self._batch_size():
                flush_now = True
            elif self._timer is None:
                self._timer = self._timer_factory(
                    self._batch_interval_ms() / 1000, functools.partial(self._on_timer, self._generation)
                )

        if flush_now:
            self.trigger_send(is_crashing=False)

    def trigger_send(self, is_crashing: bool, callback: SendCallback | None = None) -> None:
        """Flush the buffer now.

        Args:
            is_crashing: Write the batch to disk synchronously on this
                thread instead of queueing it for the network.
            callback: Receives the response text, or "" when nothing was
                transmitted (empty buffer, crash path).
        """
        with self._lock:
            batch = self._take_locked()
        self._dispatch(batch, is_crashing, callback)

    def _take_locked(self) -> list[str]:
        """Take the buffer and cancel the pending timer. Caller holds _lock."""
        batch, self._buffer = self._buffer, []
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1
        return batch

    def _dispatch(self, batch: list[str], is_crashing: bool, callback: SendCallback | None) -> None:
        if not batch:
            self._invoke(callback, "")
            return

        if is_crashing:
            self._sender.save_on_crash("\n".join(batch))
            self._invoke(callback, "")
        else:
            self._sender.send(batch, callback)

    def _on_timer(self, generation: int) -> None:
        try:
            with self._lock:
                # Already fired when a size-triggered flush took its batch
                if generation != self._generation:
                    return
                batch = self._take_locked()
            self._dispatch(batch, False, None)
        except Exception as e:
            logger.error("Scheduled flush failed", error=str(e))

    def _count_drop(self) -> None:
        with self._lock:
            self._dropped_count += 1
            if self._dropped_count - self._last_logged_drop_count >= self._LOG_INTERVAL:
                logger.warning(
                    "Telemetry envelopes dropped",
                    dropped_since_last_log=self._dropped_count - self._last_logged_drop_count,
                    dropped_total=self._dropped_count,
                )
                self._last_logged_drop_count = self._dropped_count

    @staticmethod
    def _invoke(callback: SendCallback | None, response_text: str) -> None:
        if callback is None:
            return
        try:
            callback(response_text)
        except Exception as e:
            logger.warning("Send callback raised", error=str(e))
