"""RetryingSender: delivers batches to the ingestion endpoint.

Batches are queued for a background worker thread, which POSTs them as a
JSON array (optionally gzip-compressed) and classifies the response:

- 2xx: delivered. A 206 lists per-item errors; items with a retriable
  status are persisted, the rest are dropped.
- 408, 429, 439, 5xx, or a transport failure after in-request retries:
  the whole batch is persisted to disk.
- Anything else: permanent rejection, dropped with a warning.

After a successful live delivery one resubmission pass over the disk store
is scheduled (resend interval), so persisted batches go out once
connectivity is back.

Thread Safety:
    send()/save_on_crash() may be called from any thread and never raise.
    Network I/O and resubmission run on the worker thread only. The crash
    path writes to disk synchronously on the caller's thread.
"""

import gzip
import json
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final

import httpx
import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from appinsights.channel.disk import DiskRetryStore
from appinsights.contracts.config.defaults import INTERNAL_DEFAULTS
from appinsights.contracts.config.runtime import RuntimeSenderConfig
from appinsights.contracts.enums import DeliveryOutcome
from appinsights.contracts.envelope import SendCallback
from appinsights.core.scheduling import Cancellable, TimerFactory, start_daemon_timer

logger = structlog.get_logger(__name__)

RETRIABLE_STATUS_CODES: Final = frozenset({408, 429, 439, 500, 502, 503, 504})


def is_retriable_status(status_code: int) -> bool:
    """Transient statuses: throttling, timeouts and any server error."""
    return status_code in RETRIABLE_STATUS_CODES or 500 <= status_code < 600


def serialize_batch(batch: list[str]) -> str:
    """Join already-serialized envelopes into a JSON array."""
    return "[" + ",".join(batch) + "]"


def retriable_items(batch: list[str], response_text: str) -> list[str] | None:
    """Select the items of a 206 response that should be retried.

    Returns:
        Items whose per-item status is retriable (possibly empty), or None
        when the response reports no item errors or cannot be parsed.
    """
    try:
        body = json.loads(response_text)
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None

    errors = body.get("errors")
    if not errors or body.get("itemsAccepted") == body.get("itemsReceived"):
        return None

    selected: list[str] = []
    for error in errors:
        if not isinstance(error, dict):
            continue
        index = error.get("index")
        status_code = error.get("statusCode")
        if type(index) is not int or type(status_code) is not int:
            continue
        if 0 <= index < len(batch) and is_retriable_status(status_code):
            selected.append(batch[index])
    return selected


@dataclass(frozen=True, slots=True)
class _SendJob:
    batch: list[str]
    callback: SendCallback | None


class _ResendMarker:
    """Queue item asking the worker to run one disk resubmission pass."""


_RESEND: Final = _ResendMarker()


class RetryingSender:
    """Transmits batches with transport retry and disk fallback.

    Example:
        sender = RetryingSender(RuntimeSenderConfig.from_settings(settings))
        sender.send(['{"name": ...}'], callback=print)
        sender.flush()
        sender.close()
    """

    def __init__(
        self,
        config: RuntimeSenderConfig,
        *,
        store: DiskRetryStore | None = None,
        http_client: httpx.Client | None = None,
        timer_factory: TimerFactory = start_daemon_timer,
    ) -> None:
        """Initialize the sender and start its worker thread.

        Args:
            config: Endpoint, transport and disk retry settings.
            store: Disk store for undelivered batches. Defaults to one built
                from config; None when disk retry is disabled.
            http_client: Shared httpx client. Created (and closed by
                close()) when not given.
            timer_factory: Schedules resubmission passes.
        """
        self._config = config
        if store is None and config.disk_retry_enabled:
            store = DiskRetryStore(
                config.instrumentation_key,
                max_bytes=config.disk_retry_max_bytes,
                temp_root=config.temp_root,
            )
        self._store = store if config.disk_retry_enabled else None
        self._owns_client = http_client is None
        self._client = http_client if http_client is not None else httpx.Client(timeout=config.timeout_seconds)
        self._timer_factory = timer_factory

        self._resend_lock = threading.Lock()
        self._resend_timer: Cancellable | None = None

        self._stats_lock = threading.Lock()
        self._outcomes: dict[DeliveryOutcome, int] = {outcome: 0 for outcome in DeliveryOutcome}

        self._shutdown_event = threading.Event()
        self._worker_ready = threading.Event()
        queue_size = int(INTERNAL_DEFAULTS["sender"]["queue_size"])
        self._queue: queue.Queue[_SendJob | _ResendMarker | None] = queue.Queue(maxsize=queue_size)

        # Daemon: pending batches must never keep the host process alive
        self._worker = threading.Thread(target=self._worker_loop, name="appinsights-sender", daemon=True)
        self._worker.start()
        self._worker_ready.wait(timeout=5.0)

    @property
    def store(self) -> DiskRetryStore | None:
        return self._store

    @property
    def health_metrics(self) -> dict[str, Any]:
        """Batch outcome counts plus queue depth. Approximately consistent."""
        with self._stats_lock:
            outcomes = {outcome.value: count for outcome, count in self._outcomes.items()}
        return {**outcomes, "queue_depth": self._queue.qsize(), "queue_maxsize": self._queue.maxsize}

    def send(self, batch: list[str], callback: SendCallback | None = None) -> None:
        """Queue a batch for delivery. Never blocks on the network, never raises.

        If the sender is closed or its queue is full, the batch is persisted
        to disk synchronously instead.
        """
        if not batch:
            self._invoke_callback(callback, "")
            return

        job = _SendJob(batch=list(batch), callback=callback)
        if not self._shutdown_event.is_set() and self._worker.is_alive():
            try:
                self._queue.put_nowait(job)
                return
            except queue.Full:
                logger.warning("Sender queue full; persisting batch to disk", items=len(batch))
        else:
            logger.debug("Sender not running; persisting batch to disk", items=len(batch))

        self._record(self._persist_or_drop(batch))
        self._invoke_callback(callback, "")

    def save_on_crash(self, payload: str) -> bool:
        """Write a newline-joined batch to disk on the caller's thread.

        Returns:
            True if the batch is on disk.
        """
        if self._store is None:
            logger.warning("Disk retry disabled; crash batch dropped")
            return False
        return self._store.persist(payload)

    def flush(self) -> None:
        """Block until every queued batch has been processed."""
        if not self._shutdown_event.is_set() and self._worker.is_alive():
            self._queue.join()

    def close(self) -> None:
        """Drain queued batches, stop the worker and release the HTTP client.

        Sentinel first, then join; the worker processes everything queued
        before it, then exits.
        """
        if self._shutdown_event.is_set():
            return
        self._shutdown_event.set()

        with self._resend_lock:
            if self._resend_timer is not None:
                self._resend_timer.cancel()
                self._resend_timer = None

        close_timeout = float(INTERNAL_DEFAULTS["sender"]["close_timeout"])
        try:
            self._queue.put(None, timeout=close_timeout)
        except queue.Full:
            logger.error("Failed to send shutdown sentinel; sender worker may still be running")
        self._worker.join(timeout=close_timeout)
        if self._worker.is_alive():
            logger.error("Sender worker did not exit cleanly within timeout")

        if self._owns_client:
            self._client.close()
        logger.debug("Sender closed", **self.health_metrics)

    def _worker_loop(self) -> None:
        self._worker_ready.set()
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    break
                if isinstance(item, _ResendMarker):
                    self._resend_from_disk()
                else:
                    _, response_text = self._deliver(item.batch)
                    self._invoke_callback(item.callback, response_text)
            except Exception as e:
                # Telemetry delivery must never kill the worker
                logger.error("Sender worker failed unexpectedly", error=str(e))
            finally:
                self._queue.task_done()

    def _deliver(self, batch: list[str], *, from_disk: bool = False) -> tuple[DeliveryOutcome, str]:
        """Transmit one batch and act on the response.

        Args:
            batch: Serialized envelopes.
            from_disk: The batch came from a retry file. Transient failures
                then leave the file in place instead of persisting again.

        Returns:
            (outcome, response text). Response text is "" on transport failure.
        """
        try:
            response = self._post(serialize_batch(batch))
        except httpx.HTTPError as e:
            logger.warning("Transmission failed after retries", error=str(e), items=len(batch))
            return self._transient_failure(batch, from_disk), ""

        status_code = response.status_code
        response_text = response.text

        if status_code == 206:
            retry_items = retriable_items(batch, response_text)
            if retry_items is None:
                outcome = DeliveryOutcome.DELIVERED
            else:
                dropped = len(batch) - len(retry_items)
                if dropped:
                    logger.warning("Ingestion rejected items permanently", dropped=dropped, items=len(batch))
                if retry_items and not self._persist(retry_items):
                    logger.warning("Retriable items could not be persisted", items=len(retry_items))
                outcome = DeliveryOutcome.PARTIAL
        elif 200 <= status_code < 300:
            outcome = DeliveryOutcome.DELIVERED
        elif is_retriable_status(status_code):
            logger.warning("Ingestion returned transient status", status_code=status_code, items=len(batch))
            outcome = self._transient_failure(batch, from_disk)
        else:
            logger.warning("Ingestion rejected batch; dropped", status_code=status_code, items=len(batch), response=response_text[:500])
            outcome = DeliveryOutcome.DROPPED

        self._record(outcome)
        if outcome in (DeliveryOutcome.DELIVERED, DeliveryOutcome.PARTIAL) and not from_disk:
            self._schedule_resend()
        return outcome, response_text

    def _post(self, body: str) -> httpx.Response:
        """POST with in-request retries on transport errors only.

        Raises:
            httpx.HTTPError: The last transport error once attempts are exhausted.
        """
        content = body.encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._config.compress:
            content = gzip.compress(content)
            headers["Content-Encoding"] = "gzip"

        retry = self._config.retry
        for attempt in Retrying(
            stop=stop_after_attempt(retry.max_attempts),
            wait=wait_exponential_jitter(initial=retry.base_delay, max=retry.max_delay, jitter=retry.jitter),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                return self._client.post(self._config.ingestion_url, content=content, headers=headers)

        raise RuntimeError("Unexpected state in retry loop")  # pragma: no cover

    def _transient_failure(self, batch: list[str], from_disk: bool) -> DeliveryOutcome:
        if from_disk:
            # The retry file is still on disk; it is retried next pass
            return DeliveryOutcome.PERSISTED
        return self._persist_or_drop(batch)

    def _persist_or_drop(self, batch: list[str]) -> DeliveryOutcome:
        return DeliveryOutcome.PERSISTED if self._persist(batch) else DeliveryOutcome.DROPPED

    def _persist(self, batch: list[str]) -> bool:
        if self._store is None:
            logger.warning("Disk retry disabled; undelivered batch dropped", items=len(batch))
            return False
        return self._store.persist("\n".join(batch))

    def _resubmit(self, lines: list[str]) -> bool:
        """Resubmitter for the disk store: True lets it delete the file."""
        outcome, _ = self._deliver(lines, from_disk=True)
        return outcome is not DeliveryOutcome.PERSISTED

    def _resend_from_disk(self) -> None:
        if self._store is not None:
            self._store.recover_and_resubmit(self._resubmit)

    def _schedule_resend(self) -> None:
        if self._store is None or self._shutdown_event.is_set():
            return
        with self._resend_lock:
            if self._resend_timer is None:
                self._resend_timer = self._timer_factory(self._config.resend_interval_seconds, self._on_resend_timer)

    def _on_resend_timer(self) -> None:
        with self._resend_lock:
            self._resend_timer = None
        if self._shutdown_event.is_set():
            return
        try:
            self._queue.put_nowait(_RESEND)
        except queue.Full:
            # Busy sender; the next successful delivery schedules another pass
            logger.debug("Sender queue full; resubmission pass skipped")

    def _record(self, outcome: DeliveryOutcome) -> None:
        with self._stats_lock:
            self._outcomes[outcome] += 1

    def _invoke_callback(self, callback: Callable[[str], None] | None, response_text: str) -> None:
        if callback is None:
            return
        try:
            callback(response_text)
        except Exception as e:
            logger.warning("Send callback raised", error=str(e))
