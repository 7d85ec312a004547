# tests/helpers/senders.py
"""In-memory stand-in for RetryingSender."""

import json
from typing import Any

from appinsights.contracts.envelope import SendCallback


class RecordingSender:
    """Records batches instead of transmitting them."""

    def __init__(self) -> None:
        self.batches: list[list[str]] = []
        self.callbacks: list[SendCallback | None] = []
        self.crash_payloads: list[str] = []
        self.closed = False

    def send(self, batch: list[str], callback: SendCallback | None = None) -> None:
        self.batches.append(batch)
        self.callbacks.append(callback)

    def save_on_crash(self, payload: str) -> bool:
        self.crash_payloads.append(payload)
        return True

    def close(self) -> None:
        self.closed = True

    @property
    def envelopes(self) -> list[dict[str, Any]]:
        """Every envelope sent so far, decoded, in order."""
        return [json.loads(item) for batch in self.batches for item in batch]
