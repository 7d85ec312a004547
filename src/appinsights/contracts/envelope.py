"""Envelope and telemetry-processor contracts.

The envelope schema is owned by the shaping layer. The channel only needs
it to be a JSON-serializable mapping with ``name``, ``time`` and
``data.baseType``; everything else is opaque.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeAlias, runtime_checkable

Envelope: TypeAlias = dict[str, Any]

# Invoked once a flush completes; receives the response text ("" when nothing was sent).
SendCallback: TypeAlias = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class ProcessorResult:
    """Verdict of a telemetry processor.

    accept=False drops the envelope. Processors that raise are treated as
    accept=True by the caller.
    """

    accept: bool


ACCEPT = ProcessorResult(accept=True)
REJECT = ProcessorResult(accept=False)


@runtime_checkable
class TelemetryProcessor(Protocol):
    """Hook run on every envelope before it is buffered.

    Processors may mutate the envelope in place (add tags, properties).
    ``context_objects`` carries caller-supplied context for the item.
    """

    def __call__(self, envelope: Envelope, context_objects: dict[str, Any]) -> ProcessorResult: ...


def base_type_of(envelope: Envelope) -> str | None:
    """Return ``envelope["data"]["baseType"]`` or None if absent."""
    data = envelope.get("data")
    if not isinstance(data, dict):
        return None
    base_type = data.get("baseType")
    return base_type if isinstance(base_type, str) else None


def base_data_of(envelope: Envelope) -> dict[str, Any] | None:
    """Return ``envelope["data"]["baseData"]`` if it is a mapping."""
    data = envelope.get("data")
    if not isinstance(data, dict):
        return None
    base_data = data.get("baseData")
    return base_data if isinstance(base_data, dict) else None
