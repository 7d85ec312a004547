"""Status codes, states, and kinds used across subsystem boundaries."""

from enum import StrEnum


class CounterCategory(StrEnum):
    """Event category accumulated by the rate counter aggregator."""

    REQUESTS = "requests"
    DEPENDENCIES = "dependencies"
    EXCEPTIONS = "exceptions"


class SamplerState(StrEnum):
    """Lifecycle state of a recurring sampler."""

    STOPPED = "stopped"
    RUNNING = "running"


class DeliveryOutcome(StrEnum):
    """What happened to a batch after a transmission attempt.

    DELIVERED: ingestion acknowledged every item.
    PARTIAL: some items accepted, retriable remainder persisted to disk.
    PERSISTED: transient failure, whole batch persisted for later retry.
    DROPPED: permanent rejection, or persistence refused (cap / access control).
    """

    DELIVERED = "delivered"
    PARTIAL = "partial"
    PERSISTED = "persisted"
    DROPPED = "dropped"


class ProvisioningState(StrEnum):
    """Access-control state of a retry directory.

    Transitions are one-way: UNINITIALIZED moves to exactly one of the
    terminal states and stays there for the process lifetime.
    """

    UNINITIALIZED = "uninitialized"
    PROVISIONED = "provisioned"
    FAILED = "failed"


class TelemetryBaseType(StrEnum):
    """Values of ``envelope["data"]["baseType"]`` the SDK inspects."""

    REQUEST = "RequestData"
    DEPENDENCY = "RemoteDependencyData"
    EXCEPTION = "ExceptionData"
    TRACE = "MessageData"
    METRIC = "MetricData"
    EVENT = "EventData"
