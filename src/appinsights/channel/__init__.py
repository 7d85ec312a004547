"""Delivery channel: in-memory batching, retrying sender, disk retry store."""

from appinsights.channel.access import DirectoryAccessControl
from appinsights.channel.buffer import BatchSender, DeliveryBuffer
from appinsights.channel.disk import DiskRetryStore
from appinsights.channel.sender import RetryingSender, is_retriable_status

__all__ = [
    "BatchSender",
    "DeliveryBuffer",
    "DirectoryAccessControl",
    "DiskRetryStore",
    "RetryingSender",
    "is_retriable_status",
]
