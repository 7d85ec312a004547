"""
appinsights: telemetry SDK with a batching channel, disk-backed retry and
rate counter aggregation.

Auto-collects performance counters and standard metrics, batches envelopes
in memory and ships them to an Application Insights style ingestion
endpoint, persisting undelivered batches to disk for later resubmission.
"""

__version__ = "0.1.0"
