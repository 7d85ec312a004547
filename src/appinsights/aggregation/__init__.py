"""Counter aggregation: process-wide rate counters and per-dimension standard metrics."""

from appinsights.aggregation.preaggregated import MetricDimension, PreAggregatedMetrics
from appinsights.aggregation.rates import RateCounterAggregator, compute_rate, parse_duration

__all__ = [
    "MetricDimension",
    "PreAggregatedMetrics",
    "RateCounterAggregator",
    "compute_rate",
    "parse_duration",
]
