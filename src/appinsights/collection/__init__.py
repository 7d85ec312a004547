"""Auto-collection of performance counters."""

from appinsights.collection.performance import PerformanceSampler
from appinsights.collection.probes import CpuTimes, ProcessCpuTimes, PsutilProbe, SystemProbe

__all__ = [
    "CpuTimes",
    "PerformanceSampler",
    "ProcessCpuTimes",
    "PsutilProbe",
    "SystemProbe",
]
