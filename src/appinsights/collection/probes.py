"""OS introspection behind a small protocol.

PerformanceSampler only talks to a SystemProbe, so tests can feed it
scripted CPU and memory readings. PsutilProbe is the real implementation.
"""

from dataclasses import dataclass
from typing import Protocol

import psutil


@dataclass(frozen=True, slots=True)
class CpuTimes:
    """Cumulative seconds one core has spent in each mode since boot."""

    user: float
    nice: float
    system: float
    idle: float
    irq: float

    @property
    def total(self) -> float:
        return self.user + self.nice + self.system + self.idle + self.irq


@dataclass(frozen=True, slots=True)
class ProcessCpuTimes:
    """Cumulative CPU seconds consumed by this process."""

    user: float
    system: float


class SystemProbe(Protocol):
    """Readings needed for the standard performance counters."""

    def per_cpu_times(self) -> list[CpuTimes]: ...

    def process_cpu_times(self) -> ProcessCpuTimes | None: ...

    def process_resident_bytes(self) -> int: ...

    def available_memory_bytes(self) -> int: ...

    def total_memory_bytes(self) -> int: ...


class PsutilProbe:
    """SystemProbe backed by psutil."""

    def __init__(self) -> None:
        self._process = psutil.Process()

    def per_cpu_times(self) -> list[CpuTimes]:
        # nice/irq are not reported on every platform
        return [
            CpuTimes(
                user=times.user,
                nice=getattr(times, "nice", 0.0),
                system=times.system,
                idle=times.idle,
                irq=getattr(times, "irq", 0.0),
            )
            for times in psutil.cpu_times(percpu=True)
        ]

    def process_cpu_times(self) -> ProcessCpuTimes | None:
        try:
            times = self._process.cpu_times()
        except psutil.Error:
            return None
        return ProcessCpuTimes(user=times.user, system=times.system)

    def process_resident_bytes(self) -> int:
        return int(self._process.memory_info().rss)

    def available_memory_bytes(self) -> int:
        return int(psutil.virtual_memory().available)

    def total_memory_bytes(self) -> int:
        return int(psutil.virtual_memory().total)
