# tests/helpers/probes.py
"""Scripted SystemProbe for the performance sampler."""

from appinsights.collection.probes import CpuTimes, ProcessCpuTimes


class FakeProbe:
    """SystemProbe returning whatever the test last assigned."""

    def __init__(self) -> None:
        self.cpus = [CpuTimes(user=10, nice=0, system=0, idle=90, irq=0)] * 2
        self.process: ProcessCpuTimes | None = ProcessCpuTimes(user=1.0, system=0.0)
        self.rss = 1_000
        self.available = 4_000
        self.total = 10_000
        self.memory_error: Exception | None = None

    def per_cpu_times(self) -> list[CpuTimes]:
        return list(self.cpus)

    def process_cpu_times(self) -> ProcessCpuTimes | None:
        return self.process

    def process_resident_bytes(self) -> int:
        return self.rss

    def available_memory_bytes(self) -> int:
        if self.memory_error is not None:
            raise self.memory_error
        return self.available

    def total_memory_bytes(self) -> int:
        return self.total
