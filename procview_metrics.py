#!/usr/bin/env python3
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import psutil

from procview_common import GPU_UNAVAILABLE, MEMORY_UNIT_FACTOR, MIN_CPU_UPDATE_INTERVAL, MISSING_SAMPLE, ProviderError
from procview_gpu import GpuProbe, ProbeError
from procview_history import SeriesSet

log = logging.getLogger(__name__)

@dataclass(frozen=True)
class CpuBaseline:
    """When the CPU counters were last snapshotted.

    A usage reading is only meaningful if it was taken at least
    `min_interval` seconds after the baseline it is diffed against.
    """

    taken_at: float
    min_interval: float = MIN_CPU_UPDATE_INTERVAL

    @property
    def ready_at(self) -> float:
        return self.taken_at + self.min_interval

    def remaining(self, now: float) -> float:
        return max(0.0, self.ready_at - now)

    def is_ready(self, now: float) -> bool:
        return now >= self.ready_at - 1e-6

class MetricProvider:
    """Single-owner handle on psutil's CPU and memory counters.

    psutil keeps the previous CPU counters internally, so every refresh_cpu()
    both reads usage since the last call and starts a new baseline. A reading
    is settled only if its own refresh came a full interval after the previous
    one.
    """

    def __init__(self, min_interval: float = MIN_CPU_UPDATE_INTERVAL, clock: Callable[[], float] = time.monotonic) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._settled = False
        self._per_core: list[float] = []
        self._used_memory = 0
        self._total_memory = 0
        try:
            self.core_count = psutil.cpu_count(logical=True) or 1
        except (psutil.Error, OSError) as e:
            raise ProviderError(f"cannot count CPUs: {e}") from e
        self._take_cpu_counters()
        self.baseline = CpuBaseline(self._clock(), min_interval)

    @property
    def settled(self) -> bool:
        return self._settled

    def settle_remaining(self) -> float:
        """Seconds until a refresh_cpu() would produce a settled reading."""
        return self.baseline.remaining(self._clock())

    def _take_cpu_counters(self) -> list[float]:
        try:
            return [float(x) for x in psutil.cpu_percent(interval=None, percpu=True)]
        except (psutil.Error, OSError) as e:
            raise ProviderError(f"cpu refresh failed: {e}") from e

    def refresh_cpu(self) -> None:
        values = self._take_cpu_counters()
        now = self._clock()
        self._settled = self.baseline.is_ready(now)
        if not self._settled:
            log.debug("cpu refreshed %.3fs before settling; reading is unreliable", self.baseline.remaining(now))
        self._per_core = values
        self.baseline = CpuBaseline(now, self.min_interval)

    def refresh_memory(self) -> None:
        try:
            vm = psutil.virtual_memory()
        except (psutil.Error, OSError) as e:
            raise ProviderError(f"memory refresh failed: {e}") from e
        self._used_memory = int(vm.used)
        self._total_memory = int(vm.total)

    def per_core_usage(self) -> list[float]:
        return list(self._per_core)

    def used_memory(self) -> int:
        """Used memory in bytes as of the last refresh_memory()."""
        return self._used_memory

    def total_memory(self) -> int:
        return self._total_memory

@dataclass
class MetricSnapshot:
    used_memory: int
    cpu_per_core: list[float] = field(default_factory=list)
    gpu: float = GPU_UNAVAILABLE
    cpu_reliable: bool = True

    @property
    def memory_mb(self) -> float:
        return bytes_to_mb(self.used_memory)

    @property
    def cpu_mean(self) -> float:
        if not self.cpu_per_core:
            return 0.0
        return sum(self.cpu_per_core) / len(self.cpu_per_core)

    @property
    def gpu_available(self) -> bool:
        return self.gpu >= 0

def bytes_to_mb(value: int) -> float:
    return value / MEMORY_UNIT_FACTOR

class Sampler:
    def __init__(self, provider: MetricProvider, series: SeriesSet, gpu_probe: Optional[GpuProbe] = None) -> None:
        self.provider = provider
        self.series = series
        self.gpu_probe = gpu_probe if gpu_probe is not None else GpuProbe()

    def settle(self, sleep: Callable[[float], None] = time.sleep) -> None:
        """Wait out the settling interval so the next acquire() is trustworthy.

        Does not refresh: the acquire() refresh is the one diffed against the
        current baseline.
        """
        remaining = self.provider.settle_remaining()
        if remaining > 0:
            log.debug("waiting %.3fs for cpu counters to settle", remaining)
            sleep(remaining)

    def read_gpu(self) -> float:
        try:
            return self.gpu_probe.query()
        except ProbeError as e:
            log.debug("gpu probe failed: %s", e)
            return GPU_UNAVAILABLE

    def acquire(self) -> MetricSnapshot:
        self.provider.refresh_cpu()
        self.provider.refresh_memory()
        snapshot = MetricSnapshot(
            used_memory=self.provider.used_memory(),
            cpu_per_core=self.provider.per_core_usage(),
            cpu_reliable=self.provider.settled,
        )
        if self.series.has("gpu"):
            snapshot.gpu = self.read_gpu()
        return snapshot

    def fold(self, snapshot: MetricSnapshot) -> None:
        config = self.series.config
        if config.cpu:
            if config.per_core:
                keys = self.series.cpu_keys()
                values = list(snapshot.cpu_per_core)
                if len(values) != len(keys):
                    log.warning("expected %d cpu cores, psutil reported %d", len(keys), len(values))
                    values = (values + [MISSING_SAMPLE] * len(keys))[: len(keys)]
                for key, value in zip(keys, values):
                    self.series.push(key, value)
            else:
                self.series.push("cpu", snapshot.cpu_mean)
        if config.memory:
            self.series.push("memory", snapshot.memory_mb)
        if config.gpu:
            self.series.push("gpu", snapshot.gpu)

    def step(self) -> MetricSnapshot:
        snapshot = self.acquire()
        self.fold(snapshot)
        return snapshot
