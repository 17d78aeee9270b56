#!/usr/bin/env python3
from collections import deque
from dataclasses import dataclass
from typing import Generic, Iterator, Optional, TypeVar, Union

from procview_common import DEFAULT_HISTORY

Number = TypeVar("Number", int, float)

class HistoryBuffer(Generic[Number]):
    """Fixed-capacity FIFO of samples; the oldest sample is dropped on overflow."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"history capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._values: deque[Number] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, value: Number) -> None:
        self._values.append(value)

    def snapshot(self) -> list[Number]:
        return list(self._values)

    def latest(self) -> Optional[Number]:
        if not self._values:
            return None
        return self._values[-1]

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Number]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"HistoryBuffer(capacity={self._capacity}, values={self.snapshot()!r})"

@dataclass(frozen=True)
class SeriesConfig:
    cpu: bool = True
    per_core: bool = False
    memory: bool = True
    gpu: bool = True
    capacity: int = DEFAULT_HISTORY

    def is_empty(self) -> bool:
        return not (self.cpu or self.memory or self.gpu)

def cpu_series_keys(config: SeriesConfig, core_count: int) -> list[str]:
    if not config.cpu:
        return []
    if config.per_core:
        return [f"cpu{i}" for i in range(core_count)]
    return ["cpu"]

class SeriesSet:
    """The history buffers tracked for one run.

    Which series exist is fixed by the SeriesConfig; the Sampler is the only
    writer and the renderer the only reader.
    """

    def __init__(self, config: SeriesConfig, core_count: int = 1) -> None:
        self.config = config
        self.core_count = max(1, core_count)
        self._buffers: dict[str, HistoryBuffer[Union[int, float]]] = {}
        for key in cpu_series_keys(config, self.core_count):
            self._buffers[key] = HistoryBuffer(config.capacity)
        if config.memory:
            self._buffers["memory"] = HistoryBuffer(config.capacity)
        if config.gpu:
            self._buffers["gpu"] = HistoryBuffer(config.capacity)

    @property
    def capacity(self) -> int:
        return self.config.capacity

    def keys(self) -> list[str]:
        return list(self._buffers)

    def cpu_keys(self) -> list[str]:
        return [k for k in self._buffers if k.startswith("cpu")]

    def has(self, key: str) -> bool:
        return key in self._buffers

    def get(self, key: str) -> HistoryBuffer:
        return self._buffers[key]

    def push(self, key: str, value: float) -> None:
        self._buffers[key].push(value)

    def snapshot(self) -> dict[str, list[float]]:
        return {k: buf.snapshot() for k, buf in self._buffers.items()}
