import subprocess
from types import SimpleNamespace

import psutil
import pytest


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakePsutil:
    def __init__(self, per_core=(10.0, 30.0), used=2 * 1024 ** 3, total=8 * 1024 ** 3, clock=None) -> None:
        self.per_core = list(per_core)
        self.used = used
        self.total = total
        self.cpu_calls = 0
        self.fail_cpu = False
        self.clock = clock
        self.cpu_stamps: list[float] = []

    def cpu_percent(self, interval=None, percpu=False):
        self.cpu_calls += 1
        if self.clock is not None:
            self.cpu_stamps.append(self.clock())
        if self.fail_cpu:
            raise psutil.AccessDenied()
        return list(self.per_core)

    def cpu_count(self, logical=True):
        return len(self.per_core)

    def virtual_memory(self):
        return SimpleNamespace(used=self.used, total=self.total)


class FakeRunner:
    def __init__(self, stdout: str = "500, 1000", returncode: int = 0, exc=None) -> None:
        self.stdout = stdout
        self.returncode = returncode
        self.exc = exc
        self.calls: list[list[str]] = []

    def __call__(self, args, **kwargs):
        self.calls.append(list(args))
        if self.exc is not None:
            raise self.exc
        return subprocess.CompletedProcess(args, self.returncode, stdout=self.stdout, stderr="")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_psutil(monkeypatch, clock) -> FakePsutil:
    fake = FakePsutil(clock=clock)
    monkeypatch.setattr(psutil, "cpu_percent", fake.cpu_percent)
    monkeypatch.setattr(psutil, "cpu_count", fake.cpu_count)
    monkeypatch.setattr(psutil, "virtual_memory", fake.virtual_memory)
    return fake
