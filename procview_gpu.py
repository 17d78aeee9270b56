#!/usr/bin/env python3
"""GPU memory utilization read through the vendor diagnostic utility.

All parsing of the utility's text output stays in this module; callers only
ever see a percentage or a ProbeError.
"""
import logging
import subprocess
from typing import Callable, Optional

from procview_common import GPU_CMD, GPU_QUERY_ARGS, GPU_QUERY_TIMEOUT, ProcviewError, need_cmd

log = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]

class ProbeError(ProcviewError):
    pass

class GpuUnavailable(ProbeError):
    pass

class MalformedGpuOutput(ProbeError):
    pass

class GpuDivideByZero(ProbeError):
    pass

def parse_memory_fields(stdout: str) -> tuple[float, float]:
    lines = stdout.strip().splitlines()
    line = lines[0].strip() if lines else ""
    parts = [p.strip() for p in line.split(",")]
    if len(parts) != 2:
        raise MalformedGpuOutput(f"expected 'used, total', got {line!r}")
    try:
        used, total = float(parts[0]), float(parts[1])
    except ValueError:
        raise MalformedGpuOutput(f"non-numeric memory fields in {line!r}") from None
    return used, total

def memory_percent(used: float, total: float) -> float:
    if total == 0:
        raise GpuDivideByZero("GPU reports zero total memory")
    if used < 0 or total < 0:
        raise MalformedGpuOutput(f"negative memory fields: {used}, {total}")
    return min(100.0, used / total * 100.0)

class GpuProbe:
    def __init__(self, command: str = GPU_CMD, timeout: float = GPU_QUERY_TIMEOUT, runner: Optional[Runner] = None) -> None:
        self.command = command
        self.timeout = timeout
        self._run = runner or subprocess.run

    def available(self) -> bool:
        return need_cmd(self.command)

    def read_raw(self) -> str:
        args = [self.command, *GPU_QUERY_ARGS]
        try:
            proc = self._run(
                args,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise GpuUnavailable(f"{self.command}: {e}") from e
        if proc.returncode != 0:
            raise GpuUnavailable(f"{self.command} exited with status {proc.returncode}")
        return proc.stdout or ""

    def query(self) -> float:
        """Return GPU memory in use as a percentage of the total.

        Raises GpuUnavailable, MalformedGpuOutput or GpuDivideByZero.
        """
        used, total = parse_memory_fields(self.read_raw())
        pct = memory_percent(used, total)
        log.debug("gpu memory %.0f/%.0f MiB (%.2f%%)", used, total, pct)
        return pct
