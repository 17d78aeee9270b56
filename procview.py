#!/usr/bin/env python3
import argparse
import enum
import logging
import signal
import sys
import time
from types import ModuleType
from typing import Callable, Optional, Sequence, TextIO

import procview_terminal
from procview_common import (
    DEFAULT_HISTORY,
    DEFAULT_REFRESH_MS,
    MAX_HISTORY,
    MAX_REFRESH_MS,
    MIN_HISTORY,
    MIN_REFRESH_MS,
    QUIT_POLL_WINDOW,
    ProcviewError,
    clamp,
)
from procview_gpu import GpuProbe
from procview_history import SeriesConfig, SeriesSet
from procview_metrics import MetricProvider, MetricSnapshot, Sampler, bytes_to_mb
from procview_ui import emit_text, render_dashboard

log = logging.getLogger("procview")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

def clamp_refresh_ms(value: int) -> int:
    """Keep the refresh interval between the CPU settling time and the operator maximum."""
    clamped = clamp(value, MIN_REFRESH_MS, MAX_REFRESH_MS)
    if clamped != value:
        log.warning("refresh rate %d ms is out of range, using %d ms", value, clamped)
    return clamped

def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="procview",
        description="Live terminal view of CPU, memory and GPU usage.",
        epilog="Example:\n  procview\n  procview -g -r 500\n  procview -g --per-core --no-gpu",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "-r",
        "--refresh",
        type=int,
        default=DEFAULT_REFRESH_MS,
        metavar="MILLISECONDS",
        help=f"Refresh interval in milliseconds ({MIN_REFRESH_MS}-{MAX_REFRESH_MS}, default {DEFAULT_REFRESH_MS}).",
    )
    parser.add_argument(
        "-g",
        "--graphs",
        action="store_true",
        help="Show live charts instead of plain text lines. Press q or Esc to quit.",
    )
    parser.add_argument("--per-core", action="store_true", help="Track one CPU series per logical core.")
    parser.add_argument("--no-cpu", action="store_true", help="Do not track CPU usage.")
    parser.add_argument("--no-memory", action="store_true", help="Do not track used memory.")
    parser.add_argument("--no-gpu", action="store_true", help="Do not query the GPU.")
    parser.add_argument(
        "--history",
        type=int,
        default=DEFAULT_HISTORY,
        metavar="SAMPLES",
        help=f"Samples kept per chart ({MIN_HISTORY}-{MAX_HISTORY}, default {DEFAULT_HISTORY}).",
    )
    parser.add_argument(
        "-n",
        "--count",
        type=int,
        default=0,
        metavar="CYCLES",
        help="Stop after this many refresh cycles (0 runs until quit).",
    )
    parser.add_argument("--log-file", metavar="PATH", help="Write log messages to PATH instead of stderr.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages.")
    args = parser.parse_args(argv)

    if args.no_cpu and args.no_memory and args.no_gpu:
        parser.error("Nothing to show: --no-cpu, --no-memory and --no-gpu disable every metric.")
    if args.per_core and args.no_cpu:
        parser.error("--per-core needs CPU tracking; drop --no-cpu.")
    if args.count < 0:
        parser.error("--count must not be negative.")

    return args

def configure_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        handlers=[handler],
        force=True,
    )

def series_config_from_args(args: argparse.Namespace) -> SeriesConfig:
    capacity = clamp(args.history, MIN_HISTORY, MAX_HISTORY)
    if capacity != args.history:
        log.warning("history size %d is out of range, using %d", args.history, capacity)
    return SeriesConfig(
        cpu=not args.no_cpu,
        per_core=args.per_core,
        memory=not args.no_memory,
        gpu=not args.no_gpu,
        capacity=capacity,
    )

class LoopState(enum.Enum):
    SAMPLING = "sampling"
    RENDERING = "rendering"
    TEXT_OUTPUT = "text_output"
    INPUT_CHECK = "input_check"
    SLEEPING = "sleeping"
    STOPPED = "stopped"

class ControlLoop:
    """Sample, show, check for quit, sleep; until quit or a fatal error.

    Everything runs on the calling thread. A quit key is noticed at the next
    input check, so at most one refresh interval plus the poll window late.
    Text mode never checks input and only stops on a signal or max_cycles.
    """

    def __init__(
        self,
        sampler: Sampler,
        interval: float,
        graphical: bool,
        terminal: ModuleType = procview_terminal,
        draw: Callable[..., None] = render_dashboard,
        emit: Callable[..., None] = emit_text,
        sleep: Callable[[float], None] = time.sleep,
        max_cycles: int = 0,
        poll_window: float = QUIT_POLL_WINDOW,
        err: Optional[TextIO] = None,
    ) -> None:
        self.sampler = sampler
        self.interval = interval
        self.graphical = graphical
        self.terminal = terminal
        self.draw = draw
        self.emit = emit
        self.sleep = sleep
        self.max_cycles = max_cycles
        self.poll_window = poll_window
        self.err = err
        self.state = LoopState.SAMPLING
        self.cycles = 0
        self.snapshot: Optional[MetricSnapshot] = None
        self.failure: Optional[BaseException] = None
        self._screen_active = False
        self._torn_down = False

    @property
    def series(self) -> SeriesSet:
        return self.sampler.series

    def status_text(self) -> str:
        return f"refresh {int(self.interval * 1000)} ms"

    def setup(self) -> None:
        self.sampler.settle(self.sleep)
        if self.graphical:
            self._screen_active = True
            self.terminal.enter_screen()

    def teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        if self._screen_active:
            self._screen_active = False
            self.terminal.leave_screen()

    def _done(self) -> bool:
        return self.max_cycles > 0 and self.cycles >= self.max_cycles

    def advance(self, state: LoopState) -> LoopState:
        if state is LoopState.SAMPLING:
            self.snapshot = self.sampler.step()
            self.cycles += 1
            return LoopState.RENDERING if self.graphical else LoopState.TEXT_OUTPUT

        if state is LoopState.RENDERING:
            total_mb = bytes_to_mb(self.sampler.provider.total_memory())
            self.draw(self.series, self.snapshot, total_mb, self.status_text())
            return LoopState.INPUT_CHECK

        if state is LoopState.TEXT_OUTPUT:
            self.emit(self.snapshot, self.series.config)
            return LoopState.STOPPED if self._done() else LoopState.SLEEPING

        if state is LoopState.INPUT_CHECK:
            if self.terminal.poll_quit(self.poll_window):
                log.debug("quit key pressed after %d cycles", self.cycles)
                return LoopState.STOPPED
            return LoopState.STOPPED if self._done() else LoopState.SLEEPING

        if state is LoopState.SLEEPING:
            self.sleep(self.interval)
            return LoopState.SAMPLING

        return LoopState.STOPPED

    def report(self, error: BaseException) -> None:
        err = self.err or sys.stderr
        err.write(f"procview: error: {error}\n")
        err.flush()

    def run(self) -> int:
        self.state = LoopState.SAMPLING
        try:
            self.setup()
            while self.state is not LoopState.STOPPED:
                self.state = self.advance(self.state)
        except (ProcviewError, OSError) as e:
            log.debug("stopped in state %s", self.state.value, exc_info=True)
            self.failure = e
        finally:
            self.state = LoopState.STOPPED
            try:
                self.teardown()
            except (ProcviewError, OSError) as e:
                log.debug("terminal teardown failed", exc_info=True)
                if self.failure is None:
                    self.failure = e

        if self.failure is not None:
            self.report(self.failure)
            return 1
        return 0

def build_loop(args: argparse.Namespace) -> ControlLoop:
    config = series_config_from_args(args)
    provider = MetricProvider()
    series = SeriesSet(config, provider.core_count)
    probe = GpuProbe()
    if config.gpu and not probe.available():
        log.info("%s not found, GPU series will read N/A", probe.command)
    sampler = Sampler(provider, series, probe)
    interval = clamp_refresh_ms(args.refresh) / 1000.0
    return ControlLoop(sampler, interval, args.graphs, max_cycles=args.count)

def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose, args.log_file)

    signal.signal(signal.SIGINT, procview_terminal.cleanup_and_exit)
    signal.signal(signal.SIGTERM, procview_terminal.cleanup_and_exit)

    try:
        loop = build_loop(args)
    except ProcviewError as e:
        sys.stderr.write(f"procview: error: {e}\n")
        return 1
    return loop.run()

if __name__ == "__main__":
    raise SystemExit(main())
