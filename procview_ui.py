#!/usr/bin/env python3
import math
import shutil
import sys
from itertools import zip_longest
from typing import Optional, TextIO

from procview_common import (
    ANSI_RE,
    CLR_RESET,
    CSI,
    GRAPH_HEIGHT,
    GRAPH_ROW_GAP,
    SPARK_CHARS,
    STYLE_DIM,
    STYLE_SECTION,
    STYLE_TITLE,
    TerminalError,
    color_pct,
    format_mb,
    format_pct,
)
from procview_history import SeriesConfig, SeriesSet
from procview_metrics import MetricSnapshot

Point = tuple[float, float]

LABEL_WIDTH = 10
TAIL_WIDTH = 11

def series_points(values: list[float]) -> list[Point]:
    """Index samples for charting, x = 0 at the oldest retained sample."""
    return [(float(i), float(v)) for i, v in enumerate(values)]

def column_values(points: list[Point], width: int, span: int) -> list[Optional[float]]:
    # Newest sample sits at the right edge; a partially filled history leaves
    # the left side empty.
    span = max(span, len(points), 1)
    offset = span - len(points)
    out: list[Optional[float]] = []
    for col in range(width):
        # Each column shows the newest sample of its slice, so the last
        # column always lands on the last point.
        idx = ((col + 1) * span - 1) // width - offset
        if idx < 0:
            out.append(None)
            continue
        y = points[idx][1]
        out.append(y if y >= 0 else None)
    return out

def sparkline_rows(points: list[Point], width: int, scale_max: float, height: int, span: int) -> list[str]:
    data = column_values(points, width, span)

    upper = max(scale_max, 1.0)
    levels = max(1, height * 8)
    steps: list[Optional[int]] = []
    for v in data:
        if v is None:
            steps.append(None)
            continue
        ratio = max(0.0, min(1.0, v / upper))
        # Zero still draws a baseline so the line stays continuous.
        steps.append(max(1, int(math.ceil(ratio * levels))))

    out_rows: list[str] = []
    for row in range(height - 1, -1, -1):
        line_chars: list[str] = []
        base = row * 8
        for st in steps:
            if st is None:
                line_chars.append(" ")
                continue
            cell = max(0, min(8, st - base))
            line_chars.append(SPARK_CHARS[cell])
        out_rows.append("".join(line_chars))
    return out_rows

def visible_len(text: str) -> int:
    return len(ANSI_RE.sub("", text))

def rjust_visible(text: str, width: int) -> str:
    pad = max(0, width - visible_len(text))
    return (" " * pad) + text

def render_line(text: str) -> str:
    return f"{text}{CSI}K\n"

def series_label(key: str) -> str:
    if key == "cpu":
        return "CPU"
    if key.startswith("cpu"):
        return f"CPU {key[3:]}"
    if key == "memory":
        return "Memory"
    if key == "gpu":
        return "GPU Mem"
    return key

def series_scale(key: str, total_memory_mb: float, values: list[float]) -> float:
    if key == "memory":
        if total_memory_mb > 0:
            return total_memory_mb
        return max(values, default=1.0)
    return 100.0

def series_tail(key: str, value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    if key == "memory":
        return format_mb(value)
    text = format_pct(value)
    if text == "N/A":
        return text
    return color_pct(value, text)

def graph_entry_lines(
    label: str,
    points: list[Point],
    scale_max: float,
    tail_value: str,
    graph_width: int,
    graph_height: int,
    span: int,
) -> list[str]:
    spark_rows = sparkline_rows(points, graph_width, scale_max, graph_height, span)
    out: list[str] = []
    for i, spark in enumerate(spark_rows):
        prefix = f"{label:<{LABEL_WIDTH}} " if i == 0 else " " * (LABEL_WIDTH + 1)
        suffix = f" {rjust_visible(tail_value, TAIL_WIDTH)}" if i == len(spark_rows) - 1 else " " * (TAIL_WIDTH + 1)
        out.append(f"{prefix}{spark}{suffix}")
    return out

def series_block(series: SeriesSet, key: str, total_memory_mb: float, graph_width: int) -> list[str]:
    values = series.get(key).snapshot()
    latest = values[-1] if values else None
    return graph_entry_lines(
        series_label(key),
        series_points(values),
        series_scale(key, total_memory_mb, values),
        series_tail(key, latest),
        graph_width,
        GRAPH_HEIGHT,
        series.capacity,
    )

def build_frame(
    series: SeriesSet,
    snapshot: MetricSnapshot,
    total_memory_mb: float,
    columns: int,
    rows: int,
    status: str = "",
) -> str:
    left_keys = series.cpu_keys()
    right_keys = [k for k in ("memory", "gpu") if series.has(k)]
    two_columns = bool(left_keys) and bool(right_keys)

    sep = "  |  "
    entry_extra = LABEL_WIDTH + 1 + TAIL_WIDTH + 1
    if two_columns:
        col_width = max(entry_extra + 10, (columns - len(sep)) // 2)
    else:
        col_width = max(entry_extra + 10, columns - 1)
    graph_width = max(10, col_width - entry_extra)

    title = "PROCVIEW"
    summary_parts: list[str] = []
    if series.config.cpu:
        summary_parts.append(f"CPU {format_pct(snapshot.cpu_mean)}")
    if series.config.memory:
        mem = f"MEM {format_mb(snapshot.memory_mb)}"
        if total_memory_mb > 0:
            mem += f" / {format_mb(total_memory_mb)}"
        summary_parts.append(mem)
    if series.config.gpu:
        summary_parts.append(f"GPU {format_pct(snapshot.gpu)}")
    summary = "   ".join(summary_parts)
    line = "-" * max(len(title), min(columns - 1, len(summary)))

    body_lines: list[str] = []
    body_lines.append(render_line(f"{STYLE_TITLE}{title}{CLR_RESET}"))
    body_lines.append(render_line(f"{STYLE_TITLE}{line}{CLR_RESET}"))
    body_lines.append(render_line(summary[: max(20, columns - 1)]))
    if not snapshot.cpu_reliable:
        body_lines.append(render_line(f"{STYLE_DIM}CPU counters settling, first reading may be off{CLR_RESET}"))
    body_lines.append(render_line(""))

    left_blocks = [series_block(series, k, total_memory_mb, graph_width) for k in left_keys]
    right_blocks = [series_block(series, k, total_memory_mb, graph_width) for k in right_keys]

    body_lines.append(render_line(f"{STYLE_SECTION}GRAPHS{CLR_RESET}"))
    body_lines.append(render_line(""))
    if two_columns:
        blank_block = [" " * (graph_width + entry_extra)] * GRAPH_HEIGHT
        for left_block, right_block in zip_longest(left_blocks, right_blocks, fillvalue=blank_block):
            for left_line, right_line in zip(left_block, right_block):
                body_lines.append(render_line(f"{left_line}{sep}{right_line}"))
            for _ in range(GRAPH_ROW_GAP):
                body_lines.append(render_line(""))
    else:
        for block in left_blocks + right_blocks:
            for entry_line in block:
                body_lines.append(render_line(entry_line))
            for _ in range(GRAPH_ROW_GAP):
                body_lines.append(render_line(""))

    footer = "q: quit"
    if status:
        footer = f"{status}   {footer}"
    body_lines.append(render_line(f"{STYLE_DIM}{footer}{CLR_RESET}"))

    body = body_lines[: max(1, rows)]
    if body:
        body[-1] = body[-1].rstrip("\n")

    frame = [f"{CSI}?25l{CSI}H"]
    frame.extend(body)
    frame.append(f"{CSI}J")
    return "".join(frame)

def render_dashboard(
    series: SeriesSet,
    snapshot: MetricSnapshot,
    total_memory_mb: float,
    status: str = "",
    out: Optional[TextIO] = None,
) -> None:
    out = out or sys.stdout
    term_size = shutil.get_terminal_size((120, 40))
    frame = build_frame(series, snapshot, total_memory_mb, term_size.columns, term_size.lines, status)
    try:
        out.write(frame)
        out.flush()
    except OSError as e:
        raise TerminalError(f"drawing frame failed: {e}") from e

def format_text_lines(snapshot: MetricSnapshot, config: SeriesConfig) -> list[str]:
    lines: list[str] = []
    if config.memory:
        lines.append(f"Memory Usage: {snapshot.memory_mb:.2f} MB")
    if config.cpu:
        lines.append(f"CPU Usage: {snapshot.cpu_mean:.2f} %")
    if config.gpu:
        if snapshot.gpu_available:
            lines.append(f"GPU Usage: {snapshot.gpu:.2f} %")
        else:
            lines.append("GPU Usage: N/A")
    return lines

def emit_text(snapshot: MetricSnapshot, config: SeriesConfig, out: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    try:
        for text in format_text_lines(snapshot, config):
            out.write(text + "\n")
        out.flush()
    except OSError as e:
        raise TerminalError(f"writing text output failed: {e}") from e
