#!/usr/bin/env python3
import re
import shutil

GPU_CMD = "nvidia-smi"
GPU_QUERY_ARGS = ["--query-gpu=memory.used,memory.total", "--format=csv,noheader,nounits"]
GPU_QUERY_TIMEOUT = 2.0
MISSING_SAMPLE = -1.0
GPU_UNAVAILABLE = MISSING_SAMPLE

# psutil derives CPU percentages from two counter reads; closer reads are noise.
MIN_CPU_UPDATE_INTERVAL = 0.2
MIN_REFRESH_MS = int(MIN_CPU_UPDATE_INTERVAL * 1000)
MAX_REFRESH_MS = 10_000
DEFAULT_REFRESH_MS = 1000
QUIT_POLL_WINDOW = 0.05
QUIT_KEYS = (b"q", b"Q")

MEMORY_UNIT_FACTOR = 1024 ** 2

DEFAULT_HISTORY = 30
MIN_HISTORY = 2
MAX_HISTORY = 600

CSI = "\033["
CLR_RESET = f"{CSI}0m"
CLR_RED = f"{CSI}31m"
CLR_YEL = f"{CSI}33m"
CLR_GRN = f"{CSI}32m"
STYLE_TITLE = f"{CSI}1;34m"
STYLE_SECTION = f"{CSI}96m"
STYLE_DIM = f"{CSI}2m"

SPARK_CHARS = " ▁▂▃▄▅▆▇█"
GRAPH_HEIGHT = 2
GRAPH_ROW_GAP = 1
ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")

class ProcviewError(Exception):
    pass

class ProviderError(ProcviewError):
    """Refreshing or reading the system stats source failed."""

class TerminalError(ProcviewError):
    """Drawing to, or reading from, the terminal failed."""

def need_cmd(name: str) -> bool:
    return shutil.which(name) is not None

def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))

def color_by_thresholds(value: float, text: str, low: float, high: float) -> str:
    if value < low:
        return f"{CLR_GRN}{text}{CLR_RESET}"
    if value < high:
        return f"{CLR_YEL}{text}{CLR_RESET}"
    return f"{CLR_RED}{text}{CLR_RESET}"

def color_pct(value: float, text: str) -> str:
    return color_by_thresholds(value, text, 60.0, 90.0)

def format_pct(value: float) -> str:
    if value < 0:
        return "N/A"
    return f"{value:.2f} %"

def format_mb(value: float) -> str:
    return f"{value:.2f} MB"
