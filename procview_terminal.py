#!/usr/bin/env python3
import logging
import os
import select
import shutil
import subprocess
import sys
import termios
from typing import Optional

from procview_common import CSI, QUIT_KEYS, TerminalError

log = logging.getLogger(__name__)

HAVE_TPUT = shutil.which("tput") is not None
TERM_FD: Optional[int] = None
TERM_OLD = None

def write_control(seq: str) -> None:
    try:
        sys.stdout.write(seq)
        sys.stdout.flush()
    except OSError as e:
        raise TerminalError(f"terminal write failed: {e}") from e

def set_cursor(visible: bool) -> None:
    if HAVE_TPUT and sys.stdout.isatty():
        cmd = ["tput", "cnorm" if visible else "civis"]
        try:
            subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=False)
        except OSError:
            pass
    # Force cursor state via ANSI too (works even if tput is ineffective for this terminal).
    write_control(f"{CSI}?25{'h' if visible else 'l'}")

def set_line_wrap(enabled: bool) -> None:
    if not sys.stdout.isatty():
        return
    write_control(f"{CSI}?7{'h' if enabled else 'l'}")

def enter_alt_screen() -> None:
    if not sys.stdout.isatty():
        return
    write_control(f"{CSI}?1049h{CSI}2J{CSI}H")

def leave_alt_screen() -> None:
    if not sys.stdout.isatty():
        return
    write_control(f"{CSI}?1049l")

def cleanup_and_exit(_sig: int, _frame) -> None:
    raise SystemExit(0)

def enable_input_mode() -> None:
    global TERM_FD, TERM_OLD
    if not sys.stdin.isatty():
        return
    try:
        fd = sys.stdin.fileno()
        old = termios.tcgetattr(fd)
        attrs = termios.tcgetattr(fd)
        attrs[3] &= ~(termios.ICANON | termios.ECHO)
        attrs[6][termios.VMIN] = 0
        attrs[6][termios.VTIME] = 0
        termios.tcsetattr(fd, termios.TCSANOW, attrs)
    except (OSError, termios.error) as e:
        raise TerminalError(f"cannot switch terminal to raw input: {e}") from e
    TERM_FD = fd
    TERM_OLD = old

def restore_input_mode() -> None:
    global TERM_FD, TERM_OLD
    if TERM_FD is None or TERM_OLD is None:
        return
    try:
        termios.tcsetattr(TERM_FD, termios.TCSANOW, TERM_OLD)
    except (OSError, termios.error):
        log.warning("could not restore terminal input mode", exc_info=True)
    TERM_FD = None
    TERM_OLD = None

def read_input(timeout: float) -> bytes:
    if TERM_FD is None:
        return b""
    try:
        ready, _, _ = select.select([TERM_FD], [], [], timeout)
        if not ready:
            return b""
        data = os.read(TERM_FD, 64)
        if data == b"\x1b":
            # Some terminal control sequences may arrive split. Give them a tiny
            # chance to complete before treating Esc as an exit key.
            ready2, _, _ = select.select([TERM_FD], [], [], 0.01)
            if ready2:
                data += os.read(TERM_FD, 64)
    except OSError as e:
        raise TerminalError(f"reading terminal input failed: {e}") from e
    return data

def has_standalone_esc(data: bytes) -> bool:
    i = 0
    n = len(data)
    while i < n:
        if data[i] != 0x1B:
            i += 1
            continue

        # Plain Esc key (single byte) => exit.
        if i == n - 1:
            return True

        nxt = data[i + 1]
        # CSI / SS3 sequences (arrows, function keys, mouse, etc.) should not exit.
        if nxt in (ord("["), ord("O")):
            i += 2
            while i < n:
                b = data[i]
                i += 1
                if 0x40 <= b <= 0x7E:
                    break
            continue

        # Alt-modified key sequence (Esc + key) should not exit.
        i += 2

    return False

def strip_escape_sequences(data: bytes) -> bytes:
    out = bytearray()
    i = 0
    n = len(data)
    while i < n:
        b = data[i]
        if b != 0x1B:
            out.append(b)
            i += 1
            continue
        if i + 1 < n and data[i + 1] in (ord("["), ord("O")):
            i += 2
            while i < n:
                c = data[i]
                i += 1
                if 0x40 <= c <= 0x7E:
                    break
            continue
        i += 2
    return bytes(out)

def is_quit_input(data: bytes) -> bool:
    if not data:
        return False
    plain = strip_escape_sequences(data)
    if any(key in plain for key in QUIT_KEYS):
        return True
    return has_standalone_esc(data)

def poll_quit(timeout: float) -> bool:
    """Wait up to `timeout` seconds for a quit key (q or Esc)."""
    return is_quit_input(read_input(timeout))

def enter_screen() -> None:
    enter_alt_screen()
    set_line_wrap(False)
    set_cursor(False)
    enable_input_mode()

def leave_screen() -> None:
    restore_input_mode()
    failure: Optional[TerminalError] = None
    for step in (lambda: set_cursor(True), lambda: set_line_wrap(True), leave_alt_screen):
        try:
            step()
        except TerminalError as e:
            failure = failure or e
    if failure is not None:
        raise failure
