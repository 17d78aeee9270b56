import pytest

import procview_terminal
from procview_common import TerminalError
from procview_terminal import has_standalone_esc, is_quit_input, strip_escape_sequences


@pytest.mark.parametrize("data", [b"q", b"Q", b"\x1b", b"abcq", b"\x1b[A\x1b"])
def test_quit_keys(data: bytes) -> None:
    assert is_quit_input(data)


@pytest.mark.parametrize("data", [b"", b"x", b"\x1b[A", b"\x1bOP", b"\x1bq", b"\x1b[1;5Q"])
def test_non_quit_input(data: bytes) -> None:
    assert not is_quit_input(data)


def test_standalone_esc_ignores_csi() -> None:
    assert not has_standalone_esc(b"\x1b[<0;10;5M")
    assert has_standalone_esc(b"\x1b[<0;10;5M\x1b")


def test_strip_escape_sequences_keeps_plain_bytes() -> None:
    assert strip_escape_sequences(b"a\x1b[31mb\x1bOPc") == b"abc"


def test_poll_without_raw_mode_never_quits(monkeypatch) -> None:
    monkeypatch.setattr(procview_terminal, "TERM_FD", None)
    assert procview_terminal.poll_quit(0.0) is False


def test_read_failure_is_terminal_error(monkeypatch) -> None:
    def broken_select(*_args):
        raise OSError(9, "Bad file descriptor")

    monkeypatch.setattr(procview_terminal, "TERM_FD", 99)
    monkeypatch.setattr(procview_terminal.select, "select", broken_select)
    with pytest.raises(TerminalError):
        procview_terminal.poll_quit(0.01)


def test_leave_screen_runs_every_step(monkeypatch) -> None:
    calls = []

    def failing_cursor(visible: bool) -> None:
        calls.append("cursor")
        raise TerminalError("stdout closed")

    monkeypatch.setattr(procview_terminal, "restore_input_mode", lambda: calls.append("input"))
    monkeypatch.setattr(procview_terminal, "set_cursor", failing_cursor)
    monkeypatch.setattr(procview_terminal, "set_line_wrap", lambda enabled: calls.append("wrap"))
    monkeypatch.setattr(procview_terminal, "leave_alt_screen", lambda: calls.append("alt"))
    with pytest.raises(TerminalError):
        procview_terminal.leave_screen()
    assert calls == ["input", "cursor", "wrap", "alt"]
