"""Tests for argument parsing and verb dispatch."""

import signal
import sys

import pytest

from conlog.cli import main, parse_args
from conlog.errors import UsageError


def _exit_code(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def test_verb_with_options_after():
    ns = parse_args(["start", "--thread", "server1", "-d", "/tmp/x"])
    assert ns.verb == "start"
    assert ns.thread == "server1"
    assert ns.dir == "/tmp/x"
    assert ns.command == []


def test_options_before_verb():
    ns = parse_args(["-t", "2", "status"])
    assert ns.verb == "status"
    assert ns.thread == "2"


def test_command_flags_belong_to_command():
    ns = parse_args(["-t", "build", "ls", "-la", "--thread", "x"])
    assert ns.verb is None
    assert ns.thread == "build"
    assert ns.command == ["ls", "-la", "--thread", "x"]


def test_double_dash_separates_command():
    ns = parse_args(["-t", "a1", "--", "start", "-x"])
    assert ns.verb is None
    assert ns.command == ["start", "-x"]


def test_double_dash_inside_command_is_kept():
    ns = parse_args(["git", "diff", "--", "README.md"])
    assert ns.command == ["git", "diff", "--", "README.md"]


@pytest.mark.parametrize("argv", [["--bogus"], ["-z", "ls"], ["stop", "extra"], ["-t"]])
def test_bad_arguments_are_usage_errors(argv):
    with pytest.raises(UsageError):
        parse_args(argv)


def test_no_arguments_means_stdin_relay():
    ns = parse_args([])
    assert ns.verb is None
    assert ns.command == []


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

def test_unknown_option_prints_usage_and_exits_1(capsys):
    assert _exit_code(["--bogus"]) == 1
    assert "usage: conlog" in capsys.readouterr().err


def test_help_exits_0(capsys):
    assert _exit_code(["-h"]) == 0
    assert "usage: conlog" in capsys.readouterr().out


def test_status_always_exits_0(tmp_path, capsys):
    assert _exit_code(["status", "-d", str(tmp_path)]) == 0
    assert "no active session" in capsys.readouterr().out
    assert _exit_code(["status", "-t", "x1", "-d", str(tmp_path)]) == 0


def test_stop_without_session_exits_1(tmp_path, capsys):
    assert _exit_code(["stop", "-t", "ghost", "-d", str(tmp_path)]) == 1
    assert "no active session" in capsys.readouterr().err


def test_start_conflict_exits_1(tmp_path, capsys):
    from conlog.config import ConlogConfig
    from conlog.session import SessionManager

    manager = SessionManager(ConlogConfig(log_dir=str(tmp_path)))
    manager.start("t", spawn_follower=False)

    assert _exit_code(["start", "-t", "t", "-d", str(tmp_path)]) == 1
    assert "already active" in capsys.readouterr().err
    assert manager.store.get("t") is not None


def test_command_mode_exit_code(tmp_path):
    code = _exit_code(["-d", str(tmp_path), "--", sys.executable, "-c", "raise SystemExit(7)"])
    assert code == 7
    assert "Exit Code: 7" in (tmp_path / "console.md").read_text()


def test_stop_from_inside_session(tmp_path, monkeypatch, capsys):
    from conlog.config import ConlogConfig
    from conlog.session import SessionManager

    signalled = []
    manager = SessionManager(ConlogConfig(log_dir=str(tmp_path)))
    manager.start("t", pid=4242, spawn_follower=False)
    monkeypatch.setenv("CONLOG_SESSION", "t")
    monkeypatch.setattr("conlog.session.os.kill", lambda pid, sig: signalled.append((pid, sig)))

    assert _exit_code(["stop", "-t", "t", "-d", str(tmp_path)]) == 0
    assert (4242, signal.SIGUSR1) in signalled
    assert "no longer recorded" in capsys.readouterr().out
    assert manager.store.get("t") is None


def test_stop_from_another_terminal_detaches_owner(tmp_path, monkeypatch, capsys):
    from conlog.config import ConlogConfig
    from conlog.session import SessionManager

    signalled = []
    manager = SessionManager(ConlogConfig(log_dir=str(tmp_path)))
    manager.start("t", pid=4242, spawn_follower=False)
    monkeypatch.setattr("conlog.session.os.kill", lambda pid, sig: signalled.append((pid, sig)))

    assert _exit_code(["stop", "-t", "t", "-d", str(tmp_path)]) == 0
    assert (4242, signal.SIGUSR1) in signalled
    assert "stopped thread 't'" in capsys.readouterr().out
    assert manager.store.get("t") is None


def test_stop_of_dead_owner_sends_nothing(tmp_path, monkeypatch):
    from conlog.config import ConlogConfig
    from conlog.session import SessionManager

    def _kill(pid, sig):
        signalled.append((pid, sig))
        raise ProcessLookupError(pid)

    signalled = []
    manager = SessionManager(ConlogConfig(log_dir=str(tmp_path)))
    manager.start("t", pid=4242, spawn_follower=False)
    monkeypatch.setattr("conlog.session.os.kill", _kill)

    assert _exit_code(["stop", "-t", "t", "-d", str(tmp_path)]) == 0
    assert (4242, signal.SIGUSR1) not in signalled
