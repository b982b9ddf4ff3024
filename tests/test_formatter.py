"""Tests for record formatting and the batching policy."""

from datetime import datetime

import pytest

from conftest import parse_records
from conlog.formatter import (
    LineBatcher,
    Marker,
    StreamKind,
    format_header,
    format_marker,
    format_record,
)

NOW = datetime(2026, 1, 2, 3, 4, 5)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def test_stdout_record_layout():
    text = format_record(StreamKind.STDOUT, ["hello", "world"], now=NOW)
    assert text == "```\n[2026-01-02 03:04:05] STDOUT\nhello\nworld\n```\n\n"


def test_stderr_record_uses_error_fence():
    text = format_record(StreamKind.STDERR, ["boom"], now=NOW)
    assert text.startswith("```error\n[2026-01-02 03:04:05] STDERR\n")


def test_prefix_applied_to_every_line():
    text = format_record(StreamKind.SESSION, ["a", "b"], prefix="1>", now=NOW)
    assert parse_records(text) == [("SESSION", ["1> a", "1> b"])]


def test_empty_record_rejected():
    with pytest.raises(ValueError):
        format_record(StreamKind.STDOUT, [])


def test_concatenated_records_stay_separable():
    text = "".join(
        format_record(kind, [f"line {i}"], now=NOW)
        for i, kind in enumerate([StreamKind.STDOUT, StreamKind.STDERR, StreamKind.STDOUT])
    )
    assert [kind for kind, _ in parse_records(text)] == ["STDOUT", "STDERR", "STDOUT"]


# ---------------------------------------------------------------------------
# Markers and header
# ---------------------------------------------------------------------------

def test_exit_code_marker():
    assert format_marker(Marker.EXIT_CODE, "7", now=NOW) == "> **[2026-01-02 03:04:05]** Exit Code: 7\n\n"


def test_command_marker_with_prefix():
    text = format_marker(Marker.COMMAND, "make test", prefix="2>", now=NOW)
    assert "2> Command: make test" in text


def test_session_markers():
    assert "Session Started (pid 42)" in format_marker(Marker.SESSION_STARTED, "pid 42")
    assert format_marker(Marker.SESSION_ENDED, now=NOW).endswith("Session Ended\n\n")


def test_header():
    assert format_header("Console Log", now=NOW).startswith("# Console Log\n\n**Started:** 2026-01-02 03:04:05\n")


# ---------------------------------------------------------------------------
# Batching
# ---------------------------------------------------------------------------

def test_batch_released_at_cap():
    batcher = LineBatcher(max_lines=10)
    released = [batcher.add(f"l{i}") for i in range(10)]
    assert released[:9] == [None] * 9
    assert released[9] == [f"l{i}" for i in range(10)]
    assert len(batcher) == 0


def test_eleven_lines_then_flush_gives_ten_and_one():
    batcher = LineBatcher(max_lines=10)
    batches = [b for b in (batcher.add(f"l{i}") for i in range(11)) if b]
    batches.append(batcher.flush())
    assert [len(b) for b in batches] == [10, 1]
    assert batches[1] == ["l10"]


def test_idle_flush_due_after_quiet_period():
    now = [100.0]
    batcher = LineBatcher(max_lines=10, idle_seconds=2.0, clock=lambda: now[0])
    batcher.add("x")
    assert not batcher.idle_due()
    now[0] += 2.5
    assert batcher.idle_due()


def test_idle_flush_disabled_by_zero():
    now = [0.0]
    batcher = LineBatcher(max_lines=10, idle_seconds=0, clock=lambda: now[0])
    batcher.add("x")
    now[0] += 1000
    assert not batcher.idle_due()


def test_invalid_cap():
    with pytest.raises(ValueError):
        LineBatcher(max_lines=0)
