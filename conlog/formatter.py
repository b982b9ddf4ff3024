"""
Record Formatter - Turns sanitized lines into fenced, timestamped records

Record layout (stable, parsed by downstream reviewers):

    ```                         (```error for STDERR)
    [2026-01-01 12:00:00] STDOUT
    1> first line
    1> second line
    ```
    <blank line>

Metadata markers are single blockquote lines:

    > **[2026-01-01 12:00:00]** Exit Code: 7
"""

import time
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
FENCE = "```"
ERROR_FENCE = "```error"


class StreamKind(Enum):
    """Where a batch of content lines came from."""
    SESSION = "SESSION"
    STDOUT = "STDOUT"
    STDERR = "STDERR"


class Marker(Enum):
    """Metadata markers recorded around captured content."""
    SESSION_STARTED = "Session Started"
    SESSION_ENDED = "Session Ended"
    COMMAND = "Command"
    EXIT_CODE = "Exit Code"


def timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def format_record(
    kind: StreamKind,
    lines: Sequence[str],
    prefix: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Format one fenced record.

    Args:
        kind: Stream the lines were captured from
        lines: Sanitized content lines, in capture order
        prefix: Thread prefix prepended to every content line
        now: Flush time (defaults to the current time)

    Returns:
        Record text, ending with a blank separator line
    """
    if not lines:
        raise ValueError("a record needs at least one line")

    fence = ERROR_FENCE if kind is StreamKind.STDERR else FENCE
    out = [fence, f"[{timestamp(now)}] {kind.value}"]
    if prefix:
        out.extend(f"{prefix} {line}" for line in lines)
    else:
        out.extend(lines)
    out.append(FENCE)
    return "\n".join(out) + "\n\n"


def format_marker(
    marker: Marker,
    detail: Optional[str] = None,
    prefix: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """Format a metadata marker such as ``Exit Code: 7``."""
    if marker in (Marker.COMMAND, Marker.EXIT_CODE):
        text = f"{marker.value}: {detail}"
    elif detail:
        text = f"{marker.value} ({detail})"
    else:
        text = marker.value
    if prefix:
        text = f"{prefix} {text}"
    return f"> **[{timestamp(now)}]** {text}\n\n"


def format_header(title: str, now: Optional[datetime] = None) -> str:
    """Header written once, when a log file is first created."""
    return f"# {title}\n\n**Started:** {timestamp(now)}\n\n---\n\n"


class LineBatcher:
    """
    Accumulates lines and decides when they become a record.

    A batch is released when it reaches ``max_lines``, when it has sat
    idle for ``idle_seconds`` (0 disables the idle flush), or when the
    caller flushes at end of stream.
    """

    def __init__(
        self,
        max_lines: int = 10,
        idle_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_lines < 1:
            raise ValueError("max_lines must be at least 1")
        self.max_lines = max_lines
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._lines: List[str] = []
        self._last_add = 0.0

    def __len__(self) -> int:
        return len(self._lines)

    def add(self, line: str) -> Optional[List[str]]:
        """Add a line; returns a full batch once the cap is reached."""
        self._lines.append(line)
        self._last_add = self._clock()
        if len(self._lines) >= self.max_lines:
            return self.flush()
        return None

    def idle_due(self) -> bool:
        if not self._lines or self.idle_seconds <= 0:
            return False
        return self._clock() - self._last_add >= self.idle_seconds

    def flush(self) -> List[str]:
        """Release whatever is pending (possibly nothing)."""
        lines, self._lines = self._lines, []
        return lines
