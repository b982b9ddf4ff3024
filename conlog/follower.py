"""
Buffer Follower - Tails the raw capture buffer into the log

Runs as a detached process during session mode:

    python -m conlog.follower --buffer B --log L [--prefix P] [--title T]

It reads newly appended bytes, splits them into lines, sanitizes, batches
and writes SESSION records until the buffer file disappears or it receives
SIGTERM. Either way it drains what is left (including a trailing partial
line) and flushes before exiting.
"""

import argparse
import logging
import os
import signal
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional

from .errors import LogWriteError
from .formatter import LineBatcher, StreamKind, format_record
from .sanitizer import sanitize_line
from .writer import LogWriter

logger = logging.getLogger(__name__)

READ_SIZE = 65536


class BufferFollower:
    """
    Follows a growing buffer file, ``tail -f`` style.

    Usage:
        follower = BufferFollower(buffer_path, LogWriter(log_path), prefix="1>")
        follower.run()          # blocks until stop() or the buffer vanishes
    """

    def __init__(
        self,
        buffer_path: Path,
        writer: LogWriter,
        prefix: Optional[str] = None,
        batch_lines: int = 10,
        idle_seconds: float = 0.0,
        poll_interval: float = 0.2,
    ):
        """
        Initialize the follower.

        Args:
            buffer_path: Raw capture buffer to tail
            writer: Writer for the session's log file
            prefix: Thread prefix for content lines
            batch_lines: Lines per record before a forced flush
            idle_seconds: Flush a partial batch after this much quiet (0 = never)
            poll_interval: Sleep between reads when no new data is available
        """
        self.buffer_path = Path(buffer_path)
        self.writer = writer
        self.prefix = prefix
        self.poll_interval = poll_interval
        self.batcher = LineBatcher(max_lines=batch_lines, idle_seconds=idle_seconds)

        self._stopping = False
        self._partial = b""
        self._record_count = 0

    @property
    def count(self) -> int:
        """Records written so far."""
        return self._record_count

    def stop(self):
        """Ask the loop to drain and exit (safe from a signal handler)."""
        self._stopping = True

    def run(self, on_ready: Optional[Callable[[], None]] = None):
        """
        Main follow loop.

        Args:
            on_ready: Called once the buffer is open and being followed
        """
        with open(self.buffer_path, "rb") as f:
            if on_ready:
                on_ready()
            while not self._stopping:
                chunk = f.read(READ_SIZE)
                if chunk:
                    self._feed(chunk)
                    continue
                if self.batcher.idle_due():
                    self._emit(self.batcher.flush())
                if not self.buffer_path.exists():
                    break
                time.sleep(self.poll_interval)

            # Drain whatever the capture wrote before we were told to stop
            while True:
                chunk = f.read(READ_SIZE)
                if not chunk:
                    break
                self._feed(chunk)

        if self._partial:
            self._add_line(self._partial)
            self._partial = b""
        self._emit(self.batcher.flush())

    def _feed(self, chunk: bytes):
        data = self._partial + chunk
        *lines, self._partial = data.split(b"\n")
        for line in lines:
            self._add_line(line)

    def _add_line(self, raw: bytes):
        text = sanitize_line(raw)
        if text:
            self._emit(self.batcher.add(text))

    def _emit(self, lines: Optional[List[str]]):
        if not lines:
            return
        self.writer.append(format_record(StreamKind.SESSION, lines, self.prefix))
        self._record_count += 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="conlog-follower", description="Tail a capture buffer into a log file")
    parser.add_argument("--buffer", required=True, help="Raw capture buffer")
    parser.add_argument("--log", required=True, help="Target log file")
    parser.add_argument("--prefix", default=None, help="Thread prefix")
    parser.add_argument("--title", default=None, help="Log file heading")
    parser.add_argument("--batch-lines", type=int, default=10)
    parser.add_argument("--idle-flush", type=float, default=0.0)
    parser.add_argument("--poll-interval", type=float, default=0.2)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="conlog-follower: %(levelname)s: %(message)s")

    follower = BufferFollower(
        buffer_path=Path(args.buffer),
        writer=LogWriter(Path(args.log), title=args.title),
        prefix=args.prefix,
        batch_lines=args.batch_lines,
        idle_seconds=args.idle_flush,
        poll_interval=args.poll_interval,
    )

    signal.signal(signal.SIGTERM, lambda signum, frame: follower.stop())
    signal.signal(signal.SIGINT, signal.SIG_IGN)

    def _ready():
        # The parent blocks on this line; SIGTERM is handled from here on
        sys.stdout.write("ready\n")
        sys.stdout.flush()
        sys.stdout.close()

    try:
        follower.run(on_ready=_ready)
    except FileNotFoundError:
        logger.error("capture buffer not found: %s", args.buffer)
        return 1
    except LogWriteError as e:
        logger.error("%s", e)
        return 1
    logger.debug("follower %d exiting after %d records", os.getpid(), follower.count)
    return 0


if __name__ == "__main__":
    sys.exit(main())
