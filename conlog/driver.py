"""
Capture Driver - Session mode, command mode and stdin relay
"""

import logging
import os
import shlex
import shutil
import signal
import subprocess
import sys
import threading
from contextlib import contextmanager
from typing import BinaryIO, List, Optional

from . import channels
from .config import ConlogConfig
from .errors import CaptureError, LogWriteError, SessionNotFoundError, SpawnError
from .formatter import Marker, StreamKind, format_marker, format_record
from .pty_capture import PtyCapture
from .sanitizer import sanitize_line
from .session import SESSION_ENV, SessionManager
from .writer import LogWriter

logger = logging.getLogger(__name__)


def _drop_output(out: BinaryIO):
    """Point a broken output stream at devnull so the final flush stays quiet."""
    try:
        fd = out.fileno()
    except (OSError, ValueError):
        return
    devnull = os.open(os.devnull, os.O_WRONLY)
    try:
        os.dup2(devnull, fd)
    finally:
        os.close(devnull)


@contextmanager
def _sigint_ignored():
    """Ignore SIGINT in this process for the duration (main thread only)."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    old = signal.signal(signal.SIGINT, signal.SIG_IGN)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, old)


def _exit_status(returncode: int) -> int:
    # Popen reports death-by-signal N as -N; shells report 128+N
    if returncode < 0:
        return 128 - returncode
    return returncode


class _Drainer(threading.Thread):
    """Copies one pipe to a parent stream and logs each line as a record."""

    def __init__(self, pipe: BinaryIO, out: BinaryIO, kind: StreamKind, logger_: "RecordLogger"):
        super().__init__(name=f"conlog-{kind.value.lower()}", daemon=True)
        self.pipe = pipe
        self.out = out
        self.kind = kind
        self.records = logger_

    def run(self):
        forward = True
        with self.pipe:
            for raw in iter(self.pipe.readline, b""):
                if forward:
                    try:
                        self.out.write(raw)
                        self.out.flush()
                    except BrokenPipeError:
                        # Reader went away; keep draining so the child never blocks
                        forward = False
                        _drop_output(self.out)
                text = sanitize_line(raw)
                if text:
                    self.records.record(self.kind, [text])


class RecordLogger:
    """
    Best-effort record output for command mode.

    A failing log never interrupts the pass-through; the first failure is
    reported as a warning and later ones are counted.
    """

    def __init__(self, writer: LogWriter, prefix: Optional[str]):
        self.writer = writer
        self.prefix = prefix
        self.failures = 0
        self._lock = threading.Lock()

    def record(self, kind: StreamKind, lines: List[str]):
        self._append(format_record(kind, lines, self.prefix))

    def marker(self, marker: Marker, detail: Optional[str] = None):
        self._append(format_marker(marker, detail, self.prefix))

    def _append(self, text: str):
        try:
            self.writer.append(text)
        except LogWriteError as e:
            with self._lock:
                self.failures += 1
                first = self.failures == 1
            if first:
                logger.warning("logging disabled for this run: %s", e)


class CaptureDriver:
    """
    Top-level orchestrator.

    Usage:
        driver = CaptureDriver(ConlogConfig(), thread_id="build")
        sys.exit(driver.run_command(["make", "test"]))
    """

    def __init__(
        self,
        config: ConlogConfig,
        thread_id: Optional[str] = None,
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[BinaryIO] = None,
        stderr: Optional[BinaryIO] = None,
    ):
        self.config = config
        self.thread_id = thread_id
        self.channel = channels.resolve(thread_id)
        self.manager = SessionManager(config)
        self._stdin = stdin
        self._stdout = stdout
        self._stderr = stderr

    @property
    def stdin(self) -> BinaryIO:
        return self._stdin if self._stdin is not None else sys.stdin.buffer

    @property
    def stdout(self) -> BinaryIO:
        return self._stdout if self._stdout is not None else sys.stdout.buffer

    @property
    def stderr(self) -> BinaryIO:
        return self._stderr if self._stderr is not None else sys.stderr.buffer

    # ------------------------------------------------------------------
    # Session mode
    # ------------------------------------------------------------------

    def start_session(self) -> int:
        """
        Record an interactive shell until it exits.

        Raises:
            SessionConflictError: a session already exists for the thread
            CaptureError: the pseudo-terminal could not be set up
        """
        shell = self.config.shell_path
        if shutil.which(shell) is None:
            raise CaptureError(f"shell not found or not executable: {shell}")

        record = self.manager.start(self.thread_id)
        print(f"conlog: recording {self.channel.label} to {record.log_path}")
        print("conlog: exit the shell or run 'conlog stop' to finish")
        sys.stdout.flush()

        env = os.environ.copy()
        env[SESSION_ENV] = self.channel.key
        capture = PtyCapture([shell], record.buffer_path, env=env)

        try:
            capture.run()
        except CaptureError:
            self._auto_stop()
            raise

        if not capture.detached:
            self._auto_stop(announce=True)
        return 0

    def _auto_stop(self, announce: bool = False):
        try:
            record = self.manager.stop(self.thread_id, owner_pid=os.getpid())
        except SessionNotFoundError:
            # Already stopped from elsewhere, possibly restarted by another shell
            return
        if announce:
            print(f"conlog: session ended, log saved to {record.log_path}")

    def stop_session(self) -> int:
        """
        Stop the session for this thread.

        The owning capture is told to stop mirroring, so the shell keeps
        running unrecorded and its own exit stays quiet.

        Raises:
            SessionNotFoundError: no session exists for the thread
        """
        nested = self.manager.in_session(self.thread_id)
        record = self.manager.stop(self.thread_id)
        self.manager.detach_owner(record)
        if nested:
            print(f"conlog: recording stopped, log saved to {record.log_path}")
            print("conlog: this shell is no longer recorded")
        else:
            print(f"conlog: stopped {self.channel.label}, log saved to {record.log_path}")
        return 0

    def status(self) -> int:
        """Print the session state for this thread. Always returns 0."""
        status = self.manager.status(self.thread_id)
        if status.record is None:
            print(f"conlog: no active session for {self.channel.label}")
            print(f"Log: {self.manager.log_path_for(self.channel)}")
            return 0

        record = status.record
        if status.state == "stale":
            print(f"conlog: stale session for {self.channel.label} (pid {record.pid} is not running)")
        else:
            print(f"conlog: active session for {self.channel.label}")
        print(f"Log: {record.log_path}")
        print(f"PID: {record.pid}")
        print(f"Started: {record.started_at.strftime('%Y-%m-%d %H:%M:%S')}")
        return 0

    # ------------------------------------------------------------------
    # Command mode
    # ------------------------------------------------------------------

    def _record_logger(self) -> RecordLogger:
        try:
            self.config.log_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("cannot create %s: %s", self.config.log_path, e.strerror)
        return RecordLogger(self.manager.writer_for(self.channel), self.channel.prefix)

    def run_command(self, argv: List[str]) -> int:
        """
        Run ``argv``, passing its output through while logging each line.

        Returns:
            The child's exit status (128+N if it died from signal N)

        Raises:
            SpawnError: the command could not be started
        """
        records = self._record_logger()
        records.marker(Marker.COMMAND, shlex.join(argv))

        try:
            proc = subprocess.Popen(argv, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as e:
            err = SpawnError(argv, e)
            records.marker(Marker.EXIT_CODE, str(err.exit_code))
            raise err from e

        # Ctrl-C reaches the child through the terminal; we wait for its exit code
        with _sigint_ignored():
            drainers = [
                _Drainer(proc.stdout, self.stdout, StreamKind.STDOUT, records),
                _Drainer(proc.stderr, self.stderr, StreamKind.STDERR, records),
            ]
            for d in drainers:
                d.start()
            for d in drainers:
                d.join()
            exit_code = _exit_status(proc.wait())

        records.marker(Marker.EXIT_CODE, str(exit_code))
        logger.debug("%s exited with %d", argv[0], exit_code)
        return exit_code

    def relay_stdin(self) -> int:
        """Copy stdin to stdout, logging each line as a STDOUT record."""
        records = self._record_logger()
        forward = True
        for raw in iter(self.stdin.readline, b""):
            if forward:
                try:
                    self.stdout.write(raw)
                    self.stdout.flush()
                except BrokenPipeError:
                    # Downstream closed early (e.g. `| head`); keep logging
                    forward = False
                    _drop_output(self.stdout)
            text = sanitize_line(raw)
            if text:
                records.record(StreamKind.STDOUT, [text])
        return 0
