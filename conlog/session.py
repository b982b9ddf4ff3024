"""
Session Registry - start / status / stop for session-mode captures

Per thread id the state machine is ``absent -> active -> absent``. The
state lives in the SessionStore so that an independent ``conlog stop``
invocation can find and tear down a running session.
"""

import logging
import os
import signal
import subprocess
import sys
import sysconfig
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import channels
from .channels import Channel
from .config import ConlogConfig
from .errors import ConlogError, SessionNotFoundError
from .formatter import Marker, format_marker
from .registry import SessionRecord, SessionStore
from .writer import LogWriter

logger = logging.getLogger(__name__)

# Set in the recorded shell's environment to the session key
SESSION_ENV = "CONLOG_SESSION"

_PACKAGE_ROOT = Path(__file__).resolve().parent.parent


def _follower_env() -> Optional[dict]:
    """
    Environment for the follower process.

    An installed package is found by `python -m` as is. A source checkout
    run in place is added to PYTHONPATH so the follower imports the same copy.
    """
    site_dirs = {sysconfig.get_path("purelib"), sysconfig.get_path("platlib")}
    if str(_PACKAGE_ROOT) in {str(Path(p).resolve()) for p in site_dirs if p}:
        return None
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(
        p for p in (str(_PACKAGE_ROOT), env.get("PYTHONPATH")) if p
    )
    return env


def _pid_alive(pid: Optional[int]) -> bool:
    if not pid:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


@dataclass
class SessionStatus:
    """Read-only view of one thread's session state."""
    channel: Channel
    record: Optional[SessionRecord]

    @property
    def state(self) -> str:
        if self.record is None:
            return "absent"
        if not _pid_alive(self.record.pid):
            return "stale"
        return "active"

    @property
    def active(self) -> bool:
        return self.record is not None


class SessionManager:
    """
    Creates, inspects and tears down capture sessions.

    Usage:
        manager = SessionManager(ConlogConfig(log_dir="logs"))
        record = manager.start("server1", pid=os.getpid())
        ...
        manager.stop("server1")
    """

    def __init__(self, config: ConlogConfig):
        self.config = config
        self.log_dir = config.log_path
        self.store = SessionStore(self.log_dir)
        self._followers = {}

    def log_path_for(self, channel: Channel) -> Path:
        return self.log_dir / channel.log_name

    def writer_for(self, channel: Channel) -> LogWriter:
        return LogWriter(self.log_path_for(channel), title=channel.title(self.config.title))

    def start(self, thread_id: Optional[str], pid: Optional[int] = None, spawn_follower: bool = True) -> SessionRecord:
        """
        Register a new session and start its background follower.

        Args:
            thread_id: Thread to capture under
            pid: Process that owns the capture (defaults to this one)
            spawn_follower: Start the follower process

        Raises:
            SessionConflictError: a session already exists for the thread
            LogWriteError: the log directory is not writable
        """
        channel = channels.resolve(thread_id)
        pid = pid or os.getpid()
        try:
            self.store.ensure_dirs()
        except OSError as e:
            raise ConlogError(f"cannot create {self.log_dir}: {e.strerror}") from e

        record = SessionRecord(
            pid=pid,
            buffer_path=str(self.store.buffer_path_for(pid)),
            log_path=str(self.log_path_for(channel)),
            thread_id=channel.thread_id,
            prefix=channel.prefix,
        )
        self.store.create(channel.key, record, label=channel.label)

        try:
            self.writer_for(channel).append(
                format_marker(Marker.SESSION_STARTED, f"pid {pid}", channel.prefix)
            )
            Path(record.buffer_path).touch()
            if spawn_follower:
                record.follower_pid = self._spawn_follower(record, channel)
                self.store.update(channel.key, record)
        except BaseException:
            self._stop_follower(record.follower_pid)
            self.store.delete(channel.key)
            self._remove_buffer(record)
            raise

        logger.debug("session %s started: %s", channel.key, record.to_dict())
        return record

    def status(self, thread_id: Optional[str]) -> SessionStatus:
        """Report the session for a thread. Never mutates anything."""
        channel = channels.resolve(thread_id)
        return SessionStatus(channel, self.store.get(channel.key))

    def stop(self, thread_id: Optional[str], owner_pid: Optional[int] = None) -> SessionRecord:
        """
        Tear down a session: stop the follower, write the end marker,
        delete the record and the capture buffer.

        Args:
            thread_id: Thread whose session to stop
            owner_pid: Only stop the session if this process owns it

        Raises:
            SessionNotFoundError: no session exists for the thread (or it
                belongs to another owner)
        """
        channel = channels.resolve(thread_id)
        record = self.store.get(channel.key)
        if record is None:
            raise SessionNotFoundError(channel.label)
        if owner_pid is not None and record.pid != owner_pid:
            logger.debug("session %s now belongs to pid %d, leaving it", channel.key, record.pid)
            raise SessionNotFoundError(channel.label)

        self._stop_follower(record.follower_pid)
        try:
            self.writer_for(channel).append(
                format_marker(Marker.SESSION_ENDED, None, channel.prefix)
            )
        finally:
            self.store.delete(channel.key)
            self._remove_buffer(record)

        logger.debug("session %s stopped", channel.key)
        return record

    def in_session(self, thread_id: Optional[str]) -> bool:
        """True when called from inside the shell recorded for this thread."""
        return os.environ.get(SESSION_ENV) == channels.resolve(thread_id).key

    def detach_owner(self, record: SessionRecord) -> bool:
        """
        Tell the capture that owned a stopped session to stop mirroring
        into its (now deleted) buffer. Returns True if it was signalled.
        """
        if record.pid == os.getpid() or not _pid_alive(record.pid):
            return False
        try:
            os.kill(record.pid, signal.SIGUSR1)
        except (ProcessLookupError, PermissionError):
            return False
        logger.debug("sent SIGUSR1 to capture pid %d", record.pid)
        return True

    def _spawn_follower(self, record: SessionRecord, channel: Channel) -> int:
        cmd = [
            sys.executable, "-m", "conlog.follower",
            "--buffer", record.buffer_path,
            "--log", record.log_path,
            "--title", channel.title(self.config.title),
            "--batch-lines", str(self.config.batch_lines),
            "--idle-flush", str(self.config.idle_flush_seconds),
            "--poll-interval", str(self.config.poll_interval),
        ]
        if record.prefix:
            cmd += ["--prefix", record.prefix]

        env = _follower_env()

        err_path = self.store.scratch_dir / f"follower-{record.pid}.err"
        with open(err_path, "ab") as err:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=err,
                env=env,
                start_new_session=True,
            )
        with proc.stdout:
            ready = proc.stdout.readline()
        if not ready:
            proc.wait()
            detail = err_path.read_text(errors="replace").strip().splitlines()
            raise ConlogError("follower failed to start" + (f": {detail[-1]}" if detail else ""))
        self._followers[proc.pid] = proc
        logger.debug("follower pid %d for %s", proc.pid, record.buffer_path)
        return proc.pid

    def _stop_follower(self, pid: Optional[int]):
        if not pid:
            return
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            return

        deadline = time.monotonic() + self.config.stop_timeout
        while time.monotonic() < deadline:
            if self._reap(pid):
                return
            time.sleep(0.05)

        logger.warning("follower %d did not exit after SIGTERM, killing it", pid)
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            return
        self._reap(pid)

    def _reap(self, pid: int) -> bool:
        """True once ``pid`` has exited (reaping it if it is our child)."""
        proc = self._followers.get(pid)
        if proc is not None:
            if proc.poll() is None:
                return False
            del self._followers[pid]
            return True
        try:
            done, _ = os.waitpid(pid, os.WNOHANG)
            if done:
                return True
        except ChildProcessError:
            pass
        return not _pid_alive(pid)

    def _remove_buffer(self, record: SessionRecord):
        buffer_path = Path(record.buffer_path)
        for path in (buffer_path, buffer_path.with_name(f"follower-{record.pid}.err")):
            try:
                path.unlink()
            except FileNotFoundError:
                pass
