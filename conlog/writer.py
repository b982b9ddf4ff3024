"""
Log Writer - Appends whole records to a log file

Appends to the same file are serialized: a per-path lock inside the
process and an exclusive ``flock`` across processes (the follower, the
stop command and command-mode drainers may all target one file).
Different files never block each other.
"""

import fcntl
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Optional

from .errors import LogWriteError
from .formatter import format_header

logger = logging.getLogger(__name__)

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = os.path.abspath(path)
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


class LogWriter:
    """
    Appends records to one log file.

    Usage:
        writer = LogWriter(Path("logs/console.md"), title="Console Log")
        writer.append(format_record(StreamKind.STDOUT, ["hello"]))
    """

    def __init__(self, path: Path, title: Optional[str] = None):
        self.path = Path(path)
        self.title = title or "Console Log"
        self._lock = _lock_for(self.path)

    def append(self, text: str):
        """
        Append ``text`` and fsync before returning.

        The file is created with a header on first write. The directory
        is never created here; a missing directory is an IO failure.

        Raises:
            LogWriteError: the file could not be opened or written
        """
        # argv and filenames may carry undecodable bytes as surrogates
        data = text.encode("utf-8", errors="backslashreplace")
        with self._lock:
            try:
                fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            except OSError as e:
                raise LogWriteError(self.path, e) from e
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                if os.fstat(fd).st_size == 0:
                    data = format_header(self.title).encode("utf-8") + data
                view = memoryview(data)
                while view:
                    written = os.write(fd, view)
                    view = view[written:]
                os.fsync(fd)
            except OSError as e:
                raise LogWriteError(self.path, e) from e
            finally:
                os.close(fd)  # releases the flock
        logger.debug("appended %d bytes to %s", len(data), self.path)
