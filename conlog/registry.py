"""
Session Store - One JSON state file per active thread

Layout under the log directory:

    .sessions/<key>.json     session record, created with O_EXCL
    .scratch/                raw capture buffers and follower stderr
"""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from .errors import SessionConflictError

SESSIONS_DIR = ".sessions"
SCRATCH_DIR = ".scratch"


@dataclass
class SessionRecord:
    """Persisted state of one active capture session."""
    pid: int
    buffer_path: str
    log_path: str
    thread_id: Optional[str]
    prefix: Optional[str]
    follower_pid: Optional[int] = None
    started_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "pid": self.pid,
            "buffer_path": self.buffer_path,
            "log_path": self.log_path,
            "thread_id": self.thread_id,
            "prefix": self.prefix,
            "follower_pid": self.follower_pid,
            "started_at": self.started_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        return cls(
            pid=int(data["pid"]),
            buffer_path=data["buffer_path"],
            log_path=data["log_path"],
            thread_id=data.get("thread_id"),
            prefix=data.get("prefix"),
            follower_pid=data.get("follower_pid"),
            started_at=datetime.fromisoformat(data["started_at"]),
        )


class SessionStore:
    """
    Cross-process store of session records, keyed by channel key.

    Creation is create-if-absent (``O_CREAT | O_EXCL``), so two
    concurrent ``start`` invocations cannot both claim a thread.
    """

    def __init__(self, log_dir: Path):
        self.log_dir = Path(log_dir)
        self.sessions_dir = self.log_dir / SESSIONS_DIR
        self.scratch_dir = self.log_dir / SCRATCH_DIR

    def ensure_dirs(self):
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.scratch_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        return self.sessions_dir / f"{key}.json"

    def buffer_path_for(self, pid: int) -> Path:
        return self.scratch_dir / f"capture-{pid}.raw"

    def create(self, key: str, record: SessionRecord, label: str = None):
        """
        Persist a new record.

        Raises:
            SessionConflictError: a record already exists for ``key``
        """
        path = self.path_for(key)
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise SessionConflictError(label or key) from None
        with os.fdopen(fd, "w") as f:
            json.dump(record.to_dict(), f, indent=2)

    def update(self, key: str, record: SessionRecord):
        """Rewrite an existing record in place (atomic rename)."""
        path = self.path_for(key)
        tmp = path.with_suffix(f".tmp.{os.getpid()}")
        tmp.write_text(json.dumps(record.to_dict(), indent=2))
        os.replace(tmp, path)

    def get(self, key: str) -> Optional[SessionRecord]:
        path = self.path_for(key)
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError:
            return None
        return SessionRecord.from_dict(data)

    def delete(self, key: str) -> bool:
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            return False
        return True
