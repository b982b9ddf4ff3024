"""
Channels - Thread id resolution

A thread id multiplexes independent captures onto log files:

    (none)     -> console.md          no prefix
    "2"        -> console.md          "2>"
    "server"   -> console-server.md   "server>"
    "server1"  -> console-server.md   "1>"
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

DEFAULT_LOG_NAME = "console.md"
# quote() always escapes "@", so no thread id can produce this key
DEFAULT_KEY = "@default"

_SPLIT_RE = re.compile(r"^(.*?)(\d*)$", re.DOTALL)
_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class Channel:
    """Where a thread's records go and how its lines are attributed."""
    thread_id: Optional[str]
    base_name: str
    suffix: str
    log_name: str
    prefix: Optional[str]

    @property
    def key(self) -> str:
        """Session registry key (file-name safe, distinct per thread id)."""
        if not self.thread_id:
            return DEFAULT_KEY
        return quote(self.thread_id, safe="")

    @property
    def label(self) -> str:
        return f"thread '{self.thread_id}'" if self.thread_id else "the default thread"

    def title(self, base: str = "Console Log") -> str:
        """Log file heading for this channel."""
        if self.base_name:
            return f"{base}: {self.base_name}"
        return base


def resolve(thread_id: Optional[str]) -> Channel:
    """
    Resolve a thread id into its log file name and line prefix.

    An empty thread id is treated the same as no thread id.
    """
    if not thread_id:
        return Channel(None, "", "", DEFAULT_LOG_NAME, None)

    base, suffix = _SPLIT_RE.match(thread_id).groups()

    if not base:
        # Purely numeric: default file, numeric prefix
        return Channel(thread_id, "", suffix, DEFAULT_LOG_NAME, f"{suffix}>")

    safe_base = _UNSAFE_RE.sub("-", base).strip("-") or "thread"
    prefix = f"{suffix}>" if suffix else f"{thread_id}>"
    return Channel(thread_id, base, suffix, f"console-{safe_base}.md", prefix)
