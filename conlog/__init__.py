"""
conlog - Console Logger for Terminal Sessions and Commands

Captures terminal sessions and command output as timestamped, fenced
markdown records so a reviewer can reconstruct what happened later.
"""

__version__ = "1.0.0"

from .channels import Channel, resolve
from .config import ConlogConfig
from .driver import CaptureDriver
from .formatter import LineBatcher, Marker, StreamKind, format_marker, format_record
from .registry import SessionRecord, SessionStore
from .sanitizer import sanitize_line, sanitize_lines
from .session import SessionManager
from .writer import LogWriter

__all__ = [
    "Channel",
    "resolve",
    "ConlogConfig",
    "CaptureDriver",
    "LineBatcher",
    "Marker",
    "StreamKind",
    "format_marker",
    "format_record",
    "SessionRecord",
    "SessionStore",
    "sanitize_line",
    "sanitize_lines",
    "SessionManager",
    "LogWriter",
]
