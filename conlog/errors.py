"""
Errors - Failure kinds surfaced by the capture pipeline
"""


class ConlogError(Exception):
    """Base error. ``exit_code`` is what the CLI exits with."""
    exit_code = 1


class UsageError(ConlogError):
    """Bad command line (unknown option, missing value)."""


class SessionConflictError(ConlogError):
    """A session is already active for the thread."""

    def __init__(self, thread_label: str, log_path=None):
        self.thread_label = thread_label
        self.log_path = log_path
        super().__init__(
            f"a session is already active for {thread_label}; run 'conlog stop' first"
        )


class SessionNotFoundError(ConlogError):
    """No session is active for the thread."""

    def __init__(self, thread_label: str):
        self.thread_label = thread_label
        super().__init__(f"no active session for {thread_label}")


class LogWriteError(ConlogError):
    """The log directory or file could not be written."""

    def __init__(self, path, cause: OSError):
        self.path = path
        self.cause = cause
        super().__init__(f"cannot write {path}: {cause.strerror or cause}")


class SpawnError(ConlogError):
    """The target command could not be started."""

    def __init__(self, argv, cause: OSError):
        self.argv = list(argv)
        self.cause = cause
        if isinstance(cause, FileNotFoundError):
            self.exit_code = 127
        else:
            self.exit_code = 126
        super().__init__(f"{self.argv[0]}: {cause.strerror or cause}")


class CaptureError(ConlogError):
    """The pseudo-terminal capture could not be set up."""
