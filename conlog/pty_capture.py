"""
PTY Capture - Runs the interactive shell on a pseudo-terminal

Everything the shell writes to its terminal (including echoed input) is
passed through to the real terminal unchanged and mirrored, byte for
byte, into the raw capture buffer. The shell cannot tell it is being
recorded: it gets a real tty, the real window size, and resize events.
"""

import errno
import fcntl
import logging
import os
import pty
import select
import signal
import struct
import sys
import termios
import tty
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import CaptureError

logger = logging.getLogger(__name__)

READ_SIZE = 4096


def _term_size(fd: int) -> Tuple[int, int]:
    try:
        ts = fcntl.ioctl(fd, termios.TIOCGWINSZ, b"\x00" * 8)
        rows, cols = struct.unpack_from("HH", ts)
        if rows > 0 and cols > 0:
            return rows, cols
    except OSError:
        pass
    return 24, 80


def _set_winsize(fd: int, rows: int, cols: int):
    try:
        fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))
    except OSError:
        pass


@contextmanager
def _raw_terminal(fd: int):
    """Put *fd* in raw mode, restore on exit."""
    old = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old)


class PtyCapture:
    """
    Runs ``argv`` under a pseudo-terminal, recording its output.

    Sending SIGUSR1 to this process detaches the recording: the buffer is
    closed and the shell keeps running with plain pass-through.
    """

    def __init__(self, argv: List[str], buffer_path: Path, env: Optional[Dict[str, str]] = None):
        self.argv = list(argv)
        self.buffer_path = Path(buffer_path)
        self.env = env
        self._buffer = None
        self._detached = False

    @property
    def detached(self) -> bool:
        return self._detached

    def detach(self):
        """Stop mirroring into the buffer."""
        self._detached = True

    def run(self) -> int:
        """
        Run the shell to completion.

        Returns:
            The shell's exit code

        Raises:
            CaptureError: the pseudo-terminal or the buffer could not be set up
        """
        stdin_fd = pty.STDIN_FILENO
        stdout_fd = pty.STDOUT_FILENO
        is_tty = os.isatty(stdin_fd)

        try:
            self._buffer = open(self.buffer_path, "ab", buffering=0)
        except OSError as e:
            raise CaptureError(f"cannot open capture buffer {self.buffer_path}: {e.strerror}") from e

        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            self._buffer.close()
            raise CaptureError(f"cannot allocate a pseudo-terminal: {e.strerror}") from e

        rows, cols = _term_size(stdout_fd)
        _set_winsize(slave_fd, rows, cols)

        sys.stdout.flush()
        pid = os.fork()

        if pid == 0:
            # child
            try:
                os.close(master_fd)
                os.setsid()
                fcntl.ioctl(slave_fd, termios.TIOCSCTTY, 0)
                for fd in (0, 1, 2):
                    os.dup2(slave_fd, fd)
                if slave_fd > 2:
                    os.close(slave_fd)
                if self.env is not None:
                    os.execvpe(self.argv[0], self.argv, self.env)
                os.execvp(self.argv[0], self.argv)
            except OSError as e:
                os.write(2, f"conlog: {self.argv[0]}: {e.strerror}\r\n".encode())
            os._exit(127)

        # parent
        os.close(slave_fd)

        def _sigwinch(signum, frame):
            r, c = _term_size(stdout_fd)
            _set_winsize(master_fd, r, c)

        old_sigwinch = signal.signal(signal.SIGWINCH, _sigwinch)
        old_sigusr1 = signal.signal(signal.SIGUSR1, lambda signum, frame: self.detach())
        exit_code = 0

        try:
            if is_tty:
                with _raw_terminal(stdin_fd):
                    self._io_loop(master_fd, stdin_fd, stdout_fd, is_tty)
            else:
                self._io_loop(master_fd, stdin_fd, stdout_fd, is_tty)
        finally:
            os.close(master_fd)
            self._buffer.close()
            signal.signal(signal.SIGWINCH, old_sigwinch)
            signal.signal(signal.SIGUSR1, old_sigusr1)
            try:
                _, status = os.waitpid(pid, 0)
                exit_code = os.waitstatus_to_exitcode(status)
            except ChildProcessError:
                pass

        return exit_code

    def _io_loop(self, master_fd: int, stdin_fd: int, stdout_fd: int, is_tty: bool):
        """Forward PTY output to stdout and the buffer; forward stdin to the PTY."""
        watch_fds = [master_fd, stdin_fd] if is_tty else [master_fd]
        while True:
            try:
                r, _, _ = select.select(watch_fds, [], [], 0.05)
            except InterruptedError:
                continue

            if master_fd in r:
                try:
                    data = os.read(master_fd, READ_SIZE)
                except OSError as e:
                    # EIO: the shell closed its side of the terminal
                    if e.errno != errno.EIO:
                        raise
                    break
                if not data:
                    break
                os.write(stdout_fd, data)
                self._record(data)

            if is_tty and stdin_fd in r:
                data = os.read(stdin_fd, READ_SIZE)
                if data:
                    os.write(master_fd, data)
                else:
                    watch_fds = [master_fd]

    def _record(self, data: bytes):
        if self._detached:
            if not self._buffer.closed:
                self._buffer.close()
                logger.debug("recording detached from %s", self.buffer_path)
            return
        try:
            self._buffer.write(data)
        except OSError as e:
            raise CaptureError(f"cannot write capture buffer {self.buffer_path}: {e.strerror}") from e
