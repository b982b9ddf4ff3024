"""
conlog - Console Logger for Terminal Sessions and Commands

Records terminal sessions and command output as timestamped, fenced
markdown records that a reviewer (human or agent) can read back later.

Usage:
    conlog start [-t ID] [-d DIR]      Record an interactive shell
    conlog stop [-t ID] [-d DIR]       Stop recording
    conlog status [-t ID] [-d DIR]     Show session state
    conlog [-t ID] [--] CMD [ARGS...]  Run and record one command
    CMD | conlog [-t ID]               Record piped output
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import ConlogConfig
from .driver import CaptureDriver
from .errors import ConlogError, UsageError

VERBS = ("start", "stop", "status")

USAGE = """\
usage: conlog [options] start | stop | status
       conlog [options] [--] COMMAND [ARGS...]
       COMMAND | conlog [options]

Record terminal sessions and command output to markdown logs.

verbs:
  start                 record an interactive shell until it exits
  stop                  stop recording
  status                show whether a session is active

options:
  -t, --thread ID       thread id (e.g. server1 -> console-server.md, prefix "1>")
  -d, --dir PATH        log directory (default: ./logs)
  -c, --config PATH     config file (default: ./conlog.yaml if present)
  -v, --verbose         debug diagnostics on stderr
  -h, --help            show this help

Examples:
  conlog start -t server1        Record a shell into logs/console-server.md
  conlog -- make test            Run make test, log stdout/stderr and exit code
  ./build.sh 2>&1 | conlog -t 2  Record piped output into logs/console.md
"""


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting with status 2."""

    def error(self, message):
        raise UsageError(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = _Parser(prog="conlog", add_help=False)
    parser.add_argument("-t", "--thread", default=None)
    parser.add_argument("-d", "--dir", default=None)
    parser.add_argument("-c", "--config", default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-h", "--help", action="store_true")
    parser.add_argument("command", nargs=argparse.REMAINDER)
    return parser


def parse_args(argv: List[str]) -> argparse.Namespace:
    """
    Parse the command line into options, a verb and a command.

    Options may come before or after a verb. Everything after ``--`` (or
    from the first non-option word that is not a verb) is the command,
    passed through verbatim.
    """
    parser = _build_parser()

    head, tail = argv, []
    if "--" in argv:
        split = argv.index("--")
        head, tail = argv[:split], argv[split:]

    ns = parser.parse_args(head)
    ns.verb = None
    if tail and not ns.command:
        # '--' separates our options from the command
        ns.command = tail[1:]
        return ns
    # otherwise '--' belongs to the command itself
    ns.command += tail

    if ns.command and ns.command[0] in VERBS:
        ns.verb = ns.command[0]
        parser.parse_args(ns.command[1:], namespace=ns)
        if ns.command:
            raise UsageError(f"unexpected argument for {ns.verb}: {ns.command[0]}")
    elif ns.command and ns.command[0].startswith("-"):
        raise UsageError(f"unrecognized arguments: {ns.command[0]}")
    return ns


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="conlog: %(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def run(argv: List[str]) -> int:
    """Parse, configure and dispatch. Returns the exit code."""
    ns = parse_args(argv)
    if ns.help:
        print(USAGE)
        return 0

    _setup_logging(ns.verbose)

    try:
        config = ConlogConfig.load(ns.config)
    except (ValueError, OSError) as e:
        raise UsageError(str(e)) from e
    if ns.dir:
        config.log_dir = ns.dir

    driver = CaptureDriver(config, thread_id=ns.thread)

    if ns.verb == "start":
        return driver.start_session()
    if ns.verb == "stop":
        return driver.stop_session()
    if ns.verb == "status":
        return driver.status()

    if ns.command:
        return driver.run_command(ns.command)

    if sys.stdin.isatty():
        print(USAGE)
        return 0
    return driver.relay_stdin()


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    argv = list(argv) if argv is not None else sys.argv[1:]
    try:
        code = run(argv)
    except UsageError as e:
        print(f"conlog: error: {e}\n", file=sys.stderr)
        print(USAGE, file=sys.stderr)
        code = e.exit_code
    except ConlogError as e:
        print(f"conlog: {e}", file=sys.stderr)
        code = e.exit_code
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
