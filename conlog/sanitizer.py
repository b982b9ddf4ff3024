"""
Line Sanitizer - Strips terminal control sequences from captured output

Recognized: CSI sequences (colors, cursor movement), OSC sequences
(window titles, hyperlinks), charset selection and other two-byte escapes,
carriage returns, backspaces and stray C0 control characters. Anything
else passes through unchanged.
"""

import re
from typing import Iterable, Iterator, Union

_ANSI_RE = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"              # CSI: ESC [ params final
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)?"  # OSC: ESC ] ... BEL / ST
    r"|\x1b[()*+][A-Za-z0-9]"               # charset designation
    r"|\x1b[@-Z\\^_=>78]"                   # two-byte escapes
    r"|\x9b[0-?]*[ -/]*[@-~]"               # 8-bit CSI
)

# C0 controls other than tab and backspace, plus DEL
_CTRL_RE = re.compile(r"[\x00-\x07\x0b-\x1f\x7f]")


def _apply_backspaces(text: str) -> str:
    out = []
    for ch in text:
        if ch == "\b":
            if out:
                out.pop()
        else:
            out.append(ch)
    return "".join(out)


def sanitize_line(line: Union[str, bytes]) -> str:
    """
    Return the visible text of one captured line.

    The trailing newline (and any carriage return) is removed; an empty
    string means there is nothing worth recording.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")

    text = _ANSI_RE.sub("", line)
    text = text.replace("\r", "").replace("\n", "")
    if "\b" in text:
        text = _apply_backspaces(text)
    text = _CTRL_RE.sub("", text)

    if not text.strip():
        return ""
    return text


def sanitize_lines(lines: Iterable[Union[str, bytes]]) -> Iterator[str]:
    """Sanitize a stream of lines, dropping the ones left blank."""
    for line in lines:
        text = sanitize_line(line)
        if text:
            yield text
