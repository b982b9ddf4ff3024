import re

import pytest


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in ("CONLOG_DIR", "CONLOG_SHELL", "CONLOG_BATCH_LINES", "CONLOG_IDLE_FLUSH", "CONLOG_SESSION"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


_RECORD_RE = re.compile(r"^```(?:error)?\n\[[\d\- :]{19}\] (\w+)\n(.*?)^```\n\n", re.M | re.S)


def parse_records(text):
    """Return [(kind, [lines])] for every fenced record in a log file."""
    return [(kind, body.splitlines()) for kind, body in _RECORD_RE.findall(text)]
