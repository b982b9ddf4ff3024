"""Tests for thread id resolution: pure logic, no filesystem needed."""

import pytest

from conlog.channels import DEFAULT_KEY, resolve


# ---------------------------------------------------------------------------
# Log file routing and prefixes
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("thread_id, suffix", [("server1", "1"), ("server", ""), ("api12", "12")])
def test_named_thread_routes_to_base_file(thread_id, suffix):
    ch = resolve(thread_id)
    assert ch.log_name == f"console-{thread_id.rstrip('0123456789')}.md"
    assert ch.suffix == suffix


def test_named_thread_with_suffix_uses_numeric_prefix():
    ch = resolve("server1")
    assert ch.log_name == "console-server.md"
    assert ch.prefix == "1>"
    assert ch.base_name == "server"


def test_named_thread_without_suffix_uses_full_id():
    ch = resolve("server")
    assert ch.log_name == "console-server.md"
    assert ch.prefix == "server>"


def test_numeric_thread_routes_to_default_file():
    ch = resolve("2")
    assert ch.log_name == "console.md"
    assert ch.prefix == "2>"


@pytest.mark.parametrize("thread_id", [None, ""])
def test_absent_thread_has_no_prefix(thread_id):
    ch = resolve(thread_id)
    assert ch.log_name == "console.md"
    assert ch.prefix is None
    assert ch.key == DEFAULT_KEY


# ---------------------------------------------------------------------------
# Keys and titles
# ---------------------------------------------------------------------------

def test_keys_are_distinct_per_thread():
    assert resolve("server1").key != resolve("server2").key
    assert resolve("server1").key == "server1"


def test_unsafe_characters_are_not_used_in_paths():
    ch = resolve("../etc1")
    assert "/" not in ch.log_name
    assert "/" not in ch.key


def test_keys_never_collide_after_escaping():
    ids = ["a/b", "a_b", "a b", "a%2Fb", "_default", "@default"]
    keys = [resolve(t).key for t in ids]
    assert len(set(keys)) == len(ids)
    assert DEFAULT_KEY not in keys
    assert resolve(None).key == DEFAULT_KEY


def test_title_includes_base_name():
    assert resolve("server1").title() == "Console Log: server"
    assert resolve(None).title("Build") == "Build"
