"""Tests for configuration loading."""

import json

import pytest

from conlog.config import ConlogConfig


def test_defaults():
    config = ConlogConfig()
    assert config.log_dir == "logs"
    assert config.batch_lines == 10
    assert config.idle_flush_seconds == 5.0


def test_yaml_file(tmp_path):
    path = tmp_path / "conlog.yaml"
    path.write_text(
        "log:\n"
        "  dir: /var/tmp/logs\n"
        "  title: Build Console\n"
        "capture:\n"
        "  batch_lines: 25\n"
        "  idle_flush_seconds: 0\n"
        "session:\n"
        "  shell: /bin/bash\n"
    )
    config = ConlogConfig.from_file(str(path))
    assert config.log_dir == "/var/tmp/logs"
    assert config.title == "Build Console"
    assert config.batch_lines == 25
    assert config.idle_flush_seconds == 0.0
    assert config.shell_path == "/bin/bash"


def test_json_file(tmp_path):
    path = tmp_path / "conlog.json"
    path.write_text(json.dumps({"capture": {"batch_lines": 3}}))
    assert ConlogConfig.from_file(str(path)).batch_lines == 3


def test_empty_sections_use_defaults(tmp_path):
    path = tmp_path / "conlog.yaml"
    path.write_text("log:\ncapture:\nsession:\n")
    config = ConlogConfig.from_file(str(path))
    assert config.log_dir == "logs"
    assert config.batch_lines == 10
    assert config.shell is None


def test_null_json_document(tmp_path):
    path = tmp_path / "conlog.json"
    path.write_text("null")
    assert ConlogConfig.from_file(str(path)).batch_lines == 10


def test_unsupported_suffix(tmp_path):
    path = tmp_path / "conlog.toml"
    path.write_text("")
    with pytest.raises(ValueError):
        ConlogConfig.from_file(str(path))


def test_load_discovers_file_in_cwd(tmp_path):
    (tmp_path / "conlog.yml").write_text("capture:\n  batch_lines: 4\n")
    assert ConlogConfig.load(cwd=str(tmp_path)).batch_lines == 4


def test_env_overrides_file(tmp_path, monkeypatch):
    (tmp_path / "conlog.yaml").write_text("log:\n  dir: from-file\n")
    monkeypatch.setenv("CONLOG_DIR", "from-env")
    monkeypatch.setenv("CONLOG_BATCH_LINES", "7")
    config = ConlogConfig.load(cwd=str(tmp_path))
    assert config.log_dir == "from-env"
    assert config.batch_lines == 7


def test_missing_explicit_file_is_an_error(tmp_path):
    with pytest.raises(ValueError):
        ConlogConfig.load(str(tmp_path / "nope.yaml"))


def test_shell_falls_back_to_environment(monkeypatch):
    monkeypatch.setenv("SHELL", "/bin/zsh")
    assert ConlogConfig().shell_path == "/bin/zsh"
