"""
Configuration - conlog configuration management
"""

import os
import json
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

CONFIG_FILES = ("conlog.yaml", "conlog.yml", "conlog.json")


@dataclass
class ConlogConfig:
    """
    Configuration for conlog.

    Can be loaded from:
    - YAML file (conlog.yaml)
    - JSON file (conlog.json)
    - Environment variables (CONLOG_*)
    - Programmatic defaults
    """

    # Log settings
    log_dir: str = "logs"
    title: str = "Console Log"

    # Capture settings
    batch_lines: int = 10
    idle_flush_seconds: float = 5.0
    poll_interval: float = 0.2

    # Session settings
    shell: Optional[str] = None
    stop_timeout: float = 5.0

    @classmethod
    def from_file(cls, path: str) -> "ConlogConfig":
        """Load configuration from YAML or JSON file."""
        path = Path(path)

        if not path.exists():
            return cls()

        content = path.read_text()

        if path.suffix in ('.yaml', '.yml'):
            try:
                data = yaml.safe_load(content) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid config {path}: {e}") from e
        elif path.suffix == '.json':
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "ConlogConfig":
        """Create config from dictionary."""
        # Flatten nested structure; an empty section (`log:`) loads as None
        data = data or {}
        flat = {}

        log = data.get('log') or {}
        if 'dir' in log:
            flat['log_dir'] = str(log['dir'])
        if 'title' in log:
            flat['title'] = log['title']

        capture = data.get('capture') or {}
        flat['batch_lines'] = int(capture.get('batch_lines', 10))
        flat['idle_flush_seconds'] = float(capture.get('idle_flush_seconds', 5.0))
        flat['poll_interval'] = float(capture.get('poll_interval', 0.2))

        session = data.get('session') or {}
        flat['shell'] = session.get('shell')
        flat['stop_timeout'] = float(session.get('stop_timeout', 5.0))

        return cls(**flat)

    @classmethod
    def load(cls, config_path: Optional[str] = None, cwd: Optional[str] = None) -> "ConlogConfig":
        """
        Resolve configuration: explicit file, else the first conlog.*
        file in ``cwd``, else defaults; environment variables win over
        file values.
        """
        if config_path:
            if not Path(config_path).exists():
                raise ValueError(f"Config file not found: {config_path}")
            config = cls.from_file(config_path)
        else:
            config = None
            base = Path(cwd or os.getcwd())
            for name in CONFIG_FILES:
                if (base / name).exists():
                    config = cls.from_file(str(base / name))
                    break
            if config is None:
                config = cls()
        return config.with_env()

    def with_env(self) -> "ConlogConfig":
        """Apply CONLOG_* environment overrides."""
        if os.getenv('CONLOG_DIR'):
            self.log_dir = os.environ['CONLOG_DIR']
        if os.getenv('CONLOG_SHELL'):
            self.shell = os.environ['CONLOG_SHELL']
        if os.getenv('CONLOG_BATCH_LINES'):
            self.batch_lines = int(os.environ['CONLOG_BATCH_LINES'])
        if os.getenv('CONLOG_IDLE_FLUSH'):
            self.idle_flush_seconds = float(os.environ['CONLOG_IDLE_FLUSH'])
        return self

    @property
    def log_path(self) -> Path:
        """Absolute log directory."""
        return Path(self.log_dir).expanduser().resolve()

    @property
    def shell_path(self) -> str:
        return self.shell or os.environ.get('SHELL') or '/bin/sh'
