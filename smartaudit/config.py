"""
Configuration system for smart-audit.

Configuration lives in ``.smartaudit.yml`` at (or above) the project root and
is deep-merged over ``Config.DEFAULT_CONFIG``.
"""

import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

CONFIG_FILENAMES = [".smartaudit.yml", ".smartaudit.yaml", "smartaudit.yml", "smartaudit.yaml"]

STATE_DIR = ".smartaudit"

SAFETY_LEVELS = ("safe", "risky", "all")

DEFAULT_EXCLUDE_DIRS = [
    ".git",
    ".venv",
    "venv",
    "env",
    "node_modules",
    "__pycache__",
    ".tox",
    ".nox",
    "build",
    "dist",
    ".mypy_cache",
    ".ruff_cache",
    ".pytest_cache",
    STATE_DIR,
]

DEFAULT_CRITICAL_PATTERNS = [
    # Dependency manifests and lock files
    "pyproject.toml",
    "setup.py",
    "setup.cfg",
    "requirements*.txt",
    "constraints*.txt",
    "Pipfile",
    "Pipfile.lock",
    "poetry.lock",
    "uv.lock",
    # Application sources, migrations included
    "**/*.py",
    # Config trees
    "config/**/*.yml",
    "config/**/*.yaml",
    "config/**/*.toml",
    "config/**/*.json",
    "config/**/*.ini",
    "alembic.ini",
    # Analyzer configuration
    "ruff.toml",
    ".ruff.toml",
    "mypy.ini",
    ".bandit",
]


class Config:
    """Configuration manager for smart-audit."""

    DEFAULT_CONFIG: Dict[str, Any] = {
        "state_dir": STATE_DIR,
        "audit": {
            # Phases to run (empty = every phase with an available tool)
            "phases": [],
            "skip_phases": [],
            "max_workers": 4,
            # Seconds per tool; None keeps tools unbounded
            "tool_timeout": None,
        },
        "fix": {
            "safety_level": "safe",
            "auto_apply_safe": False,
            "use_git_branches": True,
            "max_fixes_per_run": 50,
            "keep_snapshots": 10,
            # Shell-style command proving the project still boots
            "smoke_command": None,
            "test_marker": "critical",
            "validation_timeout": None,
        },
        "snapshot": {
            "critical_patterns": list(DEFAULT_CRITICAL_PATTERNS),
            "exclude_dirs": list(DEFAULT_EXCLUDE_DIRS),
        },
        "scoring": {
            "global_penalties": {},
            "category_penalties": {},
        },
        "tools": {
            "bandit": {"enabled": True},
            "pip_audit": {"enabled": True},
            "ruff": {"enabled": True},
            "mypy": {"enabled": True},
            "vulture": {"enabled": True, "min_confidence": 60},
        },
        "logging": {
            "level": "WARNING",
            "file": False,
            "json": True,
        },
    }

    def __init__(self, config_dict: Optional[Dict] = None, source: Optional[Path] = None):
        """Initialize with optional config dictionary."""
        self.config = self._merge_configs(copy.deepcopy(self.DEFAULT_CONFIG), config_dict or {})
        self.source = source
        self.validate()

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Config":
        """Load configuration from a YAML or JSON file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path, "r", encoding="utf-8") as f:
            if path.suffix in [".yaml", ".yml"]:
                data = yaml.safe_load(f) or {}
            elif path.suffix == ".json":
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {path.suffix}")

        if not isinstance(data, dict):
            raise ValueError(f"Configuration in {path} must be a mapping")
        return cls(data, source=path)

    @classmethod
    def find_and_load(cls, start_path: Union[str, Path]) -> "Config":
        """Find and load configuration from standard locations."""
        current = Path(start_path).resolve()

        while current != current.parent:
            for name in CONFIG_FILENAMES:
                config_path = current / name
                if config_path.exists():
                    return cls.from_file(config_path)
            current = current.parent

        return cls()

    def validate(self) -> None:
        level = self.get("fix.safety_level")
        if level not in SAFETY_LEVELS:
            raise ValueError(f"fix.safety_level must be one of {SAFETY_LEVELS}, got {level!r}")
        workers = self.get("audit.max_workers")
        if not isinstance(workers, int) or workers <= 0:
            raise ValueError(f"audit.max_workers must be a positive integer, got {workers!r}")
        keep = self.get("fix.keep_snapshots")
        if not isinstance(keep, int) or keep < 0:
            raise ValueError(f"fix.keep_snapshots must be >= 0, got {keep!r}")

    def get(self, key: str, default=None):
        """Get configuration value by dot-separated key."""
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def set(self, key: str, value):
        """Set configuration value by dot-separated key."""
        keys = key.split(".")
        config = self.config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def tool_options(self, tool_id: str) -> Dict[str, Any]:
        """Options handed to an adapter: its tool section plus shared settings."""
        options = dict(self.get(f"tools.{tool_id}", {}) or {})
        options.setdefault("exclude_dirs", self.exclude_dirs)
        if self.get("audit.tool_timeout") is not None:
            options.setdefault("timeout", self.get("audit.tool_timeout"))
        return options

    def tool_enabled(self, tool_id: str) -> bool:
        return bool(self.get(f"tools.{tool_id}.enabled", True))

    @property
    def exclude_dirs(self) -> List[str]:
        return list(self.get("snapshot.exclude_dirs", DEFAULT_EXCLUDE_DIRS))

    def state_path(self, project_path: Union[str, Path]) -> Path:
        return Path(project_path) / self.get("state_dir", STATE_DIR)

    def to_dict(self) -> Dict:
        return copy.deepcopy(self.config)

    def _merge_configs(self, base: Dict, override: Dict) -> Dict:
        """Recursively merge configuration dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result
