"""
Configuration file loading.

Loads config.yaml (plus an optional config.{env}.yaml overlay) and exposes it
through a small dict-like container.
"""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from feedsync.config.resolver import resolve_config
from feedsync.exceptions import ConfigurationError


class Config:
    """feedsync configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        value: Any = self.data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def section(self, name: str) -> dict[str, Any]:
        """Return a top-level section as a plain dict (empty if absent)."""
        value = self.data.get(name) or {}
        if not isinstance(value, dict):
            raise ConfigurationError(f"Configuration '{name}' must be a mapping, got {type(value).__name__}")
        return value

    def __getitem__(self, key: str) -> Any:
        """Dict-like access: config['key'] or config['nested.key']."""
        if "." in key:
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        value: Any = self.data
        for k in key.split("."):
            if not isinstance(value, dict) or k not in value:
                return False
            value = value[k]
        return True

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def keys(self):
        return self.data.keys()

    def items(self):
        return self.data.items()


def load_config(project_path: Path | None = None, env: str | None = None) -> Config:
    """
    Load feedsync configuration.

    Args:
        project_path: Directory containing config.yaml (default: current directory)
        env: Environment name (dev, staging, prod); selects config.{env}.yaml

    Returns:
        Config instance with merged and resolved configuration

    Raises:
        ConfigurationError: If the file is missing or is not valid YAML
    """
    if project_path is None:
        project_path = Path.cwd()

    base_config_path = Path(project_path) / "config.yaml"
    if not base_config_path.is_file():
        raise ConfigurationError(
            f"Configuration file not found: {base_config_path}\n"
            f"  Suggestion: Create a config.yaml file in your project root"
        )

    config_data = _read_yaml(base_config_path)

    if env:
        env_config_path = Path(project_path) / f"config.{env}.yaml"
        if env_config_path.exists():
            _merge_dict(config_data, _read_yaml(env_config_path))

    return Config(resolve_config(config_data, env or "dev"))


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            if mark is not None:
                raise ConfigurationError(
                    f"Error parsing {path.name} at line {mark.line + 1}, column {mark.column + 1}:\n"
                    f"  {e}\n"
                    f"  Suggestion: Check YAML syntax, ensure proper indentation and quotes"
                ) from e
            raise ConfigurationError(f"Error parsing {path.name}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__}: {path}")
    return data


def _merge_dict(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value
