"""Configuration loading and validation.

A missing or empty file means defaults everywhere. ``storage.path`` may use
``~`` and may be relative, in which case it is resolved against the directory
holding the config file so the session database travels with it.
"""

from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from nexora.config.schema import NexoraConfig

DEFAULT_CONFIG_PATH = Path.home() / ".nexora" / "nexora.yaml"


class ConfigError(Exception):
    """Configuration loading or validation error."""


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config from {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config root in {path} must be a mapping, got {type(data).__name__}")
    return data


def _resolve_storage_path(config: NexoraConfig, base_dir: Path) -> None:
    db_path = config.storage.path.expanduser()
    if not db_path.is_absolute():
        db_path = base_dir / db_path
    config.storage.path = db_path


def load_config(path: Optional[Path] = None) -> NexoraConfig:
    """Load and validate Nexora configuration from a YAML file.

    Args:
        path: Config file. Defaults to ``~/.nexora/nexora.yaml``.

    Returns:
        Validated configuration with an absolute ``storage.path``

    Raises:
        ConfigError: If the file exists but cannot be read or is invalid
    """
    path = (path or DEFAULT_CONFIG_PATH).expanduser()
    if not path.exists():
        return NexoraConfig()

    data = _read_yaml(path)
    try:
        config = NexoraConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e

    if "storage" in data:
        _resolve_storage_path(config, path.parent)
    return config


def save_config(config: NexoraConfig, path: Optional[Union[str, Path]] = None) -> None:
    """Write configuration as YAML, creating parent directories."""
    path = Path(path).expanduser() if path is not None else DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    # mode="json" turns Path fields into plain strings
    with open(path, "w") as f:
        yaml.safe_dump(config.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)
