"""Shared fixtures for CLI tests."""

from pathlib import Path

import pytest

from nexora.config.loader import save_config
from nexora.config.schema import NexoraConfig


@pytest.fixture
def tmp_config_path(tmp_path: Path) -> Path:
    """Write a config whose storage lives in the temporary directory."""
    config = NexoraConfig()
    config.storage.path = tmp_path / "nexora.db"
    path = tmp_path / "nexora.yaml"
    save_config(config, path)
    return path
