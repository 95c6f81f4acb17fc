"""Shared test fixtures for the Ollama proxy tests."""

from pathlib import Path
from typing import Dict, Optional

import pytest
import yaml

from ollama_proxy.config import ConfigSnapshot, load_config


def _make_config(tmp_path: Path, overrides: Optional[Dict] = None) -> str:
    """Write a minimal test config and return its path."""
    config = {
        "server": {
            "port": 11434,
            "hostname": "127.0.0.1",
            "maxPortAttempts": 5,
        },
        "models": [
            {
                "name": "gpt-x",
                "provider": "novita",
                "model": "gpt-4o-mini",
                "apiKey": "sk-novita",
                "systemMessage": "be nice",
            },
            {
                "name": "custom",
                "provider": "novita",
                "baseUrl": "https://llm.example.com/v1",
                "model": "custom-model",
                "apiKey": "sk-custom",
            },
            {
                "name": "broken",
                "provider": "nowhere",
                "model": "broken-model",
                "apiKey": "sk-broken",
            },
        ],
    }
    if overrides:
        config.update(overrides)

    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config, sort_keys=False))
    return str(path)


@pytest.fixture()
def test_config_path(tmp_path: Path) -> str:
    """Return the path to a temporary test config file."""
    return _make_config(tmp_path)


@pytest.fixture()
def test_snapshot(test_config_path: str) -> ConfigSnapshot:
    """Return a loaded test ConfigSnapshot."""
    return load_config(test_config_path)
