"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import AuthConfig
from tests.helpers import TOKEN_URL


@pytest.fixture
def auth_config(tmp_path: Path) -> AuthConfig:
    return AuthConfig(
        token_url=TOKEN_URL,
        auth_file=tmp_path / "home" / ".factory" / "auth.json",
        env_auth_file=tmp_path / "auth.json",
    )


@pytest.fixture
def clean_env(monkeypatch):
    """Remove credential variables inherited from the real environment"""
    for name in ("FACTORY_API_KEY", "DROID_REFRESH_KEY", "DROID_CONFIG_PATH",
                 "DROID_LOG_LEVEL", "DROID_DEV_MODE"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
