"""Shared pytest fixtures for receiptwright tests."""

from __future__ import annotations

import pytest

from receiptwright.runtime.paths import reset_paths
from receiptwright.runtime.settings import Settings, get_settings


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings rooted in a temp directory, with no delay between retries."""
    return Settings(object_store_root=tmp_path / "objects", retry_base_delay=0.0)


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    """Keep cached paths and settings from leaking between tests."""
    monkeypatch.setenv("RECEIPTWRIGHT_HOME", str(tmp_path))
    reset_paths()
    get_settings.cache_clear()
    yield
    reset_paths()
    get_settings.cache_clear()
