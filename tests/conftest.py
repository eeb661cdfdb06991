"""Shared fixtures."""

import pytest


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from the real ~/.habit-xp/config.json."""
    path = tmp_path / "habit-xp-config.json"
    monkeypatch.setattr("habit_xp.config.DEFAULT_CONFIG_PATH", path)
    return path
