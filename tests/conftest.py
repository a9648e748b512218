"""Root pytest configuration and shared fixtures."""

from __future__ import annotations

import os

import pytest

from lattice_watch.config import reset_default_values

_ENV_PREFIX = "LATTICE_WATCH_"


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Run every test without ambient LATTICE_WATCH_* settings or defaults files."""
    for name in list(os.environ):
        if name.startswith(_ENV_PREFIX):
            monkeypatch.delenv(name)
    monkeypatch.delenv("LOG_APPEND", raising=False)

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)

    reset_default_values()
    yield tmp_path
    reset_default_values()
