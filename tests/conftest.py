"""Shared test fixtures."""

from __future__ import annotations

import os

import pytest

from image_rampup import config as rampup_config


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Run every test against default config with no IMAGE_RAMPUP_* overrides."""
    for name in list(os.environ):
        if name.startswith("IMAGE_RAMPUP_"):
            monkeypatch.delenv(name, raising=False)
    rampup_config.reset_config()
    yield
    rampup_config.reset_config()
