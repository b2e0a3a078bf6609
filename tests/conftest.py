"""Shared fixtures for hookguard tests."""

from __future__ import annotations

import pytest
import structlog

from hookguard.core.config import clear_config


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Undo structlog configuration and cached config between tests."""
    yield
    structlog.reset_defaults()
    clear_config()
