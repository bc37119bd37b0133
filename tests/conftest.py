"""Shared test fixtures for the hospital voice agent test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("METRICS_ENABLED", "false")


@pytest.fixture
def mock_llm():
    """Factory fixture: a mock chat model that returns the given messages in order."""

    def _make(*responses):
        llm = MagicMock()
        llm.invoke.side_effect = list(responses)
        return llm

    return _make


@pytest.fixture
def persistence():
    """A mock persistence client that hands out increasing record ids."""
    client = MagicMock()
    counter = iter(range(1_000, 10_000))
    client.log_appointment.side_effect = lambda payload: next(counter)
    return client
