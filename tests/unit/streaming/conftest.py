"""Shared fixtures for streaming module tests."""

from unittest.mock import MagicMock

import pytest


@pytest.fixture()
def outbox():
    """A HistoryOutbox stand-in that records submissions."""
    mock = MagicMock()
    mock.submit = MagicMock()
    return mock


@pytest.fixture()
def updates():
    """List collecting MessageUpdates; pass ``updates.append`` as listener."""
    return []
