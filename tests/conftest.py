"""Shared test fixtures for Arbor.

Provides settings fixtures used across the unit test suite.
"""

import pytest

from arbor.settings import Settings
from tests.helpers.streams import make_test_settings

# =============================================================================
# SETTINGS
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with safe defaults."""
    return make_test_settings()
