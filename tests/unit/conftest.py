"""Unit-test conftest: settings isolation safety net.

Provides an ``autouse`` fixture so no unit test reads configuration from
the developer's environment or a stray ``.env`` file:

1. Remove every environment variable the Settings model reads.
2. Run the test from an empty temporary directory.
3. Clear the ``get_settings()`` cache before and after the test.
"""

from __future__ import annotations

import pytest

from arbor.settings import get_settings

_SETTINGS_ENV_VARS = (
    "ENVIRONMENT",
    "DEBUG",
    "LOG_LEVEL",
    "AGENTS_BASE_URL",
    "AGENTS_SERVICE_BASE_URL",
    "API_BASE_URL",
    "ARBOR_API_URL",
    "API_TOKEN",
    "ARBOR_TOKEN",
    "REQUEST_TIMEOUT",
    "DONE_ECHO_THRESHOLD",
    "DEFAULT_MODE",
)


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    for name in _SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
