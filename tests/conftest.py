"""Shared pytest fixtures.

- Configuration caches are cleared around every test so a file written by
  one test never leaks into another.
- The ``SHIPDAG_*`` logging overrides of the developer's shell are removed.
"""

import pytest

from shipdag.core.config import clear_config_cache


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch: pytest.MonkeyPatch):
    for name in ("SHIPDAG_CONFIG_PATH", "SHIPDAG_LOG_LEVEL", "SHIPDAG_LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()
