"""In-memory implementations of every port, for tests and ``--dry-run``."""

from shipdag.builtin.adapters.mock.mock_change_request import InMemoryChangeRequestHost
from shipdag.builtin.adapters.mock.mock_command_runner import (
    DRY_RUN_RESPONSES,
    MockCommandRunner,
)
from shipdag.builtin.adapters.mock.mock_registry import InMemoryRegistry
from shipdag.builtin.adapters.mock.mock_sandbox import MockSandbox
from shipdag.builtin.adapters.mock.mock_scanner import MockScanner

__all__ = [
    "DRY_RUN_RESPONSES",
    "InMemoryChangeRequestHost",
    "InMemoryRegistry",
    "MockCommandRunner",
    "MockSandbox",
    "MockScanner",
]
