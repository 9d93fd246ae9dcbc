"""Drivers: concrete implementations of the ports against real tools and services."""

from shipdag.drivers.change_request import GitHubChangeRequestHost
from shipdag.drivers.command import SubprocessCommandRunner
from shipdag.drivers.registry import DockerRegistry
from shipdag.drivers.sandbox import DockerSandbox
from shipdag.drivers.scanner import TrivyScanner

__all__ = [
    "DockerRegistry",
    "DockerSandbox",
    "GitHubChangeRequestHost",
    "SubprocessCommandRunner",
    "TrivyScanner",
]
