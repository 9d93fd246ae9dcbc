"""Ports: the narrow interfaces the core uses to reach external collaborators."""

from shipdag.core.ports.change_request import ChangeRequestHost
from shipdag.core.ports.command_runner import CommandResult, CommandRunner
from shipdag.core.ports.registry import ArtifactRegistry, PublishReceipt
from shipdag.core.ports.sandbox import ExecutionSandbox, SandboxResult
from shipdag.core.ports.scanner import Finding, ScanReport, Scanner

__all__ = [
    "ArtifactRegistry",
    "ChangeRequestHost",
    "CommandResult",
    "CommandRunner",
    "ExecutionSandbox",
    "Finding",
    "PublishReceipt",
    "SandboxResult",
    "ScanReport",
    "Scanner",
]
