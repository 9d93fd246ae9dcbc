"""Execution sandbox driver: ``docker run --rm``."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from shipdag.core.exceptions import CollaboratorUnavailableError
from shipdag.core.ports.sandbox import SandboxResult

if TYPE_CHECKING:
    from shipdag.core.ports.command_runner import CommandRunner

# docker run exits 125-127 when the container itself could not be started
_DOCKER_RUN_ERRORS = frozenset({125, 126, 127})


class DockerSandbox:
    """Run an image in a throwaway container with networking disabled."""

    def __init__(
        self, runner: CommandRunner, docker: str = "docker", network: str | None = "none"
    ) -> None:
        self.runner = runner
        self.docker = docker
        self.network = network

    async def run(self, reference: str, args: Sequence[str], *, timeout: float) -> SandboxResult:
        argv = [self.docker, "run", "--rm"]
        if self.network:
            argv += ["--network", self.network]
        argv += [reference, *args]

        result = await self.runner.run(argv, timeout=timeout)
        if result.exit_code in _DOCKER_RUN_ERRORS:
            raise CollaboratorUnavailableError(
                "sandbox", f"container did not start: {result.stderr.strip()}"
            )
        return SandboxResult(
            reference=reference,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.exit_code,
        )
