"""Command runner driver backed by ``asyncio`` subprocesses."""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Mapping, Sequence

from shipdag.core.exceptions import CollaboratorTimeoutError, CollaboratorUnavailableError
from shipdag.core.logging import get_logger
from shipdag.core.ports.command_runner import CommandResult

logger = get_logger(__name__)


class SubprocessCommandRunner:
    """CommandRunner that executes programs directly (no shell).

    The child inherits the current environment; ``env`` entries are layered
    on top. A command that overruns its timeout is killed and reported as
    ``CollaboratorTimeoutError``. A run cancelled from outside (an enclosing
    stage timeout) also kills the child before the cancellation propagates.

    Parameters
    ----------
    name : str
        Collaborator name used in error messages (default: "command-runner")
    encoding : str
        Encoding used to decode captured output
    """

    def __init__(self, name: str = "command-runner", encoding: str = "utf-8") -> None:
        self.name = name
        self.encoding = encoding

    async def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        if not argv:
            raise CollaboratorUnavailableError(self.name, "empty command")

        child_env = {**os.environ, **env} if env else None
        start = time.perf_counter()
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                env=child_env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise CollaboratorUnavailableError(self.name, f"cannot start {argv[0]!r}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError as e:
            await self._kill(process)
            logger.warning(f"Command {argv[0]!r} killed after {timeout:g}s")
            raise CollaboratorTimeoutError(self.name, timeout) from e
        except BaseException:
            # Cancelled from outside (stage or pull timeout): the child must not outlive us
            await self._kill(process)
            logger.warning(f"Command {argv[0]!r} killed on cancellation")
            raise

        return CommandResult(
            argv=list(argv),
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode(self.encoding, errors="replace"),
            stderr=stderr.decode(self.encoding, errors="replace"),
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass  # exited between the check and the signal
        await process.wait()
