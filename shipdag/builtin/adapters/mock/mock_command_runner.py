"""Mock command runner for tests and dry runs."""

import asyncio
import shlex
from collections.abc import Mapping, Sequence
from typing import Any

from shipdag.core.exceptions import CollaboratorUnavailableError
from shipdag.core.ports.command_runner import CommandResult

# Canned output good enough for every built-in stage to pass
DRY_RUN_RESPONSES: dict[str, tuple[int, str]] = {
    "--cov": (0, "TOTAL     120     12    90%\n12 passed in 0.42s"),
    "pytest": (0, "12 passed in 0.42s"),
    "ruff": (0, "All checks passed!"),
}


class MockCommandRunner:
    """Command runner that never spawns a process.

    Responses are looked up by substring of the shell-joined command line;
    the first matching key wins. Unmatched commands get ``default``.

    Examples
    --------
        runner = MockCommandRunner(responses={"ruff": (1, "E501 line too long")})
        result = await runner.run(["ruff", "check", "."], timeout=5)
        assert result.exit_code == 1
    """

    delay_seconds: float
    responses: dict[str, tuple[int, str]]
    calls: list[list[str]]
    should_raise: bool

    def __init__(
        self,
        responses: Mapping[str, tuple[int, str]] | None = None,
        default: tuple[int, str] = (0, ""),
        **kwargs: Any,
    ) -> None:
        self.responses = dict(responses or {})
        self.default = default
        self.delay_seconds = kwargs.get("delay_seconds", 0.0)
        self.delays: dict[str, float] = dict(kwargs.get("delays", {}))
        self.unavailable: set[str] = set(kwargs.get("unavailable", ()))

        self.calls = []
        self.should_raise = False

    async def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        command = shlex.join(argv)
        self.calls.append(list(argv))

        delay = next((d for key, d in self.delays.items() if key in command), self.delay_seconds)
        if delay > 0:
            await asyncio.sleep(delay)

        if self.should_raise or any(key in command for key in self.unavailable):
            raise CollaboratorUnavailableError("command-runner", f"cannot start {argv[0]!r}")

        exit_code, stdout = next(
            (value for key, value in self.responses.items() if key in command), self.default
        )
        return CommandResult(
            argv=list(argv),
            exit_code=exit_code,
            stdout=stdout,
            duration_ms=delay * 1000,
        )

    def commands_matching(self, fragment: str) -> list[list[str]]:
        return [call for call in self.calls if fragment in shlex.join(call)]
