"""Port interface for running local tool commands (linters, test runners)."""

from abc import abstractmethod
from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict


class CommandResult(BaseModel):
    """Outcome of a finished command.

    Attributes
    ----------
    argv : list[str]
        Command line that was run
    exit_code : int
        Process exit status
    stdout : str
        Captured standard output
    stderr : str
        Captured standard error
    duration_ms : float
        Wall time in milliseconds
    """

    model_config = ConfigDict(frozen=True)

    argv: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@runtime_checkable
class CommandRunner(Protocol):
    """Runs a command to completion.

    Implementations raise ``CollaboratorUnavailableError`` when the program
    cannot be started and ``CollaboratorTimeoutError`` when it overruns
    ``timeout``. A nonzero exit status is a normal result, not an error.
    """

    @abstractmethod
    async def run(
        self,
        argv: Sequence[str],
        *,
        timeout: float,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult: ...
