"""Port interface for running a pulled artifact in isolation."""

from abc import abstractmethod
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict


class SandboxResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    reference: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int


@runtime_checkable
class ExecutionSandbox(Protocol):
    """Run an image with arguments appended to its entrypoint.

    Raises ``CollaboratorUnavailableError`` when the sandbox itself cannot
    start the container, ``CollaboratorTimeoutError`` on overrun.
    """

    @abstractmethod
    async def run(
        self, reference: str, args: Sequence[str], *, timeout: float
    ) -> SandboxResult: ...
