"""Mock execution sandbox that behaves like the sample application."""

from collections.abc import Sequence

from shipdag.core.exceptions import CollaboratorUnavailableError
from shipdag.core.ports.sandbox import SandboxResult


class MockSandbox:
    """Runs nothing; prints the sum of the integer arguments like ``sample_app``.

    Set ``stdout``/``exit_code`` to force an answer, or ``should_raise`` to
    simulate a container runtime that cannot start.
    """

    def __init__(self, stdout: str | None = None, exit_code: int = 0) -> None:
        self.stdout = stdout
        self.exit_code = exit_code
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.should_raise = False

    async def run(self, reference: str, args: Sequence[str], *, timeout: float) -> SandboxResult:
        self.calls.append((reference, tuple(args)))
        if self.should_raise:
            raise CollaboratorUnavailableError("sandbox", "container runtime not available")
        if self.stdout is not None:
            return SandboxResult(reference=reference, stdout=self.stdout, exit_code=self.exit_code)
        try:
            total = sum(int(a) for a in args)
        except ValueError:
            return SandboxResult(
                reference=reference, stderr="operands must be integers", exit_code=2
            )
        return SandboxResult(reference=reference, stdout=f"{total}\n", exit_code=self.exit_code)
