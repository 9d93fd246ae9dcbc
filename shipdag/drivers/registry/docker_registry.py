"""Container registry driver that shells out to the docker CLI."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from shipdag.core.domain.models import TagKind
from shipdag.core.exceptions import ArtifactNotFoundError, CollaboratorError
from shipdag.core.logging import get_logger
from shipdag.core.ports.registry import PublishReceipt

if TYPE_CHECKING:
    from shipdag.core.domain.models import ArtifactTag
    from shipdag.core.ports.command_runner import CommandResult, CommandRunner

logger = get_logger(__name__)

_NOT_FOUND_MARKERS = ("not found", "manifest unknown", "does not exist", "no such image")


class DockerRegistry:
    """ArtifactRegistry over ``docker build``/``push``/``pull``.

    One build tags the image with every reference, so all references share
    the same content; each reference is then pushed, immutable tags first so
    a failed push never leaves only the mutable tag moved. The digest
    reported is the local image id of the build.

    Parameters
    ----------
    runner : CommandRunner
        Used for every docker invocation
    docker : str
        Docker executable (default: "docker")
    timeout : float
        Per-invocation timeout in seconds
    """

    def __init__(self, runner: CommandRunner, docker: str = "docker", timeout: float = 900) -> None:
        self.runner = runner
        self.docker = docker
        self.timeout = timeout

    async def publish(
        self,
        tags: Sequence[ArtifactTag],
        *,
        context_dir: str,
        dockerfile: str,
    ) -> PublishReceipt:
        references = [t.reference for t in tags]
        build = [self.docker, "build", "-f", dockerfile]
        for reference in references:
            build += ["-t", reference]
        build.append(context_dir)
        self._check(await self.runner.run(build, timeout=self.timeout), "build")

        inspect = await self.runner.run(
            [self.docker, "image", "inspect", "--format", "{{.Id}}", references[0]],
            timeout=self.timeout,
        )
        digest = self._check(inspect, "inspect").stdout.strip()

        pushed: list[str] = []
        push_order = sorted(tags, key=lambda t: t.kind != TagKind.IMMUTABLE)
        for reference in (t.reference for t in push_order):
            self._check(
                await self.runner.run([self.docker, "push", reference], timeout=self.timeout),
                f"push {reference}",
            )
            pushed.append(reference)
            logger.info(f"Pushed {reference}")
        return PublishReceipt(digest=digest, references=pushed)

    async def pull(self, tag: ArtifactTag) -> str:
        result = await self.runner.run([self.docker, "pull", tag.reference], timeout=self.timeout)
        if result.ok:
            return tag.reference
        message = (result.stderr or result.stdout).strip()
        if any(marker in message.lower() for marker in _NOT_FOUND_MARKERS):
            raise ArtifactNotFoundError(tag.reference)
        raise CollaboratorError("registry", f"pull {tag.reference} failed: {message}")

    @staticmethod
    def _check(result: CommandResult, action: str) -> CommandResult:
        if not result.ok:
            detail = (result.stderr or result.stdout).strip().splitlines()
            reason = detail[-1] if detail else f"exit status {result.exit_code}"
            raise CollaboratorError("registry", f"docker {action} failed: {reason}")
        return result
