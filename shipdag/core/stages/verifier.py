"""Deployment verification: pull the published image, run it, check its answer.

The sample application adds its two command-line operands, so running it
with ``("2", "3")`` must print ``5`` and exit 0.

The mutable tag is tried first because that is what a deployment of the ref
would use; the immutable tag is the fallback. A newer push to the same ref
may move the mutable tag between publish and pull; that window is accepted
and the check records which tag was actually pulled.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING

from shipdag.core.config.models import PipelineSettings, RepositoryIdentity
from shipdag.core.domain.models import ArtifactTag, DeploymentCheck, FailureKind
from shipdag.core.domain.tags import artifact_tags
from shipdag.core.exceptions import CollaboratorError, CollaboratorTimeoutError
from shipdag.core.logging import get_logger

if TYPE_CHECKING:
    from shipdag.core.ports.registry import ArtifactRegistry
    from shipdag.core.ports.sandbox import ExecutionSandbox

logger = get_logger(__name__)

DEFAULT_INPUTS: tuple[str, ...] = ("2", "3")
DEFAULT_EXPECTED_OUTPUT = "5"


class DeploymentVerifier:
    """Pull, run and assert a published artifact. Read and execute only."""

    def __init__(
        self,
        registry: ArtifactRegistry,
        sandbox: ExecutionSandbox,
        repository: RepositoryIdentity | None = None,
        settings: PipelineSettings | None = None,
        inputs: Sequence[str] = DEFAULT_INPUTS,
        expected_output: str = DEFAULT_EXPECTED_OUTPUT,
    ) -> None:
        self.registry = registry
        self.sandbox = sandbox
        self.repository = repository or RepositoryIdentity()
        self.settings = settings or PipelineSettings()
        self.inputs = tuple(inputs)
        self.expected_output = expected_output

    async def verify(self, ref_name: str, commit_id: str) -> DeploymentCheck:
        """Verify the artifact published for ``(ref_name, commit_id)``.

        Never raises for collaborator problems; they are reported as an
        infrastructure failure on the returned check.
        """
        mutable, immutable = artifact_tags(
            ref_name,
            commit_id,
            self.repository,
            max_length=self.settings.max_tag_length,
            placeholder=self.settings.placeholder_tag,
        )
        attempted: list[str] = []
        pulled: ArtifactTag | None = None
        local_reference: str | None = None
        errors: list[str] = []

        for tag in (mutable, immutable):
            if tag.reference in attempted:
                continue
            attempted.append(tag.reference)
            try:
                local_reference = await self._pull(tag)
            except CollaboratorError as e:
                logger.warning(f"Pull of {tag.reference} failed: {e}")
                errors.append(str(e))
                continue
            pulled = tag
            break

        base = {
            "attempted_tags": attempted,
            "inputs": self.inputs,
            "expected_output": self.expected_output,
        }
        if pulled is None or local_reference is None:
            return DeploymentCheck(
                **base,
                passed=False,
                failure_kind=FailureKind.INFRASTRUCTURE,
                message="Could not pull any tag: " + "; ".join(errors),
            )

        logger.info(f"Running {pulled.reference} with inputs {list(self.inputs)}")
        try:
            result = await self.sandbox.run(
                local_reference, self.inputs, timeout=self.settings.command_timeout
            )
        except CollaboratorError as e:
            return DeploymentCheck(
                **base,
                tag=pulled,
                passed=False,
                failure_kind=FailureKind.INFRASTRUCTURE,
                message=f"Sandbox could not run {pulled.reference}: {e}",
            )

        actual = result.stdout.strip()
        passed = result.exit_code == 0 and actual == self.expected_output
        if passed:
            message = f"{pulled.reference} printed {actual!r} as expected"
        elif result.exit_code != 0:
            message = f"{pulled.reference} exited with status {result.exit_code}"
        else:
            message = f"{pulled.reference} printed {actual!r}, expected {self.expected_output!r}"

        return DeploymentCheck(
            **base,
            tag=pulled,
            stdout=result.stdout,
            exit_code=result.exit_code,
            passed=passed,
            failure_kind=None if passed else FailureKind.ASSERTION,
            message=message,
        )

    async def _pull(self, tag: ArtifactTag) -> str:
        try:
            return await asyncio.wait_for(self.registry.pull(tag), self.settings.pull_timeout)
        except TimeoutError as e:
            raise CollaboratorTimeoutError("registry", self.settings.pull_timeout) from e
