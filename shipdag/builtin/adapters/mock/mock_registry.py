"""In-memory container registry for tests and dry runs."""

import asyncio
import hashlib
from collections.abc import Sequence
from typing import Any

from shipdag.core.domain.models import ArtifactTag, TagKind
from shipdag.core.exceptions import ArtifactNotFoundError, CollaboratorUnavailableError
from shipdag.core.ports.registry import PublishReceipt


class InMemoryRegistry:
    """Registry that keeps ``reference -> digest`` in a dict.

    The digest is derived from the build inputs and the immutable tag, so
    publishing the same commit twice yields the same digest.

    Testing knobs: ``should_raise`` (publish fails to reach the registry),
    ``confirm_only`` (receipt lists just these references), ``unreachable``
    (references whose pull fails as if the network were down).
    """

    def __init__(self, **kwargs: Any) -> None:
        self.delay_seconds: float = kwargs.get("delay_seconds", 0.0)
        self.images: dict[str, str] = dict(kwargs.get("images", {}))
        self.unreachable: set[str] = set(kwargs.get("unreachable", ()))
        self.confirm_only: set[str] | None = None

        self.publish_calls: list[dict[str, Any]] = []
        self.pull_calls: list[str] = []
        self.should_raise = False

    async def publish(
        self,
        tags: Sequence[ArtifactTag],
        *,
        context_dir: str,
        dockerfile: str,
    ) -> PublishReceipt:
        references = [t.reference for t in tags]
        self.publish_calls.append(
            {"references": references, "context_dir": context_dir, "dockerfile": dockerfile}
        )
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        if self.should_raise:
            raise CollaboratorUnavailableError("registry", "authentication required")

        commit = ",".join(t.tag for t in tags if t.kind == TagKind.IMMUTABLE)
        seed = f"{context_dir}|{dockerfile}|{commit}".encode()
        digest = "sha256:" + hashlib.sha256(seed).hexdigest()
        for reference in references:
            self.images[reference] = digest

        confirmed = [r for r in references if self.confirm_only is None or r in self.confirm_only]
        return PublishReceipt(digest=digest, references=confirmed)

    async def pull(self, tag: ArtifactTag) -> str:
        self.pull_calls.append(tag.reference)
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        if tag.reference in self.unreachable:
            raise CollaboratorUnavailableError(
                "registry", f"connection refused for {tag.reference}"
            )
        if tag.reference not in self.images:
            raise ArtifactNotFoundError(tag.reference)
        return tag.reference

    def remove(self, reference: str) -> None:
        self.images.pop(reference, None)
