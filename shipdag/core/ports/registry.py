"""Port interface for container registries."""

from abc import abstractmethod
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from shipdag.core.domain.models import ArtifactTag


class PublishReceipt(BaseModel):
    """What the registry reports after a publish.

    Attributes
    ----------
    digest : str
        Content digest shared by every published reference
    references : list[str]
        Fully qualified references that now point at ``digest``
    """

    model_config = ConfigDict(frozen=True)

    digest: str
    references: list[str] = Field(default_factory=list)


@runtime_checkable
class ArtifactRegistry(Protocol):
    """Build, push and pull container images.

    ``publish`` builds once and pushes the same content under every tag.
    ``pull`` returns the local reference of the pulled image and raises
    ``ArtifactNotFoundError`` when the registry has nothing under the tag.
    """

    @abstractmethod
    async def publish(
        self,
        tags: Sequence[ArtifactTag],
        *,
        context_dir: str,
        dockerfile: str,
    ) -> PublishReceipt: ...

    @abstractmethod
    async def pull(self, tag: ArtifactTag) -> str: ...
