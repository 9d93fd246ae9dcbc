"""Port interface for the code-review host (pull requests and comments)."""

from abc import abstractmethod
from typing import Protocol, runtime_checkable


@runtime_checkable
class ChangeRequestHost(Protocol):
    """Find the change request for a commit and comment on it."""

    @abstractmethod
    async def find_open_change_request(self, commit_id: str) -> int | None:
        """Number of the open change request whose head is ``commit_id``, if any."""
        ...

    @abstractmethod
    async def post_comment(self, number: int, body: str) -> None: ...
