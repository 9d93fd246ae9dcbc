"""In-memory change-request host."""

from collections.abc import Mapping

from shipdag.core.exceptions import CollaboratorUnavailableError


class InMemoryChangeRequestHost:
    """Maps head commits to change-request numbers and records posted comments."""

    def __init__(self, change_requests: Mapping[str, int] | None = None) -> None:
        self.change_requests = dict(change_requests or {})
        self.comments: list[tuple[int, str]] = []
        self.lookups: list[str] = []
        self.fail_lookup = False
        self.fail_post = False

    async def find_open_change_request(self, commit_id: str) -> int | None:
        self.lookups.append(commit_id)
        if self.fail_lookup:
            raise CollaboratorUnavailableError("change-requests", "lookup failed")
        return self.change_requests.get(commit_id)

    async def post_comment(self, number: int, body: str) -> None:
        if self.fail_post:
            raise CollaboratorUnavailableError("change-requests", "comment rejected")
        self.comments.append((number, body))

    def comments_on(self, number: int) -> list[str]:
        return [body for n, body in self.comments if n == number]
