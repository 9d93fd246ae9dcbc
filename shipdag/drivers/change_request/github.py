"""Change-request host driver for the GitHub REST API, using httpx.AsyncClient."""

from __future__ import annotations

from typing import Any

import httpx

from shipdag.core.exceptions import (
    CollaboratorError,
    CollaboratorTimeoutError,
    CollaboratorUnavailableError,
    ConfigurationError,
)
from shipdag.core.logging import get_logger

logger = get_logger(__name__)

_COLLABORATOR = "change-requests"


class GitHubChangeRequestHost:
    """ChangeRequestHost backed by GitHub pull requests.

    Parameters
    ----------
    repository : str
        ``owner/name`` of the repository
    token : str | None
        Token sent as ``Authorization: Bearer <token>``
    api_url : str
        API root (default: "https://api.github.com")
    timeout : float
        Request timeout in seconds (default: 30.0)

    Examples
    --------
    Basic usage::

        host = GitHubChangeRequestHost("acme/sample-app", token=os.environ["GITHUB_TOKEN"])
        number = await host.find_open_change_request("abc123")
        if number is not None:
            await host.post_comment(number, "CI passed")
    """

    def __init__(
        self,
        repository: str,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
    ) -> None:
        if repository.count("/") != 1:
            raise ConfigurationError("change_requests", f"invalid repository '{repository}'")
        self.repository = repository
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._client: httpx.AsyncClient | None = None
        # Hook for testing: inject a custom transport
        self._transport: httpx.AsyncBaseTransport | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily create the httpx client on first use."""
        if self._client is None:
            kwargs: dict[str, Any] = {
                "base_url": self._api_url,
                "timeout": self._timeout,
                "headers": self._headers,
            }
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._get_client().request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise CollaboratorTimeoutError(_COLLABORATOR, self._timeout) from e
        except httpx.TransportError as e:
            raise CollaboratorUnavailableError(_COLLABORATOR, str(e)) from e
        if response.status_code >= 400:
            raise CollaboratorError(
                _COLLABORATOR, f"{method} {url} returned HTTP {response.status_code}"
            )
        return response

    async def find_open_change_request(self, commit_id: str) -> int | None:
        """Lowest-numbered open pull request whose head is ``commit_id``."""
        url = f"/repos/{self.repository}/commits/{commit_id}/pulls"
        response = await self._request("GET", url)
        pulls = response.json()
        numbers = sorted(
            int(pr["number"])
            for pr in pulls
            if pr.get("state") == "open" and pr.get("head", {}).get("sha", commit_id) == commit_id
        )
        if not numbers:
            logger.debug(f"No open pull request for commit {commit_id}")
            return None
        return numbers[0]

    async def post_comment(self, number: int, body: str) -> None:
        await self._request(
            "POST", f"/repos/{self.repository}/issues/{number}/comments", json={"body": body}
        )
        logger.info(f"Commented on {self.repository}#{number}")

    async def aclose(self) -> None:
        """Close the underlying httpx client and release connection pool resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
