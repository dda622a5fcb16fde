"""Async client for the GitHub REST API.

Wraps the handful of endpoints PR Runner needs (``/user/repos``,
``/repos/{owner}/{repo}``, ``/repos/{owner}/{repo}/pulls``) with proper
timeout handling and structured responses.  Every failure is raised as a
:class:`~pr_runner.errors.HostingClientError` whose message is shown to the
operator verbatim.

Typical usage::

    client = GitHubClient(token)
    repo = await client.get_repository("octo", "app")
    for pr in await client.list_open_pull_requests(repo.owner, repo.name):
        print(pr.number, pr.head_ref)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, TypeVar

import httpx
from pydantic import BaseModel, Field

from pr_runner.errors import HostingClientError
from pr_runner.utils import format_relative_time

T = TypeVar("T")


class Repository(BaseModel):
    """A repository the authenticated user can see."""

    owner: str = Field(..., description="Owner login")
    name: str
    full_name: str
    clone_url: str
    private: bool = False
    default_branch: str = "main"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Repository":
        return cls(
            owner=data.get("owner", {}).get("login", ""),
            name=data.get("name", ""),
            full_name=data.get("full_name", ""),
            clone_url=data.get("clone_url", ""),
            private=bool(data.get("private", False)),
            default_branch=data.get("default_branch") or "main",
        )

    def display(self) -> str:
        return f"{self.full_name} (private)" if self.private else self.full_name


class PullRequestRef(BaseModel):
    """Read-only view of an open pull request."""

    number: int
    title: str
    author: str = ""
    head_ref: str = Field(..., description="Source branch name")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "PullRequestRef":
        return cls(
            number=data["number"],
            title=data.get("title", ""),
            author=(data.get("user") or {}).get("login", ""),
            head_ref=data["head"]["ref"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    def display(self, now: datetime | None = None) -> str:
        """``#12: Fix login (by octocat) - Updated 3h ago``"""
        when = format_relative_time(self.updated_at, now)
        return f"#{self.number}: {self.title} (by {self.author}) - {when}"


class GitHubClient:
    """Async client for the GitHub REST API.

    A fresh ``httpx.AsyncClient`` is opened per request, configured with the
    API base URL, the bearer token, and the configured timeout.  *transport*
    lets callers substitute an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: int = 30,
        per_page: int = 100,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.per_page = per_page
        self._transport = transport

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and auth."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {self.token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            transport=self._transport,
        )

    async def _get(self, path: str, what: str, params: dict[str, Any] | None = None) -> Any:
        try:
            async with self._client() as client:
                response = await client.get(path, params=params)
                response.raise_for_status()
                return response.json()
        except httpx.ConnectError as exc:
            raise HostingClientError(
                f"Failed to fetch {what}: cannot connect to {self.base_url} ({exc})"
            ) from exc
        except httpx.TimeoutException as exc:
            raise HostingClientError(
                f"Failed to fetch {what}: request timed out after {self.timeout}s"
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            detail = _error_message(exc.response)
            raise HostingClientError(
                f"Failed to fetch {what}: HTTP {status} {detail}".rstrip(),
                status_code=status,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise HostingClientError(f"Failed to fetch {what}: {exc}") from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list_repositories(self) -> list[Repository]:
        """Repositories of the authenticated user, most recently updated first."""
        data = await self._get(
            "/user/repos",
            "repositories",
            params={"sort": "updated", "per_page": self.per_page},
        )
        return _parse_list(Repository.from_api, data, "repositories")

    async def get_repository(self, owner: str, name: str) -> Repository:
        what = f"repository {owner}/{name}"
        data = await self._get(f"/repos/{owner}/{name}", what)
        return _parse(Repository.from_api, data, what)

    async def list_open_pull_requests(self, owner: str, name: str) -> list[PullRequestRef]:
        data = await self._get(
            f"/repos/{owner}/{name}/pulls",
            "pull requests",
            params={"state": "open", "per_page": self.per_page},
        )
        return _parse_list(PullRequestRef.from_api, data, "pull requests")

    async def get_pull_request(self, owner: str, name: str, number: int) -> PullRequestRef:
        what = f"pull request #{number}"
        data = await self._get(f"/repos/{owner}/{name}/pulls/{number}", what)
        return _parse(PullRequestRef.from_api, data, what)


def _parse(from_api: Callable[[Any], T], data: Any, what: str) -> T:
    """Build a model from one API object; malformed payloads become HostingClientError."""
    try:
        return from_api(data)
    except (KeyError, TypeError, AttributeError, ValueError) as exc:
        raise HostingClientError(f"Failed to fetch {what}: unexpected response ({exc!r})") from exc


def _parse_list(from_api: Callable[[Any], T], data: Any, what: str) -> list[T]:
    if not isinstance(data, list):
        raise HostingClientError(f"Failed to fetch {what}: expected a list, got {type(data).__name__}")
    return [_parse(from_api, item, what) for item in data]


def _error_message(response: httpx.Response) -> str:
    """Pull GitHub's ``message`` field out of an error body, if present."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message", ""))
    return ""
