"""Unit tests for GitHubClient (pr_runner.github_client).

Tests cover:
- Repository / PullRequestRef parsing and display
- Auth headers and query parameters
- Each endpoint wrapper
- Error mapping: HTTP status, connect error, timeout, malformed body
"""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from pr_runner.errors import HostingClientError
from pr_runner.github_client import GitHubClient, PullRequestRef, Repository

REPO_JSON = {
    "name": "app",
    "full_name": "octo/app",
    "owner": {"login": "octo"},
    "clone_url": "https://github.com/octo/app.git",
    "private": True,
    "default_branch": "develop",
}


def _pr_json(number: int, updated_at: str = "2026-03-01T09:00:00Z") -> dict:
    return {
        "number": number,
        "title": f"Change {number}",
        "user": {"login": "octocat"},
        "head": {"ref": f"feature/pr-{number}"},
        "created_at": "2026-02-28T09:00:00Z",
        "updated_at": updated_at,
    }


def _client(handler) -> GitHubClient:
    return GitHubClient("ghp_test", transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestRepository:
    @pytest.mark.unit
    def test_from_api(self):
        repo = Repository.from_api(REPO_JSON)
        assert repo.owner == "octo"
        assert repo.name == "app"
        assert repo.clone_url.endswith("app.git")
        assert repo.default_branch == "develop"

    @pytest.mark.unit
    def test_display_marks_private(self):
        assert Repository.from_api(REPO_JSON).display() == "octo/app (private)"
        public = Repository.from_api({**REPO_JSON, "private": False})
        assert public.display() == "octo/app"


class TestPullRequestRef:
    @pytest.mark.unit
    def test_from_api(self):
        pr = PullRequestRef.from_api(_pr_json(7))
        assert pr.number == 7
        assert pr.author == "octocat"
        assert pr.head_ref == "feature/pr-7"
        assert pr.updated_at == datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    @pytest.mark.unit
    def test_missing_user_tolerated(self):
        data = _pr_json(7)
        data["user"] = None
        assert PullRequestRef.from_api(data).author == ""

    @pytest.mark.unit
    def test_display(self):
        pr = PullRequestRef.from_api(_pr_json(12))
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert pr.display(now) == "#12: Change 12 (by octocat) - Updated 3h ago"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestGitHubClientRequests:
    @pytest.mark.unit
    def test_base_url_trailing_slash_stripped(self):
        assert GitHubClient("t", base_url="https://ghe.local/api/v3/").base_url == "https://ghe.local/api/v3"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_repositories_sends_auth_and_sort(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[REPO_JSON])

        repos = await _client(handler).list_repositories()

        assert [r.full_name for r in repos] == ["octo/app"]
        request = seen[0]
        assert request.url.path == "/user/repos"
        assert request.url.params["sort"] == "updated"
        assert request.headers["Authorization"] == "Bearer ghp_test"
        assert request.headers["Accept"] == "application/vnd.github+json"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_repository(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/octo/app"
            return httpx.Response(200, json=REPO_JSON)

        repo = await _client(handler).get_repository("octo", "app")
        assert repo.full_name == "octo/app"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_open_pull_requests(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/octo/app/pulls"
            assert request.url.params["state"] == "open"
            return httpx.Response(200, json=[_pr_json(1), _pr_json(2)])

        prs = await _client(handler).list_open_pull_requests("octo", "app")
        assert [pr.number for pr in prs] == [1, 2]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_pull_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/octo/app/pulls/9"
            return httpx.Response(200, json=_pr_json(9))

        pr = await _client(handler).get_pull_request("octo", "app", 9)
        assert pr.head_ref == "feature/pr-9"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestGitHubClientErrors:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_status_error_carries_message(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Not Found"})

        with pytest.raises(HostingClientError, match="HTTP 404 Not Found") as exc_info:
            await _client(handler).get_repository("octo", "missing")
        assert exc_info.value.status_code == 404
        assert "repository octo/missing" in str(exc_info.value)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unauthorized(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "Bad credentials"})

        with pytest.raises(HostingClientError, match="Bad credentials") as exc_info:
            await _client(handler).list_repositories()
        assert exc_info.value.status_code == 401

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_connect_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(HostingClientError, match="cannot connect"):
            await _client(handler).list_repositories()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(HostingClientError, match="timed out"):
            await _client(handler).list_open_pull_requests("octo", "app")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_non_json_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>proxy</html>")

        with pytest.raises(HostingClientError, match="Failed to fetch repositories"):
            await _client(handler).list_repositories()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_pull_request_without_head(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = _pr_json(1)
            del body["head"]
            return httpx.Response(200, json=[body])

        with pytest.raises(HostingClientError, match="Failed to fetch pull requests: unexpected response"):
            await _client(handler).list_open_pull_requests("octo", "app")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_repository_with_null_owner(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={**REPO_JSON, "owner": None})

        with pytest.raises(HostingClientError, match="repository octo/app"):
            await _client(handler).get_repository("octo", "app")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_endpoint_returning_object(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"message": "Moved"})

        with pytest.raises(HostingClientError, match="expected a list"):
            await _client(handler).list_repositories()
