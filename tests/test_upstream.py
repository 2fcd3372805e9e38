"""Tests for the GitHub upstream resolver."""

import httpx
import pytest

from fork_sync.config import GitHubConfig
from fork_sync.exceptions import FetchError
from fork_sync.upstream import GitHubBranchResolver


def _resolver(handler, token=None) -> GitHubBranchResolver:
    client = httpx.AsyncClient(
        base_url="https://api.github.test",
        transport=httpx.MockTransport(handler),
    )
    return GitHubBranchResolver(GitHubConfig(token=token), client=client)


class TestGitHubBranchResolver:
    """Tests for GitHubBranchResolver."""

    @pytest.mark.asyncio
    async def test_branch_head_sha(self, make_candidate) -> None:
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"name": "main", "commit": {"sha": "def456"}})

        resolver = _resolver(handler)

        sha = await resolver(make_candidate(link_id=4, branch="main"))

        assert sha == "def456"
        assert requests[0].url.path == "/repos/upstream-org/project-4/branches/main"
        assert requests[0].headers["Authorization"] == "Bearer gho_secret"

    @pytest.mark.asyncio
    async def test_default_branch_uses_latest_commit(self, make_candidate) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/upstream-org/project-1/commits"
            assert request.url.params["per_page"] == "1"
            return httpx.Response(200, json=[{"sha": "aaa111"}])

        sha = await _resolver(handler)(make_candidate(branch=None))

        assert sha == "aaa111"

    @pytest.mark.asyncio
    async def test_fallback_token_when_owner_has_none(self, make_candidate) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"commit": {"sha": "x"}})

        await _resolver(handler, token="ghp_fallback")(make_candidate(owner=None))

        assert seen["auth"] == "Bearer ghp_fallback"

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self, make_candidate) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Branch not found"})

        assert await _resolver(handler)(make_candidate()) is None

    @pytest.mark.asyncio
    async def test_empty_repository_returns_none(self, make_candidate) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[])

        assert await _resolver(handler)(make_candidate(branch=None)) is None

    @pytest.mark.asyncio
    async def test_server_error_raises_fetch_error(self, make_candidate) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        with pytest.raises(FetchError) as exc_info:
            await _resolver(handler)(make_candidate(link_id=9))

        assert exc_info.value.status_code == 502
        assert exc_info.value.link_id == 9

    @pytest.mark.asyncio
    async def test_network_error_raises_fetch_error(self, make_candidate) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError, match="connection refused"):
            await _resolver(handler)(make_candidate())

    @pytest.mark.asyncio
    async def test_malformed_body_raises_fetch_error(self, make_candidate) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        with pytest.raises(FetchError, match="Unexpected response"):
            await _resolver(handler)(make_candidate())

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, make_candidate) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        resolver = GitHubBranchResolver(GitHubConfig(), client=client)

        await resolver.aclose()

        assert not client.is_closed
        await client.aclose()
