"""Upstream branch lookups against the GitHub REST API."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from fork_sync.config import GitHubConfig
from fork_sync.exceptions import FetchError
from fork_sync.models import LinkSyncCandidate

logger = logging.getLogger(__name__)


class GitHubBranchResolver:
    """Resolves the head commit SHA of a link's upstream branch.

    Uses the link owner's access token, falling back to the configured
    token. Returns None when GitHub reports the repository or branch as
    missing; any other failure raises FetchError.

    Example:
        async with GitHubBranchResolver(config.github) as resolver:
            sha = await resolver(candidate)
    """

    def __init__(
        self,
        config: Optional[GitHubConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config or GitHubConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._config.api_url,
            timeout=self._config.timeout,
        )

    async def __aenter__(self) -> "GitHubBranchResolver":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this resolver created it."""
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, candidate: LinkSyncCandidate) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        token = (candidate.owner.access_token if candidate.owner else None) or self._config.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def __call__(self, candidate: LinkSyncCandidate) -> Optional[str]:
        """
        Fetch the head SHA of the candidate's upstream branch.

        Without a branch, the latest commit on the default branch is used.

        Args:
            candidate: Link whose upstream is looked up

        Returns:
            The head commit SHA, or None if the upstream no longer exists

        Raises:
            FetchError: On network errors and unexpected responses
        """
        upstream = candidate.upstream
        if upstream.type not in (None, "repo"):
            raise FetchError(
                f"Unsupported upstream type: {upstream.type}",
                link_id=candidate.id,
            )

        if upstream.branch:
            path = f"/repos/{upstream.owner}/{upstream.repo}/branches/{upstream.branch}"
            params: Dict[str, Any] = {}
        else:
            path = f"/repos/{upstream.owner}/{upstream.repo}/commits"
            params = {"per_page": 1}

        try:
            response = await self._client.get(path, params=params, headers=self._headers(candidate))
        except httpx.HTTPError as e:
            raise FetchError(
                f"Request for {upstream.full_name} failed: {e}",
                link_id=candidate.id,
            ) from e

        if response.status_code == 404:
            logger.warning(f"Upstream {upstream.full_name} (branch {upstream.branch}) not found")
            return None

        if response.is_error:
            raise FetchError(
                f"GitHub returned {response.status_code} for {upstream.full_name}",
                link_id=candidate.id,
                status_code=response.status_code,
            )

        try:
            body = response.json()
            if upstream.branch:
                return body["commit"]["sha"]
            return body[0]["sha"] if body else None
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise FetchError(
                f"Unexpected response for {upstream.full_name}: {e}",
                link_id=candidate.id,
                status_code=response.status_code,
            ) from e
