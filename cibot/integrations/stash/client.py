"""
Bitbucket Server (Stash) REST API client.

Used for the parts of the merge gate and build reporting that need the
source-control server: paged pull request commit listing, per-commit build
summaries, build status publication and pull request comments.
"""

from typing import Any, AsyncIterator, Dict, Optional

import httpx

from cibot.core.exceptions import MalformedEventError, SourceControlError
from cibot.core.logging import get_logger
from cibot.schemas.events import PullRequestRef
from cibot.schemas.policy import RepositoryRef
from cibot.services.builds.contracts import BuildSummary
from cibot.services.webhooks.parsing import parse_pull_request

logger = get_logger(__name__)

PAGE_LIMIT = 100


class StashClient:
    """Client for interacting with the Bitbucket Server REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Bitbucket client.

        Args:
            base_url: Bitbucket Server base URL, e.g. "https://stash.example.com"
            token: HTTP access token with repository read/write permission
            transport: Optional httpx transport, used by tests
        """
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.headers = {
            "Accept": "application/json",
            "User-Agent": "cibot/1.0",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    def _repo_url(self, repo: RepositoryRef) -> str:
        return (
            f"{self.base_url}/rest/api/1.0/projects/{repo.project_key}"
            f"/repos/{repo.slug}"
        )

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.request(
                    method, url, params=params, json=json, headers=self.headers
                )
                response.raise_for_status()
                return response
        except httpx.HTTPError as e:
            raise SourceControlError(f"{method} {url} failed: {e}") from e

    async def get_pull_request(
        self, repo: RepositoryRef, pull_request_id: int
    ) -> PullRequestRef:
        """
        Get pull request details.

        Args:
            repo: Target repository
            pull_request_id: Pull request id

        Returns:
            The pull request at its current heads.
        """
        url = f"{self._repo_url(repo)}/pull-requests/{pull_request_id}"
        response = await self._request("GET", url)
        try:
            return parse_pull_request(response.json(), repo)
        except MalformedEventError as e:
            raise SourceControlError(
                f"Unexpected pull request payload for {pull_request_id}: {e}"
            ) from e

    async def iter_pull_request_commits(self, pr: PullRequestRef) -> AsyncIterator[str]:
        """
        Yield every commit a pull request introduces, one page at a time.

        Args:
            pr: The pull request

        Yields:
            Commit ids, newest first as returned by the server
        """
        url = f"{self._repo_url(pr.repository)}/pull-requests/{pr.id}/commits"
        start = 0
        while True:
            response = await self._request(
                "GET", url, params={"start": start, "limit": PAGE_LIMIT}
            )
            page = response.json()
            for commit in page.get("values", []):
                yield commit["id"]
            if page.get("isLastPage", True):
                return
            start = page.get("nextPageStart", start + PAGE_LIMIT)

    async def build_summary(self, repo: RepositoryRef, commit: str) -> BuildSummary:
        """
        Get aggregate build counts for a commit.

        Args:
            repo: Repository the commit belongs to
            commit: Commit id

        Returns:
            BuildSummary with successful / in progress / failed counts
        """
        url = f"{self.base_url}/rest/build-status/1.0/commits/stats/{commit}"
        stats = (await self._request("GET", url)).json()
        return BuildSummary(
            successful=int(stats.get("successful", 0)),
            in_progress=int(stats.get("inProgress", 0)),
            failed=int(stats.get("failed", 0)),
        )

    async def post_build_status(
        self,
        commit: str,
        state: str,
        key: str,
        name: str,
        url: str,
        description: str,
    ) -> None:
        """
        Register a build status on a commit.

        Args:
            commit: Commit id the build ran on
            state: SUCCESSFUL, INPROGRESS or FAILED
            key: Stable key of the build (the Jenkins job name)
            name: Display name
            url: Link to the Jenkins build
            description: Free text
        """
        endpoint = f"{self.base_url}/rest/build-status/1.0/commits/{commit}"
        logger.debug("Registering build status %s %s for %s", key, state, commit)
        await self._request(
            "POST",
            endpoint,
            json={
                "state": state,
                "key": key,
                "name": name,
                "url": url,
                "description": description,
            },
        )

    async def post_pull_request_comment(
        self, repo: RepositoryRef, pull_request_id: int, text: str
    ) -> None:
        """
        Add a comment to a pull request.

        Args:
            repo: Target repository
            pull_request_id: Pull request id
            text: Markdown comment body
        """
        url = f"{self._repo_url(repo)}/pull-requests/{pull_request_id}/comments"
        await self._request("POST", url, json={"text": text})
