"""
Narrow interfaces the build trigger engine depends on.

Each component receives only the collaborators it uses; concrete
implementations live in ``cibot.integrations`` and
``cibot.services.builds.metadata_store``.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Protocol, Sequence

from cibot.models.pull_request_metadata import PullRequestMetadata
from cibot.schemas.actions import MetadataKey
from cibot.schemas.events import PullRequestRef
from cibot.schemas.policy import JobKind, RepositoryPolicy, RepositoryRef, ServerPolicy


@dataclass(frozen=True)
class BuildSummary:
    """Aggregate build status counts for one commit."""

    successful: int = 0
    in_progress: int = 0
    failed: int = 0


class PolicyProvider(Protocol):
    async def get_repository_policy(self, repo_id: int) -> RepositoryPolicy: ...

    async def get_server_policy(self, repo_id: int) -> ServerPolicy: ...

    async def get_repository(self, repo_id: int) -> RepositoryRef: ...


class CommitGraph(Protocol):
    async def refresh(self, repo: RepositoryRef) -> None:
        """Make sure the pushed commits are visible to the accessor."""
        ...

    async def branch_tips_matching(
        self, repo: RepositoryRef, pattern: str
    ) -> Dict[str, str]:
        """Ref id to tip commit of every branch fully matching ``pattern``."""
        ...

    async def commits_excluding(
        self, repo: RepositoryRef, include: Sequence[str], exclude: Sequence[str]
    ) -> List[str]:
        """Commits reachable from ``include`` but not ``exclude``, oldest first."""
        ...


class BuildDispatcher(Protocol):
    async def dispatch(
        self,
        repo: RepositoryRef,
        job_kind: JobKind,
        commit: str,
        pull_request: Optional[PullRequestRef] = None,
    ) -> None: ...


class MetadataStore(Protocol):
    """
    Per pull request build state.

    Concurrent updates of one identity are last-writer-wins per field: an
    update writes only the fields it specifies.
    """

    async def get_or_create(self, key: MetadataKey) -> PullRequestMetadata: ...

    async def update(
        self,
        key: MetadataKey,
        build_started: Optional[bool] = None,
        success: Optional[bool] = None,
        failed: Optional[bool] = None,
        override: Optional[bool] = None,
    ) -> PullRequestMetadata: ...

    async def list_for_source(
        self, repo_id: int, pull_request_id: int, from_sha: str
    ) -> List[PullRequestMetadata]: ...


class BuildSummaryProvider(Protocol):
    def iter_pull_request_commits(self, pr: PullRequestRef) -> AsyncIterator[str]:
        """Every commit the pull request introduces, fetched page by page."""
        ...

    async def build_summary(self, repo: RepositoryRef, commit: str) -> BuildSummary: ...


class PullRequestSource(Protocol):
    async def get_pull_request(
        self, repo: RepositoryRef, pull_request_id: int
    ) -> PullRequestRef: ...


class BuildNotifier(Protocol):
    async def post_build_status(
        self,
        commit: str,
        state: str,
        key: str,
        name: str,
        url: str,
        description: str,
    ) -> None: ...

    async def post_pull_request_comment(
        self, repo: RepositoryRef, pull_request_id: int, text: str
    ) -> None: ...
