"""
In-memory collaborators for the build trigger engine.
"""

import hashlib
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

from cibot.core.exceptions import ConfigurationError
from cibot.models.pull_request_metadata import PullRequestMetadata
from cibot.schemas.actions import MetadataKey
from cibot.schemas.events import PullRequestRef, PullRequestSide
from cibot.schemas.policy import JobKind, RepositoryPolicy, RepositoryRef, ServerPolicy
from cibot.services.builds.context import BuildContext
from cibot.services.builds.contracts import BuildSummary

OVERRIDE = "==OVERRIDE=="


def sha(label: str) -> str:
    """Stable 40-hex commit id for a readable label."""
    return hashlib.sha1(label.encode("utf-8")).hexdigest()


def make_pull_request(
    repo: RepositoryRef,
    from_label: str = "F1",
    to_label: str = "M1",
    to_branch: str = "master",
    from_branch: str = "feature",
    pr_id: int = 7,
) -> PullRequestRef:
    return PullRequestRef(
        repository=repo,
        id=pr_id,
        from_ref=PullRequestSide(
            id=f"refs/heads/{from_branch}",
            display_id=from_branch,
            latest_commit=sha(from_label),
        ),
        to_ref=PullRequestSide(
            id=f"refs/heads/{to_branch}",
            display_id=to_branch,
            latest_commit=sha(to_label),
        ),
    )


class InMemoryCommitGraph:
    """
    Commit DAG with named branches.

    Commits must be added parents first; that order is the oldest-first order
    returned by ``commits_excluding``.
    """

    def __init__(self):
        self.parents: Dict[str, List[str]] = {}
        self.branches: Dict[str, str] = {}
        # branch moves the server has seen but the mirror has not fetched yet
        self.pending: Dict[str, str] = {}
        self.refreshed: List[int] = []
        self.queries: List[Tuple[List[str], List[str]]] = []

    def add(self, label: str, *parents: str) -> str:
        commit = sha(label)
        self.parents[commit] = [sha(p) for p in parents]
        return commit

    def chain(self, labels: Iterable[str], parent: Optional[str] = None) -> List[str]:
        commits = []
        for label in labels:
            commits.append(self.add(label, *([parent] if parent else [])))
            parent = label
        return commits

    def set_branch(self, name: str, label: str) -> None:
        self.branches[f"refs/heads/{name}"] = sha(label)

    def push(self, name: str, label: str) -> None:
        self.pending[f"refs/heads/{name}"] = sha(label)

    def _resolve(self, tip: str) -> str:
        return self.branches.get(tip, tip)

    def _ancestors(self, tips: Sequence[str]) -> set:
        seen = set()
        stack = [self._resolve(t) for t in tips]
        while stack:
            commit = stack.pop()
            if commit in seen or commit not in self.parents:
                continue
            seen.add(commit)
            stack.extend(self.parents[commit])
        return seen

    async def refresh(self, repo: RepositoryRef) -> None:
        self.refreshed.append(repo.id)
        self.branches.update(self.pending)
        self.pending.clear()

    async def branch_tips_matching(
        self, repo: RepositoryRef, pattern: str
    ) -> Dict[str, str]:
        return {
            ref: tip for ref, tip in self.branches.items() if re.fullmatch(pattern, ref)
        }

    async def commits_excluding(
        self, repo: RepositoryRef, include: Sequence[str], exclude: Sequence[str]
    ) -> List[str]:
        self.queries.append((list(include), list(exclude)))
        reachable = self._ancestors(include) - self._ancestors(exclude)
        return [c for c in self.parents if c in reachable]


class RecordingDispatcher:
    def __init__(self, error: Optional[Exception] = None):
        self.calls: List[Tuple[JobKind, str, Optional[PullRequestRef]]] = []
        self.error = error

    async def dispatch(self, repo, job_kind, commit, pull_request=None) -> None:
        if self.error is not None:
            raise self.error
        self.calls.append((job_kind, commit, pull_request))


class InMemoryMetadataStore:
    def __init__(self):
        self.rows: Dict[MetadataKey, PullRequestMetadata] = {}
        self.updates: List[Tuple[MetadataKey, dict]] = []

    async def get_or_create(self, key: MetadataKey) -> PullRequestMetadata:
        if key not in self.rows:
            self.rows[key] = PullRequestMetadata(id=len(self.rows) + 1, **key.model_dump())
        return self.rows[key]

    async def update(self, key: MetadataKey, **fields) -> PullRequestMetadata:
        row = await self.get_or_create(key)
        fields = {name: value for name, value in fields.items() if value is not None}
        for name, value in fields.items():
            setattr(row, name, value)
        self.updates.append((key, fields))
        return row

    async def list_for_source(
        self, repo_id: int, pull_request_id: int, from_sha: str
    ) -> List[PullRequestMetadata]:
        return [
            row
            for key, row in self.rows.items()
            if (key.repo_id, key.pull_request_id, key.from_sha)
            == (repo_id, pull_request_id, from_sha)
        ]


class StaticPolicyProvider:
    def __init__(
        self,
        repo: RepositoryRef,
        policy: RepositoryPolicy,
        server: Optional[ServerPolicy] = None,
    ):
        self.repo = repo
        self.policy = policy
        self.server = server or ServerPolicy(url="http://jenkins.example.com")
        self.fail_policy = False
        self.fail_server = False

    async def get_repository_policy(self, repo_id: int) -> RepositoryPolicy:
        if self.fail_policy:
            raise ConfigurationError(f"No policy for {repo_id}")
        return self.policy

    async def get_server_policy(self, repo_id: int) -> ServerPolicy:
        if self.fail_server:
            raise ConfigurationError(f"No server for {repo_id}")
        return self.server

    async def get_repository(self, repo_id: int) -> RepositoryRef:
        if repo_id != self.repo.id:
            raise ConfigurationError(f"Unknown repository {repo_id}")
        return self.repo


class FakeSummaries:
    def __init__(self, commits: Sequence[str], summaries: Dict[str, BuildSummary]):
        self.commits = list(commits)
        self.summaries = summaries
        self.looked_up: List[str] = []
        self.error: Optional[Exception] = None

    async def iter_pull_request_commits(self, pr):
        for commit in self.commits:
            if self.error is not None:
                raise self.error
            yield commit

    async def build_summary(self, repo, commit) -> BuildSummary:
        self.looked_up.append(commit)
        return self.summaries.get(commit, BuildSummary())


class RecordingNotifier:
    def __init__(self):
        self.statuses: List[dict] = []
        self.comments: List[Tuple[int, str]] = []
        self.error: Optional[Exception] = None

    async def post_build_status(self, **kwargs) -> None:
        if self.error is not None:
            raise self.error
        self.statuses.append(kwargs)

    async def post_pull_request_comment(self, repo, pull_request_id, text) -> None:
        if self.error is not None:
            raise self.error
        self.comments.append((pull_request_id, text))


class FakePullRequests:
    def __init__(self, *pull_requests: PullRequestRef):
        self.pull_requests = {pr.id: pr for pr in pull_requests}

    async def get_pull_request(self, repo, pull_request_id) -> PullRequestRef:
        return self.pull_requests[pull_request_id]


@pytest.fixture
def repo() -> RepositoryRef:
    return RepositoryRef(id=42, project_key="CORE", slug="widgets")


@pytest.fixture
def policy() -> RepositoryPolicy:
    return RepositoryPolicy(
        ci_enabled=True,
        verify_branch_regex="refs/heads/.*",
        publish_branch_regex="refs/heads/master",
        enabled_job_kinds=frozenset(JobKind),
    )


@pytest.fixture
def graph() -> InMemoryCommitGraph:
    return InMemoryCommitGraph()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def store() -> InMemoryMetadataStore:
    return InMemoryMetadataStore()


@pytest.fixture
def policies(repo, policy) -> StaticPolicyProvider:
    return StaticPolicyProvider(repo, policy)


@pytest.fixture
def ctx(policies, graph, dispatcher, store) -> BuildContext:
    return BuildContext(
        policies=policies,
        graph=graph,
        dispatcher=dispatcher,
        store=store,
        override_marker=OVERRIDE,
    )
