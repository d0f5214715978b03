import asyncio
import shutil
import subprocess

import pytest

from cibot.core.exceptions import CommitGraphError
from cibot.integrations.git import GitCommitGraph
from cibot.schemas.events import PushEvent, RefChange, RefChangeType
from cibot.schemas.policy import JobKind, RepositoryPolicy, RepositoryRef
from cibot.services.builds.context import BuildContext
from cibot.services.builds.event_router import EventRouter

from conftest import InMemoryMetadataStore, RecordingDispatcher, StaticPolicyProvider

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

REPO = RepositoryRef(id=42, project_key="CORE", slug="widgets")


def git(cwd, *args):
    result = subprocess.run(
        ["git", "-c", "user.name=cibot", "-c", "user.email=cibot@example.com", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


def commit(cwd, message):
    git(cwd, "commit", "--allow-empty", "-m", message)
    return git(cwd, "rev-parse", "HEAD")


@pytest.fixture
def upstream(tmp_path):
    """Working repository: master A-B-C, feature B-D. Mirror cloned from it."""
    src = tmp_path / "src"
    src.mkdir()
    git(src, "init")
    git(src, "symbolic-ref", "HEAD", "refs/heads/master")
    shas = {"A": commit(src, "A"), "B": commit(src, "B")}
    git(src, "checkout", "-b", "feature")
    shas["D"] = commit(src, "D")
    git(src, "checkout", "master")
    shas["C"] = commit(src, "C")

    mirrors = tmp_path / "mirrors"
    mirrors.mkdir()
    git(tmp_path, "clone", "--mirror", str(src), str(mirrors / "42.git"))
    return src, shas, GitCommitGraph(str(mirrors))


def test_branch_tips_matching(upstream):
    _, shas, graph = upstream
    assert asyncio.run(graph.branch_tips_matching(REPO, "refs/heads/.*")) == {
        "refs/heads/feature": shas["D"],
        "refs/heads/master": shas["C"],
    }
    assert asyncio.run(graph.branch_tips_matching(REPO, "refs/heads/mast")) == {}


def test_commits_excluding_is_oldest_first(upstream):
    src, shas, graph = upstream
    commits = asyncio.run(
        graph.commits_excluding(REPO, include=["refs/heads/master"], exclude=[shas["D"]])
    )
    assert commits == [shas["C"]]

    commits = asyncio.run(graph.commits_excluding(REPO, include=[shas["C"]], exclude=[]))
    assert commits == [shas["A"], shas["B"], shas["C"]]


def test_refresh_fetches_new_commits_and_prunes(upstream):
    src, shas, graph = upstream
    git(src, "checkout", "feature")
    e = commit(src, "E")
    git(src, "checkout", "master")
    git(src, "branch", "-D", "feature")
    git(src, "checkout", "-b", "topic", e)

    asyncio.run(graph.refresh(REPO))

    assert asyncio.run(graph.branch_tips_matching(REPO, "refs/heads/.*")) == {
        "refs/heads/master": shas["C"],
        "refs/heads/topic": e,
    }
    commits = asyncio.run(
        graph.commits_excluding(REPO, include=[e], exclude=["refs/heads/master"])
    )
    assert commits == [shas["D"], e]


def test_empty_include_runs_nothing(tmp_path):
    graph = GitCommitGraph(str(tmp_path))
    assert asyncio.run(graph.commits_excluding(REPO, include=[], exclude=["x"])) == []


def test_git_failures_raise(upstream, tmp_path):
    _, _, graph = upstream
    with pytest.raises(CommitGraphError):
        asyncio.run(graph.commits_excluding(REPO, include=["f" * 40], exclude=[]))

    missing = GitCommitGraph(str(tmp_path / "nowhere"))
    with pytest.raises(CommitGraphError):
        asyncio.run(missing.branch_tips_matching(REPO, ".*"))


def test_push_handling_sees_branches_as_they_were_before_the_fetch(upstream):
    src, shas, graph = upstream
    # both branches reach the server before the first webhook is handled
    git(src, "checkout", "-b", "f1", "master")
    x = commit(src, "X")
    git(src, "checkout", "-b", "f2")
    y = commit(src, "Y")

    policy = RepositoryPolicy(
        ci_enabled=True,
        verify_branch_regex="refs/heads/.*",
        publish_branch_regex="refs/heads/master",
        enabled_job_kinds=frozenset(JobKind),
    )
    dispatcher = RecordingDispatcher()
    ctx = BuildContext(
        policies=StaticPolicyProvider(REPO, policy),
        graph=graph,
        dispatcher=dispatcher,
        store=InMemoryMetadataStore(),
    )
    router = EventRouter(ctx)

    def added(ref, tip):
        change = RefChange(
            ref_id=f"refs/heads/{ref}",
            type=RefChangeType.ADD,
            from_hash="0" * 40,
            to_hash=tip,
        )
        return PushEvent(repository=REPO, changes=[change])

    asyncio.run(router.handle(added("f1", x)))
    assert dispatcher.calls == [(JobKind.VERIFY_COMMIT, x, None)]

    asyncio.run(router.handle(added("f2", y)))
    assert dispatcher.calls == [
        (JobKind.VERIFY_COMMIT, x, None),
        (JobKind.VERIFY_COMMIT, y, None),
    ]
