"""
Commit selection for pushes.

Given the ref changes of one push, compute which commits need a build:

* every non-deleted ref matching the publish pattern gets a PUBLISH build on
  its new tip;
* every commit introduced by the push that is not already reachable from some
  other existing verify branch gets a VERIFY_COMMIT build, unless it was just
  published.

The introduced commits are found with a single ancestor-exclusion query: the
new tips of the pushed refs are included, and both the old tips of the pushed
refs and every other verify branch are excluded. This handles fast-forwards,
forced updates, new branches and deletions uniformly.
"""

from typing import Dict, List, Mapping, Sequence, Tuple

from cibot.core.exceptions import MalformedEventError
from cibot.core.logging import get_logger
from cibot.schemas.actions import PushPlan, TriggerBuild
from cibot.schemas.events import RefChange, RefChangeType
from cibot.schemas.policy import JobKind, RepositoryPolicy, RepositoryRef
from cibot.services.builds.chain_limit import apply_chain_limit
from cibot.services.builds.contracts import CommitGraph

logger = get_logger(__name__)


def plan_publish(
    rc: RepositoryPolicy, changes: Sequence[RefChange]
) -> List[TriggerBuild]:
    """Publish the advertised tip of every updated publish branch."""
    actions = []
    for change in changes:
        if change.type == RefChangeType.DELETE:
            continue
        if rc.matches_publish(change.ref_id):
            actions.append(TriggerBuild(job_kind=JobKind.PUBLISH, commit=change.to_hash))
    return actions


def reachability_sets(
    rc: RepositoryPolicy,
    all_verify_branches: Mapping[str, str],
    changes: Sequence[RefChange],
) -> Tuple[List[str], List[str]]:
    """
    Build the (plus, minus) commit lists for the ancestor-exclusion query.

    Args:
        rc: Repository policy.
        all_verify_branches: Ref id to tip of every verify branch, read before
            the mirror was refreshed.
        changes: The ref changes of this push.

    Raises:
        MalformedEventError: On a ref change type outside ADD/UPDATE/DELETE.
    """
    # dicts keep insertion order, which keeps the git command line stable
    other_tips: Dict[str, str] = dict(all_verify_branches)
    old_tips: Dict[str, None] = {}
    plus: Dict[str, None] = {}

    for change in changes:
        if not rc.matches_verify(change.ref_id):
            continue
        # the pushed ref is represented by its hashes, not its mirrored tip
        other_tips.pop(change.ref_id, None)
        if change.type == RefChangeType.DELETE:
            old_tips[change.from_hash] = None
        elif change.type == RefChangeType.ADD:
            plus[change.to_hash] = None
        elif change.type == RefChangeType.UPDATE:
            old_tips[change.from_hash] = None
            plus[change.to_hash] = None
        else:
            raise MalformedEventError(
                f"Unknown ref change type {change.type!r} for {change.ref_id}"
            )

    minus = dict.fromkeys(other_tips.values())
    minus.update(old_tips)
    return list(plus), list(minus)


async def plan_push(
    repo: RepositoryRef,
    rc: RepositoryPolicy,
    all_verify_branches: Mapping[str, str],
    changes: Sequence[RefChange],
    graph: CommitGraph,
    verify_chain_limit: int,
) -> PushPlan:
    """
    Compute every build a push requires without starting any of them.

    Args:
        repo: Repository the push landed in.
        rc: Repository policy at decision time.
        all_verify_branches: Ref id to tip of every verify branch as seen
            before the push was fetched.
        changes: The ref changes of this push.
        graph: Commit graph accessor for the repository.
        verify_chain_limit: Effective limit, 0 for unlimited.

    Returns:
        PushPlan with publish actions first, then verify actions oldest first.
    """
    publish_actions = plan_publish(rc, changes)
    published = [action.commit for action in publish_actions]
    plan = PushPlan(published=published, actions=list(publish_actions))

    if not rc.is_enabled(JobKind.VERIFY_COMMIT):
        logger.debug("VERIFY_COMMIT disabled for repo %s, skipping verify pass", repo.id)
        return plan

    plus, minus = reachability_sets(rc, all_verify_branches, changes)
    if not plus:
        return plan

    commits = await graph.commits_excluding(repo, include=plus, exclude=minus)
    limited = apply_chain_limit(commits, verify_chain_limit)
    if len(limited) < len(commits):
        logger.info(
            "Verify chain limit %d reached for repo %s: building %d of %d new commits",
            verify_chain_limit,
            repo.id,
            len(limited),
            len(commits),
        )

    published_set = set(published)
    for commit in limited:
        if commit in published_set:
            continue
        plan.verify.append(commit)
        plan.actions.append(TriggerBuild(job_kind=JobKind.VERIFY_COMMIT, commit=commit))

    return plan
