"""
Event routing for the build trigger engine.

``EventRouter.route`` turns one tagged event into the list of actions it
requires; ``EventRouter.handle`` routes and then performs those actions in
order. Everything is awaited inline: branch state must be read before it can
change again, so no event is ever deferred to a background task.

Pull request metadata transitions, per (from_sha, to_sha)::

    fresh -> build_started -> success | failed
    override: orthogonal, settable from any state
"""

import asyncio
from collections import defaultdict
from typing import DefaultDict, List

from cibot.core.exceptions import ConfigurationError, MalformedEventError
from cibot.core.logging import get_logger
from cibot.schemas.actions import Action, MetadataKey, TriggerBuild, UpdateMetadata
from cibot.schemas.events import (
    BuildState,
    BuildStatusReport,
    Event,
    PullRequestEvent,
    PullRequestEventKind,
    PushEvent,
)
from cibot.schemas.policy import JobKind, RepositoryPolicy, RepositoryRef
from cibot.services.builds.chain_limit import effective_verify_chain_limit
from cibot.services.builds.commit_selector import plan_push
from cibot.services.builds.context import BuildContext

logger = get_logger(__name__)

# one push at a time per repository mirror
_push_locks: DefaultDict[int, asyncio.Lock] = defaultdict(asyncio.Lock)


class EventRouter:
    def __init__(self, ctx: BuildContext):
        self.ctx = ctx

    async def handle(self, event: Event) -> List[Action]:
        """Route an event and perform the resulting actions."""
        actions = await self.route(event)
        await self.execute(_repository_of(event), actions)
        return actions

    async def route(self, event: Event) -> List[Action]:
        if isinstance(event, PushEvent):
            return await self.route_push(event)
        if isinstance(event, PullRequestEvent):
            return await self.route_pull_request(event)
        if isinstance(event, BuildStatusReport):
            return self.route_build_report(event)
        raise MalformedEventError(f"Unsupported event type: {type(event).__name__}")

    async def execute(self, repo: RepositoryRef, actions: List[Action]) -> None:
        """
        Perform actions in order. A failed dispatch propagates and the
        remaining actions are not performed.
        """
        for action in actions:
            if isinstance(action, TriggerBuild):
                logger.info(
                    "Triggering %s build for repo %s on %s",
                    action.job_kind.name,
                    repo.id,
                    action.commit,
                )
                await self.ctx.dispatcher.dispatch(
                    repo, action.job_kind, action.commit, action.pull_request
                )
            elif isinstance(action, UpdateMetadata):
                await self.ctx.store.update(action.key, **action.fields())
            else:
                raise TypeError(f"Unknown action: {action!r}")

    async def route_push(self, event: PushEvent) -> List[Action]:
        repo = event.repository
        try:
            rc = await self.ctx.policies.get_repository_policy(repo.id)
        except ConfigurationError as e:
            logger.error("Failed to get repository policy for repo %s: %s", repo.id, e)
            return []

        if not rc.ci_enabled:
            logger.debug("CI disabled for repo %s", repo.id)
            return []

        limit = await effective_verify_chain_limit(self.ctx.policies, repo.id, rc)
        async with _push_locks[repo.id]:
            # tips are read before the fetch so a later push to another branch
            # cannot make this push's commits look already reachable
            tips = await self.ctx.graph.branch_tips_matching(
                repo, rc.verify_branch_regex
            )
            await self.ctx.graph.refresh(repo)
            plan = await plan_push(repo, rc, tips, event.changes, self.ctx.graph, limit)
        return list(plan.actions)

    async def route_pull_request(self, event: PullRequestEvent) -> List[Action]:
        kind = event.kind
        if kind == PullRequestEventKind.COMMENTED:
            return self._route_comment(event)

        pr = event.pull_request
        try:
            rc = await self.ctx.policies.get_repository_policy(pr.repository.id)
        except ConfigurationError as e:
            logger.error(
                "Error getting repository policy for repo %s, dropping %s event: %s",
                pr.repository.id,
                kind.name,
                e,
            )
            return []

        if kind in (PullRequestEventKind.OPENED, PullRequestEventKind.RESCOPED):
            return await self._route_verify(event, rc)
        if kind == PullRequestEventKind.MERGED:
            return self._route_merge(event, rc)
        raise MalformedEventError(f"Unknown pull request event kind: {kind!r}")

    async def _route_verify(
        self, event: PullRequestEvent, rc: RepositoryPolicy
    ) -> List[Action]:
        pr = event.pull_request
        if not rc.ci_enabled or not rc.is_enabled(JobKind.VERIFY_PR):
            logger.debug("Pull request %s ignored, VERIFY_PR not enabled", pr.id)
            return []
        if not rc.matches_verify(pr.to_ref.id):
            logger.debug(
                "Pull request %s ignored, branch %s doesn't match verify regex",
                pr.id,
                pr.to_ref.id,
            )
            return []

        key = MetadataKey.for_pull_request(pr)
        if rc.rebuild_on_target_update:
            prm = await self.ctx.store.get_or_create(key)
            already_started = prm.build_started
        else:
            rows = await self.ctx.store.list_for_source(
                pr.repository.id, pr.id, pr.from_sha
            )
            already_started = any(row.build_started for row in rows)

        if already_started:
            logger.debug(
                "Verify build for pull request %s (%s into %s) already started",
                pr.id,
                pr.from_sha,
                pr.to_sha,
            )
            return []

        return [
            TriggerBuild(job_kind=JobKind.VERIFY_PR, commit=pr.to_sha, pull_request=pr),
            UpdateMetadata(key=key, build_started=True),
        ]

    def _route_comment(self, event: PullRequestEvent) -> List[Action]:
        text = event.comment_text or ""
        if self.ctx.override_marker not in text:
            return []
        logger.info("Pull request %s override set to true", event.pull_request.id)
        key = MetadataKey.for_pull_request(event.pull_request)
        return [UpdateMetadata(key=key, override=True)]

    def _route_merge(
        self, event: PullRequestEvent, rc: RepositoryPolicy
    ) -> List[Action]:
        pr = event.pull_request
        if not rc.ci_enabled:
            return []
        if event.merge_commit is None:
            logger.warning("Merged pull request %s carries no merge commit", pr.id)
            return []

        target = pr.to_ref.id
        if rc.matches_publish(target):
            kind = JobKind.PUBLISH
        elif rc.matches_verify(target) and rc.is_enabled(JobKind.VERIFY_COMMIT):
            kind = JobKind.VERIFY_COMMIT
        else:
            return []
        return [TriggerBuild(job_kind=kind, commit=event.merge_commit)]

    def route_build_report(self, report: BuildStatusReport) -> List[Action]:
        """Move a pull request version out of build_started."""
        if not report.is_pull_request_build:
            return []

        # the merged source commit is the row's from_sha, the built target its to_sha
        key = MetadataKey(
            repo_id=report.repository.id,
            pull_request_id=report.pull_request_id,
            from_sha=report.merge_head,
            to_sha=report.build_head,
        )
        state = report.state
        if state == BuildState.SUCCESSFUL:
            return [UpdateMetadata(key=key, success=True, failed=False)]
        if state == BuildState.INPROGRESS:
            return [UpdateMetadata(key=key, build_started=True)]
        if state == BuildState.FAILED:
            return [UpdateMetadata(key=key, success=False, failed=True)]
        raise MalformedEventError(f"Unknown build state: {state!r}")


def _repository_of(event: Event) -> RepositoryRef:
    if isinstance(event, PullRequestEvent):
        return event.pull_request.repository
    return event.repository
