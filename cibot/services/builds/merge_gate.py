"""
Merge gate for pull requests.

Mergeability is never stored; it is recomputed from the repository policy and
the pull request metadata every time a merge is attempted. Anything that
prevents evaluation vetoes the merge.
"""

from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from cibot.core.config import settings
from cibot.core.exceptions import CibotError, ConfigurationError
from cibot.core.logging import get_logger
from cibot.models.pull_request_metadata import PullRequestMetadata
from cibot.schemas.actions import MergeDecision, MetadataKey
from cibot.schemas.events import PullRequestRef
from cibot.schemas.policy import RepositoryPolicy
from cibot.services.builds.context import BuildContext
from cibot.services.builds.contracts import (
    BuildSummaryProvider,
    MetadataStore,
    PolicyProvider,
)

logger = get_logger(__name__)

GREEN_BUILD_REQUIRED = "Green build required to merge"


class MergeGate:
    """Decides whether a pull request may merge."""

    def __init__(
        self,
        policies: PolicyProvider,
        store: MetadataStore,
        summaries: Optional[BuildSummaryProvider] = None,
        override_marker: Optional[str] = None,
    ):
        self.policies = policies
        self.store = store
        self.summaries = summaries
        self.override_marker = override_marker or settings.OVERRIDE_MARKER

    @classmethod
    def from_context(cls, ctx: BuildContext) -> "MergeGate":
        return cls(ctx.policies, ctx.store, ctx.summaries, ctx.override_marker)

    async def check(self, pr: PullRequestRef) -> MergeDecision:
        """Look up the current policy and evaluate the pull request against it."""
        try:
            rc = await self.policies.get_repository_policy(pr.repository.id)
        except ConfigurationError as e:
            logger.error(
                "Unable to get repository policy for repo %s: %s", pr.repository.id, e
            )
            return MergeDecision.veto(
                "Unable to evaluate CI policy",
                "The repository configuration could not be read; try again later.",
            )
        return await self.evaluate(pr, rc)

    async def evaluate(self, pr: PullRequestRef, rc: RepositoryPolicy) -> MergeDecision:
        if not rc.ci_enabled:
            return MergeDecision.allow()

        if not rc.matches_verify(pr.to_ref.id):
            logger.debug(
                "Pull request %s ignored, branch %s doesn't match verify regex",
                pr.id,
                pr.to_ref.id,
            )
            return MergeDecision.allow()

        if rc.strict_verify_mode:
            veto = await self._check_every_commit(pr)
            if veto is not None:
                return veto

        try:
            rows = await self._relevant_metadata(pr, rc)
        except (CibotError, SQLAlchemyError) as e:
            logger.error("Unable to read build state of pull request %s: %s", pr.id, e)
            return MergeDecision.veto(
                "Unable to read build results",
                "The build state of this pull request could not be read; "
                "try again later.",
            )
        for prm in rows:
            logger.debug(
                "PRM %s: success %s override %s", prm.id, prm.success, prm.override
            )
            if prm.success or prm.override:
                return MergeDecision.allow()

        return MergeDecision.veto(
            GREEN_BUILD_REQUIRED,
            "Either retrigger the build so it succeeds, or add a comment with the "
            f"string '{self.override_marker}' to override the requirement",
        )

    async def _check_every_commit(self, pr: PullRequestRef) -> Optional[MergeDecision]:
        """Strict mode: every commit in the pull request needs a successful build."""
        if self.summaries is None:
            logger.error("Strict verify mode enabled without a build summary provider")
            return MergeDecision.veto(
                "Unable to verify pull request commits",
                "Build results for individual commits are not available.",
            )
        try:
            async for commit in self.summaries.iter_pull_request_commits(pr):
                summary = await self.summaries.build_summary(pr.repository, commit)
                if summary.successful == 0:
                    return MergeDecision.veto(
                        GREEN_BUILD_REQUIRED,
                        f"Commit {commit} has no successful build; strict verify "
                        "mode requires every commit to build green",
                        commit=commit,
                    )
        except CibotError as e:
            logger.error("Unable to check commits of pull request %s: %s", pr.id, e)
            return MergeDecision.veto(
                "Unable to verify pull request commits",
                "Build results for the commits of this pull request could not be read.",
            )
        return None

    async def _relevant_metadata(
        self, pr: PullRequestRef, rc: RepositoryPolicy
    ) -> List[PullRequestMetadata]:
        key = MetadataKey.for_pull_request(pr)
        if rc.rebuild_on_target_update:
            return [await self.store.get_or_create(key)]

        rows = await self.store.list_for_source(
            pr.repository.id, pr.id, pr.from_sha
        )
        if not rows:
            rows = [await self.store.get_or_create(key)]
        return rows
