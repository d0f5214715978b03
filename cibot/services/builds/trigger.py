"""
Manual build triggers (the "retrigger" links posted on failed builds).
"""

from typing import Optional

from cibot.core.exceptions import ConfigurationError, MalformedEventError
from cibot.core.logging import get_logger
from cibot.schemas.actions import MetadataKey, TriggerBuild, UpdateMetadata
from cibot.schemas.events import validate_commit_id
from cibot.schemas.policy import JobKind
from cibot.services.builds.context import BuildContext
from cibot.services.builds.event_router import EventRouter

logger = get_logger(__name__)


async def trigger_build(
    ctx: BuildContext,
    repo_id: int,
    job_kind: JobKind,
    build_head: str,
    merge_head: Optional[str] = None,
    pull_request_id: Optional[int] = None,
) -> TriggerBuild:
    """
    Start one build by hand.

    Without a pull request the build runs on ``build_head``. With one, the
    pull request is looked up and built at its current heads, which may be
    newer than the heads in the retrigger link.

    Raises:
        MalformedEventError: Bad commit id, or a pull request that cannot be found.
        ConfigurationError: Unknown repository.
        DispatchError: Jenkins refused the build.
    """
    try:
        build_head = validate_commit_id(build_head)
        if merge_head is not None:
            merge_head = validate_commit_id(merge_head)
    except ValueError as e:
        raise MalformedEventError(str(e)) from e

    repo = await ctx.policies.get_repository(repo_id)

    if merge_head is None or pull_request_id is None:
        action = TriggerBuild(job_kind=job_kind, commit=build_head)
        await EventRouter(ctx).execute(repo, [action])
        return action

    if ctx.pull_requests is None:
        raise ConfigurationError("No pull request source configured")
    pr = await ctx.pull_requests.get_pull_request(repo, pull_request_id)
    if (pr.from_sha, pr.to_sha) != (merge_head, build_head):
        logger.info(
            "Pull request %s moved since the link was built, building %s into %s",
            pr.id,
            pr.from_sha,
            pr.to_sha,
        )

    action = TriggerBuild(job_kind=job_kind, commit=pr.to_sha, pull_request=pr)
    await EventRouter(ctx).execute(
        repo,
        [action, UpdateMetadata(key=MetadataKey.for_pull_request(pr), build_started=True)],
    )
    return action
