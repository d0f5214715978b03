"""
Build status reporting.

Jenkins calls back with the state of every build it runs. The pull request
metadata is updated first, so that anything reacting to the comment we post
afterwards already sees the new state; then the result is published back to
Bitbucket (a commit build status, or a pull request comment for PR builds).
"""

from datetime import datetime, timezone
from typing import List, Optional

from cibot.core.config import settings
from cibot.core.exceptions import CibotError
from cibot.core.logging import get_logger
from cibot.schemas.actions import Action
from cibot.schemas.events import BuildState, BuildStatusReport
from cibot.schemas.policy import JobKind, RepositoryRef
from cibot.services.builds.context import BuildContext
from cibot.services.builds.event_router import EventRouter

logger = get_logger(__name__)

SHORT_HASH_LENGTH = 4


def commit_url(repo: RepositoryRef, commit: str) -> str:
    return (
        f"{settings.STASH_BASE_URL.rstrip('/')}/projects/{repo.project_key}"
        f"/repos/{repo.slug}/commits/{commit}"
    )


def trigger_url(
    repo: RepositoryRef,
    job_kind: JobKind,
    build_head: str,
    merge_head: Optional[str] = None,
    pull_request_id: Optional[int] = None,
) -> str:
    url = (
        f"{settings.PUBLIC_BASE_URL.rstrip('/')}/api/v1/builds/trigger"
        f"/{repo.id}/{job_kind.value}/{build_head}"
    )
    if merge_head and pull_request_id is not None:
        url += f"/{merge_head}/{pull_request_id}"
    return url


def jenkins_build_url(server_url: str, repo: RepositoryRef, report: BuildStatusReport) -> str:
    return (
        f"{server_url.rstrip('/')}/job/{repo.job_name(report.job_kind)}"
        f"/{report.build_number}"
    )


def pull_request_comment(report: BuildStatusReport, build_url: str) -> str:
    """
    Markdown summary of a pull request build.

    ``merge_head`` is the source commit being merged into ``build_head``.
    """
    repo = report.repository
    merge_link = (
        f"[{report.merge_head[:SHORT_HASH_LENGTH]}]"
        f"({commit_url(repo, report.merge_head)})"
    )
    build_link = (
        f"[{report.build_head[:SHORT_HASH_LENGTH]}]"
        f"({commit_url(repo, report.build_head)})"
    )
    text = (
        f"*[Build #{report.build_number}]({build_url}) "
        f"(merging {merge_link} into {build_link}) "
    )
    if report.state == BuildState.INPROGRESS:
        return text + "is in progress...*"
    if report.state == BuildState.SUCCESSFUL:
        return text + "has **passed &#x2713;**.*"
    retrigger = trigger_url(
        repo, report.job_kind, report.build_head, report.merge_head, report.pull_request_id
    )
    return (
        text
        + "has* **FAILED &#x2716;**. "
        + f"([*Retrigger this build* &#x27f3;]({retrigger}) *or* "
        + f"[*view console output* &#x2630;]({build_url}/console).)"
    )


async def report_build_status(
    ctx: BuildContext, report: BuildStatusReport
) -> List[Action]:
    """
    Record a Jenkins build report.

    Metadata updates are applied and their failures propagate. Posting the
    result back to Bitbucket is best-effort.

    Returns:
        The metadata actions that were applied.
    """
    actions = await EventRouter(ctx).handle(report)

    if ctx.notifier is None:
        return actions

    repo = report.repository
    try:
        server = await ctx.policies.get_server_policy(repo.id)
        build_url = jenkins_build_url(server.url, repo, report)
        if report.is_pull_request_build:
            await ctx.notifier.post_pull_request_comment(
                repo, report.pull_request_id, pull_request_comment(report, build_url)
            )
        else:
            key = repo.job_name(report.job_kind)
            name = f"{key} (build {report.build_number})"
            now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S %Z")
            await ctx.notifier.post_build_status(
                commit=report.build_head,
                state=report.state.value,
                key=key,
                name=name,
                url=build_url,
                description=f"Build {report.build_number} {report.state.value.lower()} at {now}",
            )
    except CibotError as e:
        logger.error(
            "Failed to publish build %s result for repo %s: %s",
            report.build_number,
            repo.id,
            e,
        )
    return actions
