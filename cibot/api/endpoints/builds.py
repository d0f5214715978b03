from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from cibot.core.exceptions import (
    CibotError,
    ConfigurationError,
    MalformedEventError,
)
from cibot.core.logging import get_logger
from cibot.dependencies.build_context import BuildContextDep
from cibot.schemas.events import BuildState, BuildStatusReport
from cibot.schemas.policy import JobKind
from cibot.services.builds.context import BuildContext
from cibot.services.builds.reporting import report_build_status
from cibot.services.builds.trigger import trigger_build

logger = get_logger(__name__)

router = APIRouter()


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise HTTPException(
            status_code=400, detail=f"Unable to parse {name} {value!r}"
        ) from None


def _parse_job_kind(value: str) -> JobKind:
    try:
        return JobKind.parse(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


async def _report(
    ctx: BuildContext,
    repo_id: int,
    job_kind: str,
    state: str,
    build_number: str,
    build_head: str,
    merge_head: Optional[str] = None,
    pull_request_id: Optional[str] = None,
) -> dict:
    kind = _parse_job_kind(job_kind)
    try:
        build_state = BuildState.parse(state)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    number = _parse_int("build number", build_number)
    pr_id = (
        _parse_int("pull request id", pull_request_id)
        if pull_request_id is not None
        else None
    )

    try:
        repo = await ctx.policies.get_repository(repo_id)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    try:
        report = BuildStatusReport(
            repository=repo,
            job_kind=kind,
            state=build_state,
            build_number=number,
            build_head=build_head,
            merge_head=merge_head,
            pull_request_id=pr_id,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    try:
        actions = await report_build_status(ctx, report)
    except MalformedEventError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except CibotError as e:
        logger.error("Recording build %s for repo %s failed: %s", number, repo_id, e)
        raise HTTPException(status_code=502, detail=str(e)) from e

    return {
        "message": f"Status updated to {build_state.value} for {build_head}",
        "updates": len(actions),
    }


@router.post("/report/{repo_id}/{job_kind}/{state}/{build_number}/{build_head}")
async def report_commit_build(
    repo_id: int,
    job_kind: str,
    state: str,
    build_number: str,
    build_head: str,
    ctx: BuildContextDep,
):
    """Record the state of a commit build reported by Jenkins."""
    return await _report(ctx, repo_id, job_kind, state, build_number, build_head)


@router.post(
    "/report/{repo_id}/{job_kind}/{state}/{build_number}/{build_head}"
    "/{merge_head}/{pull_request_id}"
)
async def report_pull_request_build(
    repo_id: int,
    job_kind: str,
    state: str,
    build_number: str,
    build_head: str,
    merge_head: str,
    pull_request_id: str,
    ctx: BuildContextDep,
):
    """Record the state of a pull request build reported by Jenkins."""
    return await _report(
        ctx,
        repo_id,
        job_kind,
        state,
        build_number,
        build_head,
        merge_head,
        pull_request_id,
    )


async def _trigger(
    ctx: BuildContext,
    repo_id: int,
    job_kind: str,
    build_head: str,
    merge_head: Optional[str] = None,
    pull_request_id: Optional[str] = None,
) -> dict:
    kind = _parse_job_kind(job_kind)
    pr_id = (
        _parse_int("pull request id", pull_request_id)
        if pull_request_id is not None
        else None
    )
    try:
        action = await trigger_build(ctx, repo_id, kind, build_head, merge_head, pr_id)
    except MalformedEventError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except CibotError as e:
        logger.error("Triggering %s build for repo %s failed: %s", kind.name, repo_id, e)
        raise HTTPException(status_code=502, detail=str(e)) from e

    return {
        "message": f"Build triggered for {action.commit}",
        "job_kind": action.job_kind.name,
        "commit": action.commit,
    }


@router.api_route("/trigger/{repo_id}/{job_kind}/{build_head}", methods=["GET", "POST"])
async def trigger_commit_build(
    repo_id: int, job_kind: str, build_head: str, ctx: BuildContextDep
):
    """Start a build of one commit."""
    return await _trigger(ctx, repo_id, job_kind, build_head)


@router.api_route(
    "/trigger/{repo_id}/{job_kind}/{build_head}/{merge_head}/{pull_request_id}",
    methods=["GET", "POST"],
)
async def trigger_pull_request_build(
    repo_id: int,
    job_kind: str,
    build_head: str,
    merge_head: str,
    pull_request_id: str,
    ctx: BuildContextDep,
):
    """Start a build of a pull request at its current heads."""
    return await _trigger(ctx, repo_id, job_kind, build_head, merge_head, pull_request_id)
