from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException

from cibot.core.exceptions import MalformedEventError
from cibot.dependencies.build_context import BuildContextDep
from cibot.schemas.actions import MergeDecision
from cibot.services.builds.merge_gate import MergeGate
from cibot.services.webhooks.parsing import parse_pull_request

router = APIRouter()


@router.post("/merge-check", response_model=MergeDecision)
async def merge_check(ctx: BuildContextDep, pull_request: Dict[str, Any] = Body(...)):
    """
    Decide whether a pull request may be merged.

    The body is a Bitbucket pull request object, as found under
    ``pullRequest`` in webhook payloads.
    """
    try:
        pr = parse_pull_request(pull_request)
    except MalformedEventError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return await MergeGate.from_context(ctx).check(pr)
