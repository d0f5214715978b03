from fastapi import APIRouter, Header, Request

from cibot.dependencies.build_context import BuildContextDep
from cibot.services.webhooks import handle_stash_webhook

router = APIRouter()


@router.post("/webhook")
async def handle_webhook(
    request: Request,
    ctx: BuildContextDep,
    x_event_key: str = Header(...),
    x_hub_signature: str = Header(""),
):
    """
    Handle Bitbucket Server webhook requests.

    Args:
        request: The incoming HTTP request.
        ctx: Collaborators used to process the event.
        x_event_key: The Bitbucket event type (e.g. 'repo:refs_changed', 'pr:opened').
        x_hub_signature: HMAC SHA-256 signature of the body, when a secret is set.

    Returns:
        A JSON response listing the builds that were started.
    """
    raw_body = await request.body()
    return await handle_stash_webhook(ctx, x_event_key, raw_body, x_hub_signature)
