"""Bitbucket webhook handling: payload parsing and event processing."""

import json

from fastapi import HTTPException

from cibot.core.config import settings
from cibot.core.exceptions import CibotError, MalformedEventError
from cibot.core.logging import get_logger
from cibot.schemas.actions import TriggerBuild
from cibot.services.builds.context import BuildContext
from cibot.services.builds.event_router import EventRouter
from cibot.services.webhooks.parsing import parse_webhook
from cibot.services.webhooks.security import verify_signature

logger = get_logger(__name__)


async def handle_stash_webhook(
    ctx: BuildContext, event_key: str, raw_body: bytes, signature_header: str
) -> dict:
    """
    Process a Bitbucket webhook: parse payload and route by event key.

    - Verifies the HMAC SHA-256 signature when a webhook secret is configured.
    - repo:refs_changed and pr:* events go through the Event Router and every
      resulting build is started before the response is sent.
    - Other events: logged and ignored.

    Args:
        ctx: Collaborators for this request.
        event_key: The X-Event-Key header value (e.g. "repo:refs_changed").
        raw_body: The raw body bytes for signature verification.
        signature_header: The X-Hub-Signature header.

    Returns:
        A dict to be returned as the JSON response.
    """
    # 1. Verify Signature
    if settings.WEBHOOK_SECRET and not verify_signature(
        raw_body, settings.WEBHOOK_SECRET, signature_header
    ):
        raise HTTPException(status_code=403, detail="Invalid signature")

    # 2. Parse Payload
    try:
        payload = json.loads(raw_body) if raw_body else {}
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON body") from None

    try:
        event = parse_webhook(event_key, payload)
    except MalformedEventError as e:
        logger.error("Malformed %s webhook: %s", event_key, e)
        raise HTTPException(status_code=400, detail=str(e)) from e

    if event is None:
        logger.info("Bitbucket webhook received: %s", event_key)
        return {"message": "Event ignored", "event": event_key}

    logger.info("Processing %s event", event_key)
    try:
        actions = await EventRouter(ctx).handle(event)
    except MalformedEventError as e:
        logger.error("Malformed %s event: %s", event_key, e)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except CibotError as e:
        logger.error("Processing %s event failed: %s", event_key, e, exc_info=True)
        raise HTTPException(
            status_code=502, detail=f"Event processing failed: {str(e)}"
        ) from e

    builds = [
        {"job_kind": a.job_kind.name, "commit": a.commit}
        for a in actions
        if isinstance(a, TriggerBuild)
    ]
    return {"message": "Event processed", "event": event_key, "builds": builds}
