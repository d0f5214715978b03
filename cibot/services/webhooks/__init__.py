"""
Bitbucket webhook intake.
"""

from cibot.services.webhooks.parsing import (
    parse_pull_request,
    parse_repository,
    parse_webhook,
)
from cibot.services.webhooks.security import verify_signature
from cibot.services.webhooks.webhook_service import handle_stash_webhook

__all__ = [
    "handle_stash_webhook",
    "parse_pull_request",
    "parse_repository",
    "parse_webhook",
    "verify_signature",
]
