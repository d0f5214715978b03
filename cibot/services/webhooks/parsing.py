"""
Bitbucket Server webhook payload parsing.

Turns raw webhook JSON into the tagged events handled by the Event Router.
Anything that cannot be interpreted raises MalformedEventError.
"""

from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from cibot.core.exceptions import MalformedEventError
from cibot.schemas.events import (
    PullRequestEvent,
    PullRequestEventKind,
    PullRequestRef,
    PullRequestSide,
    PushEvent,
    RefChange,
)
from cibot.schemas.policy import RepositoryRef

PUSH_EVENT_KEYS = {"repo:refs_changed"}

PULL_REQUEST_EVENT_KEYS = {
    "pr:opened": PullRequestEventKind.OPENED,
    "pr:from_ref_updated": PullRequestEventKind.RESCOPED,
    "pr:modified": PullRequestEventKind.RESCOPED,
    "pr:comment:added": PullRequestEventKind.COMMENTED,
    "pr:merged": PullRequestEventKind.MERGED,
}


def parse_repository(data: Optional[Dict[str, Any]]) -> RepositoryRef:
    data = data or {}
    try:
        return RepositoryRef(
            id=data["id"],
            project_key=(data.get("project") or {})["key"],
            slug=data["slug"],
        )
    except (KeyError, TypeError, AttributeError, ValidationError) as e:
        raise MalformedEventError(f"Unable to parse repository: {e}") from e


def _parse_side(data: Dict[str, Any]) -> PullRequestSide:
    return PullRequestSide(
        id=data["id"],
        display_id=data.get("displayId") or data["id"].rsplit("/", 1)[-1],
        latest_commit=data.get("latestCommit") or data["latestChangeset"],
    )


def parse_pull_request(
    data: Optional[Dict[str, Any]], repository: Optional[RepositoryRef] = None
) -> PullRequestRef:
    """
    Parse a pull request object.

    The target repository is taken from ``toRef.repository`` unless given.
    """
    data = data or {}
    try:
        to_ref = data["toRef"]
        if repository is None:
            repository = parse_repository(to_ref.get("repository"))
        return PullRequestRef(
            repository=repository,
            id=data["id"],
            from_ref=_parse_side(data["fromRef"]),
            to_ref=_parse_side(to_ref),
        )
    except (KeyError, TypeError, AttributeError, ValidationError) as e:
        raise MalformedEventError(f"Unable to parse pull request: {e}") from e


def parse_push_event(payload: Dict[str, Any]) -> PushEvent:
    repository = parse_repository(payload.get("repository"))
    changes = []
    for change in payload.get("changes") or []:
        try:
            changes.append(
                RefChange(
                    ref_id=change.get("refId") or change["ref"]["id"],
                    type=change["type"],
                    from_hash=change["fromHash"],
                    to_hash=change["toHash"],
                )
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise MalformedEventError(f"Unable to parse ref change {change}: {e}") from e
    return PushEvent(repository=repository, changes=changes)


def parse_pull_request_event(
    kind: PullRequestEventKind, payload: Dict[str, Any]
) -> PullRequestEvent:
    pull_request_data = payload.get("pullRequest") or {}
    pr = parse_pull_request(pull_request_data)
    comment_text = None
    merge_commit = None
    if kind == PullRequestEventKind.COMMENTED:
        comment_text = (payload.get("comment") or {}).get("text", "")
    elif kind == PullRequestEventKind.MERGED:
        properties = pull_request_data.get("properties") or {}
        merge_commit = (properties.get("mergeCommit") or {}).get("id")
    try:
        return PullRequestEvent(
            kind=kind,
            pull_request=pr,
            comment_text=comment_text,
            merge_commit=merge_commit,
        )
    except ValidationError as e:
        raise MalformedEventError(f"Unable to parse pull request event: {e}") from e


def parse_webhook(
    event_key: str, payload: Dict[str, Any]
) -> Optional[Union[PushEvent, PullRequestEvent]]:
    """
    Parse a webhook into an event.

    Args:
        event_key: The X-Event-Key header value (e.g. "repo:refs_changed").
        payload: Decoded JSON body.

    Returns:
        The event, or None for event keys cibot does not act on.

    Raises:
        MalformedEventError: If the body of a handled event is not a JSON object
            or lacks required fields.
    """
    if not isinstance(payload, dict):
        if event_key in PUSH_EVENT_KEYS or event_key in PULL_REQUEST_EVENT_KEYS:
            raise MalformedEventError("Webhook payload must be a JSON object")
        return None
    if event_key in PUSH_EVENT_KEYS:
        return parse_push_event(payload)
    kind = PULL_REQUEST_EVENT_KEYS.get(event_key)
    if kind is not None:
        return parse_pull_request_event(kind, payload)
    return None
