"""
Schema and DTO package.
"""

from cibot.schemas.actions import (
    Action,
    MergeDecision,
    MetadataKey,
    PushPlan,
    TriggerBuild,
    UpdateMetadata,
)
from cibot.schemas.events import (
    BuildState,
    BuildStatusReport,
    Event,
    PullRequestEvent,
    PullRequestEventKind,
    PullRequestRef,
    PullRequestSide,
    PushEvent,
    RefChange,
    RefChangeType,
)
from cibot.schemas.policy import JobKind, RepositoryPolicy, RepositoryRef, ServerPolicy

__all__ = [
    "Action",
    "BuildState",
    "BuildStatusReport",
    "Event",
    "JobKind",
    "MergeDecision",
    "MetadataKey",
    "PullRequestEvent",
    "PullRequestEventKind",
    "PullRequestRef",
    "PullRequestSide",
    "PushEvent",
    "PushPlan",
    "RefChange",
    "RefChangeType",
    "RepositoryPolicy",
    "RepositoryRef",
    "ServerPolicy",
    "TriggerBuild",
    "UpdateMetadata",
]
