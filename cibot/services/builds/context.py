"""
Runtime context for the build trigger engine.

Defines the collaborators injected into the Event Router, the Merge Gate and
the build report handling.
"""

from dataclasses import dataclass, field
from typing import Optional

from cibot.core.config import settings
from cibot.services.builds.contracts import (
    BuildDispatcher,
    BuildNotifier,
    BuildSummaryProvider,
    CommitGraph,
    MetadataStore,
    PolicyProvider,
    PullRequestSource,
)


@dataclass
class BuildContext:
    """Collaborators for one request.

    Attributes:
        policies: Repository and server policy lookup.
        graph: Commit graph accessor.
        dispatcher: Starts Jenkins builds.
        store: Pull request metadata store.
        summaries: Per-commit build summaries, strict mode only.
        notifier: Posts build statuses and comments back to Bitbucket.
        pull_requests: Looks up pull requests for manual retriggers.
        override_marker: Comment text overriding the green build requirement.
    """

    policies: PolicyProvider
    graph: CommitGraph
    dispatcher: BuildDispatcher
    store: MetadataStore
    summaries: Optional[BuildSummaryProvider] = None
    notifier: Optional[BuildNotifier] = None
    pull_requests: Optional[PullRequestSource] = None
    override_marker: str = field(default_factory=lambda: settings.OVERRIDE_MARKER)
