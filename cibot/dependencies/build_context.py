"""
cibot Build Context Dependencies
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from cibot.core.config import settings
from cibot.dependencies.database import get_db
from cibot.integrations.git import GitCommitGraph
from cibot.integrations.jenkins import JenkinsDispatcher
from cibot.integrations.stash import StashClient
from cibot.services.builds.context import BuildContext
from cibot.services.builds.metadata_store import SqlMetadataStore
from cibot.services.policy import YamlPolicyProvider

SessionDep = Annotated[AsyncSession, Depends(get_db)]


@lru_cache(maxsize=1)
def get_policy_provider() -> YamlPolicyProvider:
    return YamlPolicyProvider(settings.POLICY_PATH)


def get_build_context(session: SessionDep) -> BuildContext:
    """Get build context (Dependency Injection)."""
    policies = get_policy_provider()
    stash = StashClient(settings.STASH_BASE_URL, token=settings.STASH_TOKEN)
    return BuildContext(
        policies=policies,
        graph=GitCommitGraph(settings.GIT_MIRROR_ROOT),
        dispatcher=JenkinsDispatcher(policies),
        store=SqlMetadataStore(session),
        summaries=stash,
        notifier=stash,
        pull_requests=stash,
    )


BuildContextDep = Annotated[BuildContext, Depends(get_build_context)]
