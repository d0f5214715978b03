"""
Verify chain limiting.

Caps the number of newly introduced commits built per push so a large push
cannot flood the build farm.
"""

from typing import List

from cibot.core.exceptions import ConfigurationError
from cibot.core.logging import get_logger
from cibot.schemas.policy import RepositoryPolicy
from cibot.services.builds.contracts import PolicyProvider

logger = get_logger(__name__)


def resolve_verify_chain_limit(repo_limit: int, server_limit: int) -> int:
    """
    Combine repository and server limits. 0 means unlimited on either side.

    Examples:
        >>> resolve_verify_chain_limit(5, 0)
        5
        >>> resolve_verify_chain_limit(0, 7)
        7
        >>> resolve_verify_chain_limit(4, 9)
        4
    """
    if server_limit == 0:
        return repo_limit
    if repo_limit == 0:
        return server_limit
    return min(repo_limit, server_limit)


async def effective_verify_chain_limit(
    policies: PolicyProvider, repo_id: int, rc: RepositoryPolicy
) -> int:
    """Resolve the limit for a repository, falling back to the repository limit."""
    try:
        server = await policies.get_server_policy(repo_id)
    except ConfigurationError as e:
        logger.warning(
            "Unable to read server verify chain limit for repo %s, using repo limit %d: %s",
            repo_id,
            rc.max_verify_chain,
            e,
        )
        return rc.max_verify_chain
    return resolve_verify_chain_limit(rc.max_verify_chain, server.max_verify_chain)


def apply_chain_limit(commits: List[str], limit: int) -> List[str]:
    """Keep the ``limit`` most recent commits of an oldest-first list."""
    if limit == 0 or len(commits) <= limit:
        return list(commits)
    return list(commits[-limit:])
