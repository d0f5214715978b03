"""
Policy loading utilities.

The policy file maps Bitbucket repository ids to their CI policy and names the
Jenkins servers they are bound to::

    servers:
      default:
        url: https://jenkins.example.com
        username: cibot
        password: secret
        max_verify_chain: 0
    repositories:
      42:
        project_key: CORE
        slug: widgets
        ci_enabled: true
        verify_branch_regex: "refs/heads/.*"
        publish_branch_regex: "refs/heads/master"
        max_verify_chain: 10
        enabled_job_kinds: [verify_commit, verify_pr, publish]
"""

from functools import lru_cache
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from cibot.core.exceptions import ConfigurationError
from cibot.core.logging import get_logger
from cibot.schemas.policy import JobKind, RepositoryPolicy, RepositoryRef, ServerPolicy

logger = get_logger(__name__)


@lru_cache(maxsize=8)
def load_policy(policy_path: str) -> Dict[str, Any]:
    """
    Load policy from YAML file.

    Args:
        policy_path: Path to the policy YAML file.

    Returns:
        Dictionary containing the policy.

    Raises:
        ConfigurationError: If the file is missing or is not valid YAML.
    """
    try:
        with open(policy_path, "r", encoding="utf-8") as f:
            policy = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Unable to load policy {policy_path}: {e}") from e
    if not isinstance(policy, dict):
        raise ConfigurationError(f"Policy {policy_path} must be a mapping")
    return policy


def _repository_section(policy: Dict[str, Any], repo_id: int) -> Dict[str, Any]:
    repositories = policy.get("repositories") or {}
    # YAML keys may be ints or strings depending on quoting
    section = repositories.get(repo_id, repositories.get(str(repo_id)))
    return dict(section or {})


def parse_repository_policy(policy: Dict[str, Any], repo_id: int) -> RepositoryPolicy:
    """
    Build the RepositoryPolicy for a repository.

    Repositories absent from the file get the defaults: CI disabled and every
    job kind disabled.
    """
    section = _repository_section(policy, repo_id)
    section.pop("project_key", None)
    section.pop("slug", None)
    try:
        kinds = frozenset(
            JobKind.parse(kind) for kind in section.pop("enabled_job_kinds", []) or []
        )
        return RepositoryPolicy(enabled_job_kinds=kinds, **section)
    except (ValidationError, ValueError, TypeError) as e:
        raise ConfigurationError(
            f"Invalid policy for repository {repo_id}: {e}"
        ) from e


def parse_repository_ref(policy: Dict[str, Any], repo_id: int) -> RepositoryRef:
    section = _repository_section(policy, repo_id)
    if "project_key" not in section or "slug" not in section:
        raise ConfigurationError(f"Repository {repo_id} has no project_key/slug")
    return RepositoryRef(
        id=repo_id, project_key=section["project_key"], slug=section["slug"]
    )


def parse_server_policy(policy: Dict[str, Any], name: str) -> ServerPolicy:
    servers = policy.get("servers") or {}
    if name not in servers:
        raise ConfigurationError(f"Unknown Jenkins server: {name}")
    try:
        return ServerPolicy(name=name, **(servers[name] or {}))
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid Jenkins server {name}: {e}") from e


class YamlPolicyProvider:
    """
    Policy provider backed by the policy YAML file.

    The file is re-read only when ``reload()`` is called; every lookup
    returns frozen models so one decision sees one consistent snapshot.
    """

    def __init__(self, policy_path: str):
        self.policy_path = policy_path

    def reload(self) -> None:
        load_policy.cache_clear()

    def _policy(self) -> Dict[str, Any]:
        return load_policy(self.policy_path)

    async def get_repository_policy(self, repo_id: int) -> RepositoryPolicy:
        return parse_repository_policy(self._policy(), repo_id)

    async def get_server_policy(self, repo_id: int) -> ServerPolicy:
        rc = await self.get_repository_policy(repo_id)
        return parse_server_policy(self._policy(), rc.jenkins_server)

    async def get_repository(self, repo_id: int) -> RepositoryRef:
        return parse_repository_ref(self._policy(), repo_id)
