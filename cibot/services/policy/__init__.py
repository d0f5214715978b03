"""
Policy module for the build trigger engine.
"""

from cibot.services.policy.loader import (
    YamlPolicyProvider,
    load_policy,
    parse_repository_policy,
    parse_repository_ref,
    parse_server_policy,
)

__all__ = [
    "YamlPolicyProvider",
    "load_policy",
    "parse_repository_policy",
    "parse_repository_ref",
    "parse_server_policy",
]
