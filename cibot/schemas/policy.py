"""
Repository and Jenkins server policy models.

Parsed from the policy YAML, not database tables. Policies are frozen: one
decision always sees a single, consistent snapshot.
"""

import re
from enum import Enum
from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobKind(str, Enum):
    """Kinds of Jenkins jobs cibot can start. Values are the Jenkins job suffixes."""

    VERIFY_COMMIT = "verification"
    VERIFY_PR = "verify_pr"
    PUBLISH = "publish"

    @classmethod
    def parse(cls, value: str) -> "JobKind":
        """Accept either the enum name or the Jenkins suffix, case-insensitively."""
        lowered = value.strip().lower()
        for kind in cls:
            if lowered in (kind.value, kind.name.lower()):
                return kind
        raise ValueError(f"Unknown job kind: {value!r}")


class RepositoryRef(BaseModel):
    """Identity of a Bitbucket repository."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Bitbucket internal repository id.")
    project_key: str = Field(description="Project key, e.g. 'CORE'.")
    slug: str = Field(description="Repository slug, e.g. 'widgets'.")

    def job_name(self, kind: JobKind) -> str:
        # Jenkins lower-cases job names, so we must do the same
        return f"{self.project_key}_{self.slug}_{kind.value}".lower()


def _matches(pattern: str, ref_id: str) -> bool:
    return re.fullmatch(pattern, ref_id) is not None


class RepositoryPolicy(BaseModel):
    """
    Per-repository CI policy.

    Branch patterns are full-match regular expressions over the complete ref id
    (e.g. ``refs/heads/master``).
    """

    model_config = ConfigDict(frozen=True)

    ci_enabled: bool = Field(default=False)
    verify_branch_regex: str = Field(default="empty")
    publish_branch_regex: str = Field(default="empty")
    max_verify_chain: int = Field(default=0, ge=0, description="0 means unlimited.")
    rebuild_on_target_update: bool = Field(default=True)
    strict_verify_mode: bool = Field(default=False)
    enabled_job_kinds: FrozenSet[JobKind] = Field(default_factory=frozenset)
    jenkins_server: str = Field(default="default")

    @field_validator("verify_branch_regex", "publish_branch_regex")
    @classmethod
    def check_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Invalid branch pattern {value!r}: {e}") from e
        return value

    def is_enabled(self, kind: JobKind) -> bool:
        return kind in self.enabled_job_kinds

    def matches_verify(self, ref_id: str) -> bool:
        return _matches(self.verify_branch_regex, ref_id)

    def matches_publish(self, ref_id: str) -> bool:
        return _matches(self.publish_branch_regex, ref_id)


class ServerPolicy(BaseModel):
    """A Jenkins server a repository can be bound to."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="default")
    url: str = Field(default="http://localhost:8080")
    username: str = Field(default="")
    password: str = Field(default="")
    max_verify_chain: int = Field(default=0, ge=0, description="0 means unlimited.")
