"""
Inbound events handled by the build trigger engine.

Every webhook or Jenkins callback is parsed into one of these tagged values
before it reaches the Event Router.
"""

import re
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cibot.schemas.policy import JobKind, RepositoryRef

COMMIT_ID_PATTERN = re.compile(r"[0-9a-f]{40}")


def validate_commit_id(value: str) -> str:
    value = value.strip().lower()
    if not COMMIT_ID_PATTERN.fullmatch(value):
        raise ValueError(f"Not a 40-hex commit id: {value!r}")
    return value


class RefChangeType(str, Enum):
    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class RefChange(BaseModel):
    """One ref movement advertised by a push."""

    model_config = ConfigDict(frozen=True)

    ref_id: str = Field(description="Full ref id, e.g. refs/heads/master.")
    type: RefChangeType
    from_hash: str
    to_hash: str

    @field_validator("from_hash", "to_hash")
    @classmethod
    def check_hashes(cls, value: str) -> str:
        return validate_commit_id(value)


class PushEvent(BaseModel):
    repository: RepositoryRef
    changes: List[RefChange] = Field(default_factory=list)


class PullRequestSide(BaseModel):
    """One end (source or target) of a pull request."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Full ref id, e.g. refs/heads/feature.")
    display_id: str = Field(description="Short branch name, e.g. feature.")
    latest_commit: str

    @field_validator("latest_commit")
    @classmethod
    def check_commit(cls, value: str) -> str:
        return validate_commit_id(value)


class PullRequestRef(BaseModel):
    """A pull request as seen at the moment an event is processed."""

    model_config = ConfigDict(frozen=True)

    repository: RepositoryRef = Field(description="The target repository.")
    id: int
    from_ref: PullRequestSide
    to_ref: PullRequestSide

    @property
    def from_sha(self) -> str:
        return self.from_ref.latest_commit

    @property
    def to_sha(self) -> str:
        return self.to_ref.latest_commit


class PullRequestEventKind(str, Enum):
    OPENED = "OPENED"
    RESCOPED = "RESCOPED"
    COMMENTED = "COMMENTED"
    MERGED = "MERGED"


class PullRequestEvent(BaseModel):
    kind: PullRequestEventKind
    pull_request: PullRequestRef
    comment_text: Optional[str] = Field(
        default=None, description="Comment body, COMMENTED only."
    )
    merge_commit: Optional[str] = Field(
        default=None, description="Commit created by the merge, MERGED only."
    )


class BuildState(str, Enum):
    SUCCESSFUL = "SUCCESSFUL"
    INPROGRESS = "INPROGRESS"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: str) -> "BuildState":
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(
                "The state must be 'successful', 'failed', or 'inprogress'"
            ) from None


class BuildStatusReport(BaseModel):
    """
    Jenkins callback describing the state of one build.

    For pull request builds ``build_head`` is the target commit and
    ``merge_head`` the source commit merged into it.
    """

    repository: RepositoryRef
    job_kind: JobKind
    state: BuildState
    build_number: int
    build_head: str
    merge_head: Optional[str] = None
    pull_request_id: Optional[int] = None

    @field_validator("build_head", "merge_head")
    @classmethod
    def check_heads(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return validate_commit_id(value)

    @property
    def is_pull_request_build(self) -> bool:
        return self.merge_head is not None and self.pull_request_id is not None


Event = Union[PushEvent, PullRequestEvent, BuildStatusReport]
