"""
Actions produced by the Commit Selector and the Event Router.

Deciding and doing are kept apart: routers return these values and the
executor performs them, in order, within the same request.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from cibot.schemas.events import PullRequestRef
from cibot.schemas.policy import JobKind


class MetadataKey(BaseModel):
    """Identity of one pull request metadata row."""

    model_config = ConfigDict(frozen=True)

    repo_id: int
    pull_request_id: int
    from_sha: str
    to_sha: str

    @classmethod
    def for_pull_request(cls, pr: PullRequestRef) -> "MetadataKey":
        return cls(
            repo_id=pr.repository.id,
            pull_request_id=pr.id,
            from_sha=pr.from_sha,
            to_sha=pr.to_sha,
        )


class TriggerBuild(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_kind: JobKind
    commit: str
    pull_request: Optional[PullRequestRef] = Field(
        default=None, description="Merge context for VERIFY_PR builds."
    )


class UpdateMetadata(BaseModel):
    """Partial update: a field left as None is not written."""

    model_config = ConfigDict(frozen=True)

    key: MetadataKey
    build_started: Optional[bool] = None
    success: Optional[bool] = None
    failed: Optional[bool] = None
    override: Optional[bool] = None

    def fields(self) -> dict:
        return {
            name: value
            for name, value in (
                ("build_started", self.build_started),
                ("success", self.success),
                ("failed", self.failed),
                ("override", self.override),
            )
            if value is not None
        }


Action = Union[TriggerBuild, UpdateMetadata]


class PushPlan(BaseModel):
    """Outcome of the Commit Selector for one push."""

    published: List[str] = Field(default_factory=list)
    verify: List[str] = Field(default_factory=list, description="Oldest first.")
    actions: List[TriggerBuild] = Field(default_factory=list)


class MergeDecision(BaseModel):
    allowed: bool
    summary: str = ""
    detail: str = ""
    commit: Optional[str] = Field(
        default=None, description="Commit lacking a green build (strict mode)."
    )

    @classmethod
    def allow(cls) -> "MergeDecision":
        return cls(allowed=True)

    @classmethod
    def veto(
        cls, summary: str, detail: str = "", commit: Optional[str] = None
    ) -> "MergeDecision":
        return cls(allowed=False, summary=summary, detail=detail, commit=commit)
