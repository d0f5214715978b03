"""
Pull Request Metadata Model

Build state of one version of a pull request's diff.
Key: (repo_id, pull_request_id, from_sha, to_sha)
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class PullRequestMetadata(SQLModel, table=True):
    """
    Pull request metadata table.

    One row per (repository, pull request, source commit, target commit).
    Rows are created on first lookup and never deleted; a new push to either
    side of the pull request produces a new row rather than rewriting an old one.
    """

    __tablename__ = "pull_request_metadata"

    id: Optional[int] = Field(default=None, primary_key=True)
    repo_id: int = Field(index=True, description="Bitbucket repository id")
    pull_request_id: int = Field(index=True, description="Pull request id")
    from_sha: str = Field(index=True, description="Latest commit of the source ref")
    to_sha: str = Field(description="Latest commit of the target ref")

    build_started: bool = Field(default=False)
    success: bool = Field(default=False)
    failed: bool = Field(default=False)
    override: bool = Field(default=False)

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    __table_args__ = (
        UniqueConstraint(
            "repo_id",
            "pull_request_id",
            "from_sha",
            "to_sha",
            name="uq_pull_request_metadata",
        ),
    )
