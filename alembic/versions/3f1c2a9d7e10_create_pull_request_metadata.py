"""create pull_request_metadata

Revision ID: 3f1c2a9d7e10
Revises:
Create Date: 2026-10-19 19:20:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f1c2a9d7e10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "pull_request_metadata",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("repo_id", sa.Integer(), nullable=False),
        sa.Column("pull_request_id", sa.Integer(), nullable=False),
        sa.Column("from_sha", sa.String(), nullable=False),
        sa.Column("to_sha", sa.String(), nullable=False),
        sa.Column("build_started", sa.Boolean(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("failed", sa.Boolean(), nullable=False),
        sa.Column("override", sa.Boolean(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "repo_id",
            "pull_request_id",
            "from_sha",
            "to_sha",
            name="uq_pull_request_metadata",
        ),
    )
    op.create_index(
        op.f("ix_pull_request_metadata_repo_id"),
        "pull_request_metadata",
        ["repo_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_pull_request_metadata_pull_request_id"),
        "pull_request_metadata",
        ["pull_request_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_pull_request_metadata_from_sha"),
        "pull_request_metadata",
        ["from_sha"],
        unique=False,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(
        op.f("ix_pull_request_metadata_from_sha"), table_name="pull_request_metadata"
    )
    op.drop_index(
        op.f("ix_pull_request_metadata_pull_request_id"),
        table_name="pull_request_metadata",
    )
    op.drop_index(
        op.f("ix_pull_request_metadata_repo_id"), table_name="pull_request_metadata"
    )
    op.drop_table("pull_request_metadata")
