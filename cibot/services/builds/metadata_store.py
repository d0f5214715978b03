"""
SQL-backed pull request metadata store.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from cibot.core.logging import get_logger
from cibot.models.pull_request_metadata import PullRequestMetadata
from cibot.schemas.actions import MetadataKey

logger = get_logger(__name__)


class SqlMetadataStore:
    """
    Metadata store on the ``pull_request_metadata`` table.

    There is no locking. ``update`` issues an UPDATE of only the columns it
    was given, so two concurrent updates of the same identity are
    last-writer-wins per field.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _find(self, key: MetadataKey) -> Optional[PullRequestMetadata]:
        statement = select(PullRequestMetadata).where(
            PullRequestMetadata.repo_id == key.repo_id,
            PullRequestMetadata.pull_request_id == key.pull_request_id,
            PullRequestMetadata.from_sha == key.from_sha,
            PullRequestMetadata.to_sha == key.to_sha,
        )
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def get_or_create(self, key: MetadataKey) -> PullRequestMetadata:
        """
        Fetch the row for ``key``, creating it with all flags false if missing.

        Losing the insert race against another writer is not an error: the
        unique constraint rejects our row and the winner's row is returned.
        """
        row = await self._find(key)
        if row is not None:
            return row

        row = PullRequestMetadata(**key.model_dump())
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            row = await self._find(key)
            if row is None:
                raise
            return row

        logger.info(
            "Created PR metadata: repo %s pr %s from %s to %s",
            key.repo_id,
            key.pull_request_id,
            key.from_sha,
            key.to_sha,
        )
        return row

    async def update(
        self,
        key: MetadataKey,
        build_started: Optional[bool] = None,
        success: Optional[bool] = None,
        failed: Optional[bool] = None,
        override: Optional[bool] = None,
    ) -> PullRequestMetadata:
        """Write the given flags; a flag passed as None keeps its stored value."""
        fields = {
            name: value
            for name, value in (
                ("build_started", build_started),
                ("success", success),
                ("failed", failed),
                ("override", override),
            )
            if value is not None
        }
        row = await self.get_or_create(key)
        if not fields:
            return row

        statement = (
            update(PullRequestMetadata)
            .where(PullRequestMetadata.id == row.id)
            .values(updated_at=datetime.now(timezone.utc), **fields)
        )
        await self.session.execute(statement)
        await self.session.commit()
        await self.session.refresh(row)
        logger.debug("Updated PR metadata %s: %s", row.id, fields)
        return row

    async def list_for_source(
        self, repo_id: int, pull_request_id: int, from_sha: str
    ) -> List[PullRequestMetadata]:
        """Every row of a pull request for one source commit, any target commit."""
        statement = (
            select(PullRequestMetadata)
            .where(
                PullRequestMetadata.repo_id == repo_id,
                PullRequestMetadata.pull_request_id == pull_request_id,
                PullRequestMetadata.from_sha == from_sha,
            )
            .order_by(PullRequestMetadata.id)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())
