import asyncio

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from cibot import models  # noqa: F401
from cibot.schemas.actions import MetadataKey
from cibot.services.builds.metadata_store import SqlMetadataStore

from conftest import sha

KEY = MetadataKey(repo_id=42, pull_request_id=7, from_sha=sha("F1"), to_sha=sha("M1"))


def run_with_sessions(scenario):
    async def run():
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        sessions = async_sessionmaker(
            bind=engine, class_=AsyncSession, expire_on_commit=False
        )
        try:
            return await scenario(sessions)
        finally:
            await engine.dispose()

    return asyncio.run(run())


def test_get_or_create_creates_fresh_row_once():
    async def scenario(sessions):
        async with sessions() as session:
            store = SqlMetadataStore(session)
            first = await store.get_or_create(KEY)
            second = await store.get_or_create(KEY)
            return first, second

    first, second = run_with_sessions(scenario)
    assert first.id is not None
    assert first.id == second.id
    assert not (first.build_started or first.success or first.failed or first.override)


def test_update_writes_only_given_fields():
    async def scenario(sessions):
        async with sessions() as session:
            store = SqlMetadataStore(session)
            await store.update(KEY, build_started=True)
            await store.update(KEY, success=True, failed=False)
        async with sessions() as session:
            await SqlMetadataStore(session).update(KEY, override=True)
        async with sessions() as session:
            return await SqlMetadataStore(session).get_or_create(KEY)

    row = run_with_sessions(scenario)
    assert (row.build_started, row.success, row.failed, row.override) == (
        True,
        True,
        False,
        True,
    )


def test_list_for_source_spans_target_commits():
    moved = KEY.model_copy(update={"to_sha": sha("M2")})
    other_source = KEY.model_copy(update={"from_sha": sha("F2")})

    async def scenario(sessions):
        async with sessions() as session:
            store = SqlMetadataStore(session)
            await store.update(KEY, success=True)
            await store.get_or_create(moved)
            await store.get_or_create(other_source)
            return await store.list_for_source(42, 7, sha("F1"))

    rows = run_with_sessions(scenario)
    assert [row.to_sha for row in rows] == [sha("M1"), sha("M2")]
    assert [row.success for row in rows] == [True, False]


class RacingStore(SqlMetadataStore):
    """Misses the first lookup, as if another writer inserted concurrently."""

    def __init__(self, session):
        super().__init__(session)
        self.lookups = 0

    async def _find(self, key):
        self.lookups += 1
        if self.lookups == 1:
            return None
        return await super()._find(key)


def test_get_or_create_returns_winner_of_insert_race():
    async def scenario(sessions):
        async with sessions() as session:
            winner = await SqlMetadataStore(session).update(KEY, build_started=True)
        async with sessions() as session:
            store = RacingStore(session)
            row = await store.get_or_create(KEY)
            return winner, row, store.lookups

    winner, row, lookups = run_with_sessions(scenario)
    assert row.id == winner.id
    assert row.build_started
    assert lookups == 2
