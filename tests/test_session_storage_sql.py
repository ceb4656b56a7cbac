"""Tests for relational session storage on SQLite."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from session_auth.errors import BackendUnavailable, Conflict, NotFound
from session_auth.session_storage.dialects import (
    MySQLQueries,
    PostgresQueries,
    SQLiteQueries,
    queries_for_engine,
)
from session_auth.session_storage.sql import SQLSessionStorage


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}")
    yield engine
    await engine.dispose()


@pytest.fixture
async def storage(engine, clock):
    storage = SQLSessionStorage(engine, clock=clock)
    await storage.initialize()
    return storage


async def test_dialect_is_picked_from_engine(storage):
    assert isinstance(storage.queries, SQLiteQueries)
    assert storage._runner._lock is not None


async def test_initialize_is_idempotent(storage):
    created = await storage.create(1, "t" * 64, timedelta(minutes=5))

    await storage.initialize()

    assert await storage.get("t" * 64) == created


async def test_create_then_get_decodes_native_types(storage, clock):
    token = "a" * 64
    await storage.create(7, token, timedelta(minutes=5))

    record = await storage.get(token)

    assert record.user == 7
    assert record.created_at == clock.now
    assert record.valid_until == clock.now + timedelta(minutes=5)
    assert record.valid_until.tzinfo is not None


async def test_get_unknown_token_raises_not_found(storage):
    with pytest.raises(NotFound):
        await storage.get("z" * 64)


async def test_duplicate_token_raises_conflict(storage):
    await storage.create(1, "a" * 64, timedelta(minutes=5))
    with pytest.raises(Conflict):
        await storage.create(2, "a" * 64, timedelta(minutes=5))


async def test_delete_for_user_and_delete_one(storage):
    await storage.create(1, "a" * 64, timedelta(minutes=5))
    await storage.create(1, "b" * 64, timedelta(minutes=5))
    await storage.create(2, "c" * 64, timedelta(minutes=5))

    assert await storage.delete_for_user(1) == 2
    assert await storage.delete_for_user(1) == 0

    await storage.delete_one("c" * 64)
    await storage.delete_one("c" * 64)
    with pytest.raises(NotFound):
        await storage.get("c" * 64)


async def test_delete_expired_removes_only_expired(storage, clock):
    await storage.create(1, "a" * 64, timedelta(seconds=30))
    await storage.create(1, "b" * 64, timedelta(hours=1))
    boundary = clock.now + timedelta(seconds=30)

    assert await storage.delete_expired(boundary) == 0
    assert await storage.delete_expired(boundary + timedelta(seconds=1)) == 1
    await storage.get("b" * 64)


async def test_touch_updates_valid_until(storage, clock):
    await storage.create(1, "a" * 64, timedelta(minutes=5))
    new_expiry = clock.now + timedelta(days=1)

    assert await storage.touch("a" * 64, new_expiry) is True
    assert (await storage.get("a" * 64)).valid_until == new_expiry
    assert await storage.touch("b" * 64, new_expiry) is False


async def test_drop_removes_table(storage):
    await storage.create(1, "a" * 64, timedelta(minutes=5))

    await storage.drop()

    with pytest.raises(BackendUnavailable):
        await storage.get("a" * 64)


def test_sqlite_timestamps_sort_lexically():
    queries = SQLiteQueries()
    earlier = queries.time_to_db(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))
    later = queries.time_to_db(datetime(2024, 1, 1, 10, 0, 0, 1, tzinfo=timezone.utc))

    assert earlier < later
    assert len(earlier) == len(later)
    assert queries.time_from_db(later) == datetime(2024, 1, 1, 10, 0, 0, 1, tzinfo=timezone.utc)


def test_time_from_db_accepts_naive_and_aware_values():
    queries = PostgresQueries()
    aware = datetime(2024, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

    assert queries.time_from_db(aware) == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert queries.time_from_db(datetime(2024, 1, 1, 10, 0)) == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert queries.time_from_db(b"2024-01-01 10:00:00") == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def test_dialect_specific_statements():
    assert PostgresQueries().insert_user().endswith("RETURNING id")
    assert "RETURNING" not in SQLiteQueries().insert_user()
    assert MySQLQueries().init_sessions_index() == ""
    assert "INDEX user_sessions_user_id_idx" in MySQLQueries().init_sessions("BIGINT NOT NULL", 64)
    assert "CHAR(88)" in SQLiteQueries().init_sessions("INTEGER NOT NULL", 88)


def test_unsupported_dialect_is_rejected():
    class FakeEngine:
        dialect = type("Dialect", (), {"name": "oracle"})()

    with pytest.raises(ValueError):
        queries_for_engine(FakeEngine())
