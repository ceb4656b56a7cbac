"""Tests for in-memory session storage."""

from datetime import timedelta
import logging

import pytest

from session_auth.errors import Conflict, NotFound
from session_auth.session_storage.memory import InMemorySessionStorage


pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def storage(clock):
    return InMemorySessionStorage(clock=clock)


async def test_create_then_get_returns_record(storage, clock):
    created = await storage.create("user-1", "token-1", timedelta(minutes=10))

    fetched = await storage.get("token-1")

    assert fetched == created
    assert fetched.created_at == clock.now
    assert fetched.valid_until == clock.now + timedelta(minutes=10)


async def test_get_unknown_token_raises_not_found(storage):
    with pytest.raises(NotFound):
        await storage.get("missing")


async def test_duplicate_token_raises_conflict(storage):
    await storage.create("user-1", "token-1", timedelta(minutes=10))
    with pytest.raises(Conflict):
        await storage.create("user-2", "token-1", timedelta(minutes=10))
    assert (await storage.get("token-1")).user == "user-1"


async def test_get_returns_expired_records(storage, clock):
    await storage.create("user-1", "token-1", timedelta(seconds=1))
    clock.advance(minutes=5)

    record = await storage.get("token-1")
    assert not record.is_valid(clock())


async def test_delete_for_user_only_removes_that_user(storage):
    await storage.create("user-1", "a", timedelta(minutes=10))
    await storage.create("user-1", "b", timedelta(minutes=10))
    await storage.create("user-2", "c", timedelta(minutes=10))

    assert await storage.delete_for_user("user-1") == 2
    assert await storage.delete_for_user("user-1") == 0

    with pytest.raises(NotFound):
        await storage.get("a")
    assert (await storage.get("c")).user == "user-2"


async def test_delete_expired_uses_strict_comparison(storage, clock):
    await storage.create("user-1", "short", timedelta(seconds=30))
    await storage.create("user-1", "long", timedelta(hours=1))
    boundary = clock.now + timedelta(seconds=30)

    assert await storage.delete_expired(boundary) == 0
    assert await storage.delete_expired(boundary + timedelta(microseconds=1)) == 1

    with pytest.raises(NotFound):
        await storage.get("short")
    await storage.get("long")


async def test_delete_one_is_idempotent(storage):
    await storage.create("user-1", "token-1", timedelta(minutes=10))

    await storage.delete_one("token-1")
    await storage.delete_one("token-1")

    assert storage.size() == 0


async def test_touch_moves_expiry(storage, clock):
    record = await storage.create("user-1", "token-1", timedelta(minutes=10))
    new_expiry = clock.now + timedelta(hours=2)

    assert await storage.touch("token-1", new_expiry) is True

    touched = await storage.get("token-1")
    assert touched.valid_until == new_expiry
    assert touched.created_at == record.created_at


async def test_touch_missing_token_returns_false(storage, clock):
    assert await storage.touch("gone", clock.now) is False


async def test_warn_threshold_triggers(caplog, clock):
    storage = InMemorySessionStorage(max_tokens=3, warn_fraction=0.5, clock=clock)
    caplog.set_level(logging.WARNING, "session_auth.session_storage")

    await storage.create("user-1", "token-1", timedelta(minutes=1))
    assert "nearing capacity" not in caplog.text

    await storage.create("user-2", "token-2", timedelta(minutes=1))
    assert "nearing capacity" in caplog.text


async def test_max_capacity_warning_resets_after_removal(caplog, clock):
    storage = InMemorySessionStorage(max_tokens=2, warn_fraction=0.5, clock=clock)
    caplog.set_level(logging.WARNING, "session_auth.session_storage")

    await storage.create("user-1", "token-1", timedelta(minutes=1))
    await storage.create("user-2", "token-2", timedelta(minutes=1))
    assert "reached configured maximum" in caplog.text

    caplog.clear()
    await storage.delete_one("token-1")
    await storage.create("user-3", "token-3", timedelta(minutes=1))
    assert "reached configured maximum" in caplog.text


async def test_sweep_updates_usage_flags(caplog, clock):
    storage = InMemorySessionStorage(max_tokens=2, warn_fraction=0.5, clock=clock)
    caplog.set_level(logging.WARNING, "session_auth.session_storage")

    await storage.create("user-1", "token-1", timedelta(hours=1))
    await storage.create("user-2", "token-2", timedelta(seconds=1))
    clock.advance(seconds=5)

    caplog.clear()
    assert await storage.delete_expired(clock()) == 1
    assert caplog.text == ""

    await storage.create("user-3", "token-3", timedelta(hours=1))
    assert "reached configured maximum" in caplog.text


async def test_capacity_never_refuses_records(clock):
    storage = InMemorySessionStorage(max_tokens=1, clock=clock)

    await storage.create("user-1", "token-1", timedelta(minutes=1))
    await storage.create("user-2", "token-2", timedelta(minutes=1))

    assert storage.size() == 2
