"""Shared fixtures: a controllable clock and an in-process Redis double."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` for the storage backends.

    Expiry is evaluated against the shared :class:`FakeClock`. Method names
    listed in ``failing`` raise a connection error.
    """

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._strings: dict[str, str] = {}
        self._sets: dict[str, set[str]] = {}
        self._expiry: dict[str, datetime] = {}
        self.failing: set[str] = set()
        self.closed = False
        self.calls: list[str] = []

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise RedisConnectionError(f"{name} failed")

    def _purge(self, key: str) -> None:
        expires_at = self._expiry.get(key)
        if expires_at is not None and expires_at <= self._clock():
            self._strings.pop(key, None)
            self._sets.pop(key, None)
            self._expiry.pop(key, None)

    def _exists(self, key: str) -> bool:
        self._purge(key)
        return key in self._strings or key in self._sets

    def _set_ttl(self, key: str, px: Optional[int]) -> None:
        if px is None:
            self._expiry.pop(key, None)
        else:
            self._expiry[key] = self._clock() + timedelta(milliseconds=px)

    async def ping(self):
        self._record("ping")
        return True

    async def get(self, key: str):
        self._record("get")
        self._purge(key)
        return self._strings.get(key)

    async def set(self, key: str, value, nx: bool = False, xx: bool = False, px: Optional[int] = None):
        self._record("set")
        exists = self._exists(key)
        if (nx and exists) or (xx and not exists):
            return None
        self._strings[key] = str(value)
        self._set_ttl(key, px)
        return True

    async def incr(self, key: str):
        self._record("incr")
        self._purge(key)
        value = int(self._strings.get(key, "0")) + 1
        self._strings[key] = str(value)
        return value

    async def exists(self, *keys: str):
        self._record("exists")
        return sum(1 for key in keys if self._exists(key))

    async def delete(self, *keys: str):
        self._record("delete")
        removed = 0
        for key in keys:
            if self._exists(key):
                removed += 1
            self._strings.pop(key, None)
            self._sets.pop(key, None)
            self._expiry.pop(key, None)
        return removed

    async def sadd(self, key: str, *values: str):
        self._record("sadd")
        self._purge(key)
        members = self._sets.setdefault(key, set())
        before = len(members)
        members.update(values)
        return len(members) - before

    async def srem(self, key: str, *values: str):
        self._record("srem")
        self._purge(key)
        members = self._sets.get(key, set())
        removed = 0
        for value in values:
            if value in members:
                members.remove(value)
                removed += 1
        if key in self._sets and not members:
            self._sets.pop(key, None)
            self._expiry.pop(key, None)
        return removed

    async def smembers(self, key: str):
        self._record("smembers")
        self._purge(key)
        return set(self._sets.get(key, set()))

    async def sscan(self, key: str, cursor: int = 0, count: int = 10):
        self._record("sscan")
        self._purge(key)
        members = sorted(self._sets.get(key, set()))
        start = int(cursor)
        end = min(start + count, len(members))
        next_cursor = 0 if end >= len(members) else end
        return next_cursor, members[start:end]

    async def pttl(self, key: str):
        self._record("pttl")
        if not self._exists(key):
            return -2
        expires_at = self._expiry.get(key)
        if expires_at is None:
            return -1
        return int((expires_at - self._clock()).total_seconds() * 1000)

    async def pexpire(self, key: str, milliseconds: int):
        self._record("pexpire")
        if not self._exists(key):
            return False
        self._set_ttl(key, milliseconds)
        return True

    async def aclose(self):
        self.closed = True

    def pipeline(self):
        return FakePipeline(self)

    def from_url(self, *_args, **_kwargs):
        return self


class FakePipeline:
    def __init__(self, redis_client: FakeRedis) -> None:
        self._redis = redis_client
        self._commands: list[tuple[str, tuple]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._commands.clear()

    def delete(self, *keys: str):
        self._commands.append(("delete", keys))

    def srem(self, key: str, *values: str):
        self._commands.append(("srem", (key,) + values))

    def exists(self, *keys: str):
        self._commands.append(("exists", keys))

    async def execute(self):
        results = []
        for command, args in self._commands:
            results.append(await getattr(self._redis, command)(*args))
        self._commands.clear()
        return results


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock) -> FakeRedis:
    return FakeRedis(clock)
