"""Read-through Redis cache in front of another session storage."""

import logging
from datetime import datetime, timedelta
from typing import Hashable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..config import DEFAULT_CACHE_TTL
from ..errors import translate_errors
from ..models import SessionRecord, UserLoader, keep_user, ttl_milliseconds
from ..utils import Clock, create_redis_client, mask_token, redact_url, utcnow
from .base import SessionStorage

logger = logging.getLogger("session_auth.session_storage")


class CachedSessionStorage(SessionStorage):
    """Serve ``get`` from Redis, falling through to ``inner`` on a miss.

    Cache entries live under ``<prefix>:<generation>:<token>``. Bulk
    removals (:meth:`delete_for_user`, :meth:`delete_expired`) cannot tell
    which tokens they hit, so they advance the generation counter stored at
    ``<prefix>:generation`` instead, orphaning every existing entry. Orphans
    expire on their own TTL. Removals reach ``inner`` before the cache is
    invalidated, so a concurrent miss cannot repopulate a deleted record.

    A cache that cannot be read or written only costs a round trip to
    ``inner``; a generation counter that cannot be advanced fails the
    removal, otherwise revoked sessions could keep validating from cache.
    """

    def __init__(
        self,
        inner: SessionStorage,
        redis_url: Optional[str] = None,
        key_prefix: str = "session_auth:cache",
        *,
        client: Optional["redis.Redis"] = None,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
        user_loader: UserLoader = keep_user,
        clock: Clock = utcnow,
    ) -> None:
        if client is None and not redis_url:
            raise ValueError("Either redis_url or client is required")
        if cache_ttl <= timedelta(0):
            raise ValueError("cache_ttl must be positive")
        self.inner = inner
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.cache_ttl = cache_ttl
        self._redis = client
        self._user_loader = user_loader
        self._clock = clock

    @property
    def generation_key(self) -> str:
        return f"{self.key_prefix}:generation"

    async def _get_redis(self) -> "redis.Redis":
        if self._redis is None:
            client = create_redis_client(self.redis_url)
            await client.ping()
            logger.info("Session cache connected: %s", redact_url(self.redis_url))
            self._redis = client
        return self._redis

    async def _cache_key(self, redis_client: "redis.Redis", token: str) -> str:
        generation = await redis_client.get(self.generation_key)
        return f"{self.key_prefix}:{generation or 0}:{token}"

    async def initialize(self) -> None:
        await self.inner.initialize()
        with translate_errors(RedisError, OSError, backend="redis cache"):
            await self._get_redis()

    async def get(self, token: str) -> SessionRecord:
        try:
            redis_client = await self._get_redis()
            cache_key = await self._cache_key(redis_client, token)
            cached = await redis_client.get(cache_key)
        except (RedisError, OSError) as exc:
            logger.warning("Session cache read failed for %s: %s", mask_token(token), exc)
            return await self.inner.get(token)

        if cached is not None:
            return SessionRecord.from_json(cached, self._user_loader)

        record = await self.inner.get(token)
        await self._populate(redis_client, cache_key, record)
        return record

    async def create(self, user: Hashable, token: str, valid_duration: timedelta) -> SessionRecord:
        record = await self.inner.create(user, token, valid_duration)
        try:
            redis_client = await self._get_redis()
            cache_key = await self._cache_key(redis_client, token)
        except (RedisError, OSError) as exc:
            logger.warning("Session cache unavailable while storing %s: %s", mask_token(token), exc)
            return record
        await self._populate(redis_client, cache_key, record)
        return record

    async def delete_for_user(self, user: Hashable) -> int:
        removed = await self.inner.delete_for_user(user)
        await self._advance_generation()
        return removed

    async def delete_expired(self, now: datetime) -> int:
        removed = await self.inner.delete_expired(now)
        await self._advance_generation()
        return removed

    async def delete_one(self, token: str) -> None:
        await self.inner.delete_one(token)
        await self._evict(token)

    async def touch(self, token: str, valid_until: datetime) -> bool:
        touched = await self.inner.touch(token, valid_until)
        await self._evict(token)
        return touched

    async def close(self) -> None:
        try:
            await self.inner.close()
        finally:
            if self._redis is not None:
                await self._redis.aclose()
                self._redis = None

    async def _populate(self, redis_client: "redis.Redis", cache_key: str, record: SessionRecord) -> None:
        remaining = record.remaining(self._clock())
        if remaining <= timedelta(0):
            return
        ttl_ms = ttl_milliseconds(min(self.cache_ttl, remaining))
        try:
            await redis_client.set(cache_key, record.to_json(), px=ttl_ms)
        except (RedisError, OSError) as exc:
            logger.warning("Session cache write failed for %s: %s", mask_token(record.token), exc)

    async def _evict(self, token: str) -> None:
        with translate_errors(RedisError, OSError, backend="redis cache"):
            redis_client = await self._get_redis()
            await redis_client.delete(await self._cache_key(redis_client, token))

    async def _advance_generation(self) -> None:
        with translate_errors(RedisError, OSError, backend="redis cache"):
            redis_client = await self._get_redis()
            generation = await redis_client.incr(self.generation_key)
        logger.debug("Session cache generation advanced to %s", generation)


__all__ = ["CachedSessionStorage"]
