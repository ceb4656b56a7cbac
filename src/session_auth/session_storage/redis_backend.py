"""Redis-backed session storage relying on native key expiry."""

import json
import logging
from datetime import datetime, timedelta
from typing import Hashable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import Conflict, NotFound, translate_errors
from ..models import SessionRecord, UserLoader, keep_user, ttl_milliseconds
from ..utils import Clock, create_redis_client, mask_token, redact_url, utcnow
from .base import SessionStorage

logger = logging.getLogger("session_auth.session_storage")


class RedisSessionStorage(SessionStorage):
    """Session records stored as JSON strings that Redis expires on its own.

    Keys:

    * ``<prefix>:skey:<token>`` holds the record, with a TTL equal to its
      remaining validity.
    * ``<prefix>:usessions:<user>`` is a set of the user's tokens, used for
      bulk revocation. Its TTL is stretched to the longest session and stale
      members are pruned every time a session is created for the user.

    Because Redis evicts expired keys itself, :meth:`delete_expired` has
    nothing to do.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        key_prefix: str = "session_auth",
        *,
        client: Optional["redis.Redis"] = None,
        user_loader: UserLoader = keep_user,
        clock: Clock = utcnow,
    ) -> None:
        if client is None and not redis_url:
            raise ValueError("Either redis_url or client is required")
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._redis = client
        self._user_loader = user_loader
        self._clock = clock

    def _session_key(self, token: str) -> str:
        return f"{self.key_prefix}:skey:{token}"

    def _user_key(self, user: Hashable) -> str:
        return f"{self.key_prefix}:usessions:{user}"

    async def _get_redis(self) -> "redis.Redis":
        if self._redis is None:
            client = create_redis_client(self.redis_url)
            await client.ping()
            logger.info("Redis connection established: %s", redact_url(self.redis_url))
            self._redis = client
        return self._redis

    async def initialize(self) -> None:
        with translate_errors(RedisError, OSError, backend="redis"):
            await self._get_redis()

    async def get(self, token: str) -> SessionRecord:
        with translate_errors(RedisError, OSError, backend="redis"):
            redis_client = await self._get_redis()
            raw = await redis_client.get(self._session_key(token))
        if raw is None:
            raise NotFound("Session token not found")
        return SessionRecord.from_json(raw, self._user_loader)

    async def create(self, user: Hashable, token: str, valid_duration: timedelta) -> SessionRecord:
        record = SessionRecord.issue(user, token, self._clock(), valid_duration)
        ttl_ms = ttl_milliseconds(valid_duration)

        with translate_errors(RedisError, OSError, backend="redis"):
            redis_client = await self._get_redis()
            stored = await redis_client.set(self._session_key(token), record.to_json(), nx=True, px=ttl_ms)
            if not stored:
                raise Conflict("Session token already exists")

            user_key = self._user_key(user)
            await redis_client.sadd(user_key, token)
            await self._stretch_expiry(redis_client, user_key, ttl_ms)

        logger.debug("Stored session %s for user %s in Redis", mask_token(token), user)

        try:
            pruned = await self._prune_user_index(redis_client, user_key)
        except RedisError as exc:
            logger.warning("Failed to prune session index %s: %s", user_key, exc)
        else:
            if pruned:
                logger.debug("Pruned %s stale tokens from %s", pruned, user_key)
        return record

    async def delete_for_user(self, user: Hashable) -> int:
        user_key = self._user_key(user)
        with translate_errors(RedisError, OSError, backend="redis"):
            redis_client = await self._get_redis()
            tokens = list(await redis_client.smembers(user_key))
            if not tokens:
                return 0
            removed = await redis_client.delete(*[self._session_key(token) for token in tokens])
            await redis_client.srem(user_key, *tokens)

        logger.debug("Removed %s sessions of user %s from Redis", removed, user)
        return int(removed)

    async def delete_expired(self, now: datetime) -> int:
        return 0

    async def delete_one(self, token: str) -> None:
        session_key = self._session_key(token)
        with translate_errors(RedisError, OSError, backend="redis"):
            redis_client = await self._get_redis()
            raw = await redis_client.get(session_key)
            if raw is None:
                return
            user = json.loads(raw)["user"]
            async with redis_client.pipeline() as pipe:
                pipe.delete(session_key)
                pipe.srem(self._user_key(user), token)
                await pipe.execute()

        logger.debug("Removed session %s from Redis", mask_token(token))

    async def touch(self, token: str, valid_until: datetime) -> bool:
        session_key = self._session_key(token)
        with translate_errors(RedisError, OSError, backend="redis"):
            redis_client = await self._get_redis()
            raw = await redis_client.get(session_key)
            if raw is None:
                return False
            record = SessionRecord.from_json(raw, self._user_loader).with_valid_until(valid_until)
            ttl_ms = ttl_milliseconds(record.valid_until - self._clock())
            updated = await redis_client.set(session_key, record.to_json(), xx=True, px=ttl_ms)
            if not updated:
                return False
            await self._stretch_expiry(redis_client, self._user_key(record.user), ttl_ms)
        return True

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.debug("Redis connection closed")

    async def _stretch_expiry(self, redis_client: "redis.Redis", key: str, ttl_ms: int) -> None:
        current = await redis_client.pttl(key)
        await redis_client.pexpire(key, max(ttl_ms, int(current)))

    async def _prune_user_index(self, redis_client: "redis.Redis", user_key: str, *, batch_size: int = 100) -> int:
        removed_total = 0
        cursor = 0
        while True:
            cursor, members = await redis_client.sscan(user_key, cursor=cursor, count=batch_size)
            if members:
                async with redis_client.pipeline() as pipe:
                    for member in members:
                        pipe.exists(self._session_key(member))
                    existence_results = await pipe.execute()

                stale = [member for member, exists in zip(members, existence_results) if not exists]
                if stale:
                    await redis_client.srem(user_key, *stale)
                    removed_total += len(stale)

            if cursor == 0:
                break
        return removed_total


__all__ = ["RedisSessionStorage"]
