"""Redis-backed user storage."""

from dataclasses import replace
from datetime import datetime
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import DuplicateUsername, NotFound, translate_errors
from ..models import UserAccount, UserProfile
from ..utils import create_redis_client, ensure_utc, redact_url
from .base import UserStorage

logger = logging.getLogger("session_auth.credentials")


class RedisUserStorage(UserStorage):
    """Accounts stored as JSON under ``<prefix>:user:<username>``.

    Ids come from ``INCR <prefix>:user_seq`` and ``<prefix>:user_id:<id>``
    maps an id back to its username. An id drawn for a username that turns
    out to be taken is simply skipped.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        key_prefix: str = "session_auth",
        *,
        client: Optional["redis.Redis"] = None,
    ) -> None:
        if client is None and not redis_url:
            raise ValueError("Either redis_url or client is required")
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._redis = client

    def _user_key(self, username: str) -> str:
        return f"{self.key_prefix}:user:{username}"

    def _id_key(self, user_id: int) -> str:
        return f"{self.key_prefix}:user_id:{user_id}"

    @property
    def _sequence_key(self) -> str:
        return f"{self.key_prefix}:user_seq"

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

    async def insert(
        self,
        username: str,
        profile: UserProfile,
        password_digest: bytes,
        is_active: bool,
        last_login: Optional[datetime],
    ) -> UserAccount:
        with translate_errors(RedisError, OSError, backend="redis"):
            redis_client = await self._get_redis()
            user_id = int(await redis_client.incr(self._sequence_key))
            account = UserAccount(
                id=user_id,
                username=username,
                password_digest=password_digest,
                profile=profile,
                is_active=is_active,
                last_login=ensure_utc(last_login) if last_login else None,
            )
            stored = await redis_client.set(self._user_key(username), account.to_json(), nx=True)
            if not stored:
                raise DuplicateUsername(username)
            await redis_client.set(self._id_key(user_id), username)

        logger.debug("Stored user %s (id=%s) in Redis", username, user_id)
        return account

    async def get_by_username(self, username: str) -> UserAccount:
        with translate_errors(RedisError, OSError, backend="redis"):
            redis_client = await self._get_redis()
            raw = await redis_client.get(self._user_key(username))
        if raw is None:
            raise NotFound(f"User '{username}' not found")
        return UserAccount.from_json(raw)

    async def set_password_digest(self, username: str, password_digest: bytes) -> None:
        account = await self.get_by_username(username)
        await self._rewrite(replace(account, password_digest=password_digest))

    async def set_last_login(self, user_id: int, when: datetime) -> None:
        with translate_errors(RedisError, OSError, backend="redis"):
            redis_client = await self._get_redis()
            username = await redis_client.get(self._id_key(user_id))
        if username is None:
            raise NotFound(f"User id {user_id} not found")
        account = await self.get_by_username(username)
        await self._rewrite(replace(account, last_login=ensure_utc(when)))

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def _rewrite(self, account: UserAccount) -> None:
        with translate_errors(RedisError, OSError, backend="redis"):
            redis_client = await self._get_redis()
            updated = await redis_client.set(self._user_key(account.username), account.to_json(), xx=True)
        if not updated:
            raise NotFound(f"User '{account.username}' not found")


__all__ = ["RedisUserStorage"]
