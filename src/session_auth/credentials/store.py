"""Username/password accounts on top of a :class:`UserStorage`."""

import logging
from typing import Optional

from ..models import UserAccount, UserProfile, VerifyResult
from ..utils import Clock, utcnow
from .base import UserStorage
from .hashing import BcryptPasswordHasher, PasswordHasher

logger = logging.getLogger("session_auth.credentials")


class CredentialStore:
    """Register users, check their passwords and keep login bookkeeping.

    Digests are computed off the event loop. ``is_active`` is persisted for
    callers that want soft deactivation, but :meth:`verify` does not look at
    it.
    """

    def __init__(
        self,
        storage: UserStorage,
        hasher: Optional[PasswordHasher] = None,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.storage = storage
        self.hasher = hasher or BcryptPasswordHasher()
        self._clock = clock

    async def initialize(self) -> None:
        await self.storage.initialize()

    async def close(self) -> None:
        await self.storage.close()

    async def register(self, username: str, profile: UserProfile, password: str) -> int:
        digest = await self.hasher.generate_async(password)
        account = await self.storage.insert(
            username,
            profile,
            digest,
            is_active=True,
            last_login=self._clock(),
        )
        logger.info("Registered user %s (id=%s)", username, account.id)
        return account.id

    async def verify(self, username: str, password: str) -> VerifyResult:
        """Check ``password`` for ``username``.

        Unknown usernames raise ``NotFound``; a wrong password is an ordinary
        ``matched=False`` result carrying the user's id.
        """
        account = await self.storage.get_by_username(username)
        matched = await self.hasher.compare_async(account.password_digest, password)
        if not matched:
            logger.info("Password mismatch for user %s", username)
        return VerifyResult(user_id=account.id, matched=matched)

    async def update_password(self, username: str, new_password: str) -> None:
        digest = await self.hasher.generate_async(new_password)
        await self.storage.set_password_digest(username, digest)
        logger.info("Password updated for user %s", username)

    async def record_login(self, user_id: int) -> None:
        await self.storage.set_last_login(user_id, self._clock())

    async def get_user(self, username: str) -> UserAccount:
        return await self.storage.get_by_username(username)


__all__ = ["CredentialStore"]
