"""In-memory user storage."""

from dataclasses import replace
from datetime import datetime
import itertools
import logging
from typing import Optional

from ..errors import DuplicateUsername, NotFound
from ..locking import ReadWriteLock
from ..models import UserAccount, UserProfile
from ..utils import ensure_utc
from .base import UserStorage

logger = logging.getLogger("session_auth.credentials")


class InMemoryUserStorage(UserStorage):
    """Accounts keyed by username, with ids handed out from a counter."""

    def __init__(self) -> None:
        self._accounts: dict[str, UserAccount] = {}
        self._usernames_by_id: dict[int, str] = {}
        self._ids = itertools.count(1)
        self._lock = ReadWriteLock()

    async def insert(
        self,
        username: str,
        profile: UserProfile,
        password_digest: bytes,
        is_active: bool,
        last_login: Optional[datetime],
    ) -> UserAccount:
        with self._lock.write():
            if username in self._accounts:
                raise DuplicateUsername(username)
            account = UserAccount(
                id=next(self._ids),
                username=username,
                password_digest=password_digest,
                profile=replace(profile),
                is_active=is_active,
                last_login=ensure_utc(last_login) if last_login else None,
            )
            self._accounts[username] = account
            self._usernames_by_id[account.id] = username
        logger.debug("Stored user %s (id=%s) in memory", username, account.id)
        return _copy(account)

    async def get_by_username(self, username: str) -> UserAccount:
        with self._lock.read():
            account = self._accounts.get(username)
        if account is None:
            raise NotFound(f"User '{username}' not found")
        return _copy(account)

    async def set_password_digest(self, username: str, password_digest: bytes) -> None:
        with self._lock.write():
            account = self._accounts.get(username)
            if account is None:
                raise NotFound(f"User '{username}' not found")
            self._accounts[username] = replace(account, password_digest=password_digest)

    async def set_last_login(self, user_id: int, when: datetime) -> None:
        with self._lock.write():
            username = self._usernames_by_id.get(user_id)
            if username is None:
                raise NotFound(f"User id {user_id} not found")
            self._accounts[username] = replace(self._accounts[username], last_login=ensure_utc(when))


def _copy(account: UserAccount) -> UserAccount:
    return replace(account, profile=replace(account.profile))


__all__ = ["InMemoryUserStorage"]
