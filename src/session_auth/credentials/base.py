"""Abstract user account storage."""

import abc
from datetime import datetime
from typing import Optional

from ..models import UserAccount, UserProfile


class UserStorage(abc.ABC):
    """Persistence for :class:`UserAccount` records.

    Usernames are unique and ids are assigned by the storage on insert.
    """

    async def initialize(self) -> None:
        """Prepare the storage; safe to call on every start."""

    @abc.abstractmethod
    async def insert(
        self,
        username: str,
        profile: UserProfile,
        password_digest: bytes,
        is_active: bool,
        last_login: Optional[datetime],
    ) -> UserAccount:
        """Store a new account; ``DuplicateUsername`` if the name is taken."""

    @abc.abstractmethod
    async def get_by_username(self, username: str) -> UserAccount:
        """Return the account for ``username`` or raise ``NotFound``."""

    @abc.abstractmethod
    async def set_password_digest(self, username: str, password_digest: bytes) -> None:
        """Overwrite the stored digest; ``NotFound`` for unknown usernames."""

    @abc.abstractmethod
    async def set_last_login(self, user_id: int, when: datetime) -> None:
        """Record a login time; ``NotFound`` for unknown ids."""

    async def close(self) -> None:
        """Release connections held by the storage."""


__all__ = ["UserStorage"]
