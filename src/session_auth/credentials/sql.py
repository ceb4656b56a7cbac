"""Relational user storage sharing the session store's dialect statements."""

from datetime import datetime
import logging
from typing import Any, Optional

from sqlalchemy import Row, text
from sqlalchemy.ext.asyncio import AsyncEngine

from ..errors import Conflict, DuplicateUsername, NotFound
from ..models import UserAccount, UserProfile
from ..session_storage.dialects import DEFAULT_DIGEST_LENGTH, SessionQueries
from ..session_storage.sql import SQLStatementRunner
from .base import UserStorage

logger = logging.getLogger("session_auth.credentials")


class SQLUserStorage(UserStorage):
    """Accounts in a ``users`` table.

    ``digest_length`` sizes the password column and must match the
    hasher's output (60 for bcrypt).
    """

    def __init__(
        self,
        engine: AsyncEngine,
        queries: Optional[SessionQueries] = None,
        *,
        digest_length: int = DEFAULT_DIGEST_LENGTH,
        serialize: Optional[bool] = None,
    ) -> None:
        self._runner = SQLStatementRunner(engine, queries, serialize)
        self.queries = self._runner.queries
        self.digest_length = digest_length

    async def initialize(self) -> None:
        async with self._runner.connection() as conn:
            await conn.execute(text(self.queries.init_users(self.digest_length)))
        logger.debug("Ensured %s users table exists", self.queries.name)

    async def insert(
        self,
        username: str,
        profile: UserProfile,
        password_digest: bytes,
        is_active: bool,
        last_login: Optional[datetime],
    ) -> UserAccount:
        try:
            user_id = await self._runner.insert(
                self.queries.insert_user(),
                {
                    "username": username,
                    "first_name": profile.first_name,
                    "last_name": profile.last_name,
                    "email": profile.email,
                    "password": password_digest.decode("ascii"),
                    "is_active": is_active,
                    "last_login": self.queries.time_to_db(last_login) if last_login else None,
                },
                f"Username '{username}' already in use",
                returning_id=self.queries.returning_id,
            )
        except Conflict as exc:
            raise DuplicateUsername(username) from exc.__cause__

        if user_id is None:
            # Driver did not report the new id; read it back by the unique name.
            return await self.get_by_username(username)

        logger.debug("Stored user %s (id=%s) in %s", username, user_id, self.queries.name)
        return UserAccount(
            id=int(user_id),
            username=username,
            password_digest=password_digest,
            profile=profile,
            is_active=is_active,
            last_login=last_login,
        )

    async def get_by_username(self, username: str) -> UserAccount:
        row = await self._runner.first(self.queries.get_user_by_username(), {"username": username})
        if row is None:
            raise NotFound(f"User '{username}' not found")
        return self._account_from_row(row)

    async def set_password_digest(self, username: str, password_digest: bytes) -> None:
        updated = await self._runner.rowcount(
            self.queries.update_user_password(),
            {"username": username, "password": password_digest.decode("ascii")},
        )
        if not updated:
            raise NotFound(f"User '{username}' not found")

    async def set_last_login(self, user_id: int, when: datetime) -> None:
        updated = await self._runner.rowcount(
            self.queries.update_user_last_login(),
            {"id": user_id, "last_login": self.queries.time_to_db(when)},
        )
        if not updated:
            raise NotFound(f"User id {user_id} not found")

    async def drop(self) -> None:
        await self._runner.rowcount(self.queries.drop_users())
        logger.warning("Dropped %s users table", self.queries.name)

    async def close(self) -> None:
        await self._runner.engine.dispose()

    def _account_from_row(self, row: Row) -> UserAccount:
        return UserAccount(
            id=int(row.id),
            username=row.username,
            password_digest=_digest_bytes(row.password),
            profile=UserProfile(first_name=row.first_name, last_name=row.last_name, email=row.email),
            is_active=bool(row.is_active),
            last_login=self.queries.time_from_db(row.last_login) if row.last_login is not None else None,
        )


def _digest_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value.rstrip()
    return str(value).rstrip().encode("ascii")


__all__ = ["SQLUserStorage"]
