"""Relational session storage on top of SQLAlchemy's async engine."""

import asyncio
from contextlib import asynccontextmanager, nullcontext
from datetime import datetime, timedelta
import logging
from typing import Any, AsyncIterator, Hashable, Mapping, Optional

from sqlalchemy import Row, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ..errors import BackendUnavailable, Conflict, NotFound, translate_errors
from ..models import SessionRecord
from ..utils import Clock, mask_token, utcnow
from .base import SessionStorage
from .dialects import DEFAULT_TOKEN_LENGTH, SessionQueries, queries_for_engine

logger = logging.getLogger("session_auth.session_storage")


class SQLStatementRunner:
    """Run dialect statements one at a time, each in its own transaction.

    When ``serialize`` is set every statement is additionally guarded by an
    ``asyncio.Lock``, for engines that cannot cope with concurrent writers.
    """

    def __init__(self, engine: AsyncEngine, queries: Optional[SessionQueries], serialize: Optional[bool]) -> None:
        self.engine = engine
        self.queries = queries or queries_for_engine(engine)
        if serialize is None:
            serialize = self.queries.requires_serialization
        self._lock: Optional[asyncio.Lock] = asyncio.Lock() if serialize else None

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        guard = self._lock if self._lock is not None else nullcontext()
        async with guard:
            with translate_errors(SQLAlchemyError, OSError, backend=self.queries.name):
                async with self.engine.begin() as conn:
                    yield conn

    async def rowcount(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> int:
        async with self.connection() as conn:
            result = await conn.execute(text(statement), dict(params or {}))
            return max(result.rowcount, 0)

    async def first(self, statement: str, params: Mapping[str, Any]) -> Optional[Row]:
        async with self.connection() as conn:
            result = await conn.execute(text(statement), dict(params))
            return result.first()

    async def insert(
        self,
        statement: str,
        params: Mapping[str, Any],
        conflict_message: str,
        *,
        returning_id: bool = False,
    ) -> Optional[int]:
        """Execute an INSERT and return the new row id when the dialect reports one.

        Unique-constraint violations surface as ``Conflict``.
        """
        try:
            async with self.connection() as conn:
                result = await conn.execute(text(statement), dict(params))
                if returning_id:
                    return int(result.scalar_one())
                return result.lastrowid
        except BackendUnavailable as exc:
            if isinstance(exc.__cause__, IntegrityError):
                raise Conflict(conflict_message) from exc.__cause__
            raise


class SQLSessionStorage(SessionStorage):
    """Session records in a ``user_sessions`` table.

    ``user_id_type`` is the SQL column type for user identifiers (defaults to
    the dialect's big integer) and ``token_length`` the fixed width of the
    token column. Rows decode straight into the driver's native types.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        queries: Optional[SessionQueries] = None,
        *,
        user_id_type: Optional[str] = None,
        token_length: int = DEFAULT_TOKEN_LENGTH,
        serialize: Optional[bool] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._runner = SQLStatementRunner(engine, queries, serialize)
        self.queries = self._runner.queries
        self.user_id_type = user_id_type or self.queries.default_user_id_type
        self.token_length = token_length
        self._clock = clock

    async def initialize(self) -> None:
        async with self._runner.connection() as conn:
            await conn.execute(text(self.queries.init_sessions(self.user_id_type, self.token_length)))
            index_stmt = self.queries.init_sessions_index()
            if index_stmt:
                await conn.execute(text(index_stmt))
        logger.debug("Ensured %s session table exists", self.queries.name)

    async def get(self, token: str) -> SessionRecord:
        row = await self._runner.first(self.queries.get_session(), {"token": token})
        if row is None:
            raise NotFound("Session token not found")
        return SessionRecord(
            user=row.user_id,
            token=row.session_key,
            created_at=self.queries.time_from_db(row.created_at),
            valid_until=self.queries.time_from_db(row.valid_until),
        )

    async def create(self, user: Hashable, token: str, valid_duration: timedelta) -> SessionRecord:
        record = SessionRecord.issue(user, token, self._clock(), valid_duration)
        await self._runner.insert(
            self.queries.create_session(),
            {
                "user_id": user,
                "token": token,
                "created_at": self.queries.time_to_db(record.created_at),
                "valid_until": self.queries.time_to_db(record.valid_until),
            },
            "Session token already exists",
        )
        logger.debug("Stored session %s for user %s in %s", mask_token(token), user, self.queries.name)
        return record

    async def delete_for_user(self, user: Hashable) -> int:
        return await self._runner.rowcount(self.queries.delete_sessions_for_user(), {"user_id": user})

    async def delete_expired(self, now: datetime) -> int:
        removed = await self._runner.rowcount(
            self.queries.delete_expired_sessions(),
            {"now": self.queries.time_to_db(now)},
        )
        if removed:
            logger.info("Cleaned up %s expired sessions from %s", removed, self.queries.name)
        return removed

    async def delete_one(self, token: str) -> None:
        await self._runner.rowcount(self.queries.delete_session(), {"token": token})

    async def touch(self, token: str, valid_until: datetime) -> bool:
        updated = await self._runner.rowcount(
            self.queries.touch_session(),
            {"token": token, "valid_until": self.queries.time_to_db(valid_until)},
        )
        return updated > 0

    async def drop(self) -> None:
        """Drop the session table, logging every user out."""
        await self._runner.rowcount(self.queries.drop_sessions())
        logger.warning("Dropped %s session table", self.queries.name)

    async def close(self) -> None:
        await self._runner.engine.dispose()


__all__ = ["SQLSessionStorage", "SQLStatementRunner"]
