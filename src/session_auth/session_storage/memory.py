"""In-memory session storage for development, testing and single-process apps."""

from datetime import datetime, timedelta
import logging
import math
from typing import Hashable, Optional

from ..errors import Conflict, NotFound
from ..locking import ReadWriteLock
from ..models import SessionRecord
from ..utils import Clock, ensure_utc, mask_token, utcnow
from .base import SessionStorage

logger = logging.getLogger("session_auth.session_storage")


class InMemorySessionStorage(SessionStorage):
    """Token-keyed dictionary of session records.

    Records are lost when the process exits. ``max_tokens`` only drives log
    warnings; records are never refused.
    """

    def __init__(
        self,
        *,
        max_tokens: Optional[int] = None,
        warn_fraction: float = 0.8,
        clock: Clock = utcnow,
    ) -> None:
        self._records: dict[str, SessionRecord] = {}
        self._lock = ReadWriteLock()
        self._clock = clock
        self._max_tokens = max_tokens if max_tokens and max_tokens > 0 else None
        self._warn_fraction = warn_fraction if 0 < warn_fraction < 1 else 0.8
        self._warned_high_water = False
        self._warned_capacity = False

    async def get(self, token: str) -> SessionRecord:
        with self._lock.read():
            record = self._records.get(token)
        if record is None:
            raise NotFound("Session token not found")
        return record

    async def create(self, user: Hashable, token: str, valid_duration: timedelta) -> SessionRecord:
        record = SessionRecord.issue(user, token, self._clock(), valid_duration)
        with self._lock.write():
            if token in self._records:
                raise Conflict("Session token already exists")
            self._records[token] = record
            count = len(self._records)

        logger.debug("Stored session %s for user %s in memory", mask_token(token), user)
        self._emit_usage_warnings(count)
        return record

    async def delete_for_user(self, user: Hashable) -> int:
        with self._lock.write():
            doomed = [token for token, record in self._records.items() if record.user == user]
            for token in doomed:
                del self._records[token]
            count = len(self._records)

        if doomed:
            logger.debug("Removed %s sessions of user %s from memory", len(doomed), user)
        self._emit_usage_warnings(count, triggered_by_removal=True)
        return len(doomed)

    async def delete_expired(self, now: datetime) -> int:
        now = ensure_utc(now)
        with self._lock.write():
            expired = [token for token, record in self._records.items() if record.valid_until < now]
            for token in expired:
                del self._records[token]
            count = len(self._records)

        if expired:
            logger.info("Cleaned up %s expired sessions from memory", len(expired))
        self._emit_usage_warnings(count, triggered_by_removal=True)
        return len(expired)

    async def delete_one(self, token: str) -> None:
        with self._lock.write():
            removed = self._records.pop(token, None)
            count = len(self._records)

        if removed is not None:
            logger.debug("Removed session %s from memory", mask_token(token))
        self._emit_usage_warnings(count, triggered_by_removal=True)

    async def touch(self, token: str, valid_until: datetime) -> bool:
        with self._lock.write():
            record = self._records.get(token)
            if record is None:
                return False
            self._records[token] = record.with_valid_until(valid_until)
        return True

    def size(self) -> int:
        with self._lock.read():
            return len(self._records)

    def _emit_usage_warnings(self, count: int, *, triggered_by_removal: bool = False) -> None:
        if self._max_tokens is None:
            return

        warn_threshold = max(1, math.ceil(self._max_tokens * self._warn_fraction))

        if count < warn_threshold:
            self._warned_high_water = False
        if count < self._max_tokens:
            self._warned_capacity = False

        if triggered_by_removal:
            return

        if not self._warned_high_water and warn_threshold <= count < self._max_tokens:
            logger.warning(
                "In-memory session storage nearing capacity: %s/%s sessions in use (>= %s%% threshold)",
                count,
                self._max_tokens,
                int(self._warn_fraction * 100),
            )
            self._warned_high_water = True

        if not self._warned_capacity and count >= self._max_tokens:
            logger.error(
                "In-memory session storage reached configured maximum of %s sessions; consider a persistent backend",
                self._max_tokens,
            )
            self._warned_capacity = True


__all__ = ["InMemorySessionStorage"]
