"""Session lifecycle: login, validation, logout, revocation and sweeping."""

from datetime import datetime, timedelta
import logging
from typing import Hashable, Optional

from .config import AuthSettings
from .errors import InvalidSession, NotFound, SessionAuthError
from .models import SessionRecord, ValidationResult
from .session_storage.base import SessionStorage
from .tokens import TokenGenerator
from .utils import Clock, mask_token, utcnow

logger = logging.getLogger("session_auth.controller")


class SessionController:
    """Issue and check session tokens against a :class:`SessionStorage`.

    The controller keeps no per-session state of its own, so one instance
    can be shared by every request handler of a process.
    """

    def __init__(
        self,
        storage: SessionStorage,
        settings: Optional[AuthSettings] = None,
        *,
        generator: Optional[TokenGenerator] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.storage = storage
        self.settings = settings or AuthSettings()
        self.generator = generator or TokenGenerator(self.settings.token_bytes)
        self._clock = clock

    @property
    def default_valid_duration(self) -> timedelta:
        return self.settings.default_valid_duration

    async def initialize(self) -> None:
        await self.storage.initialize()

    async def close(self) -> None:
        await self.storage.close()

    async def login(self, user: Hashable, valid_duration: Optional[timedelta] = None) -> SessionRecord:
        """Start a session for ``user`` and return its record.

        The caller hands ``record.token`` to the client. A ``Conflict`` from
        the storage is passed on rather than retried with a fresh token.
        """
        token = self.generator.generate()
        record = await self.storage.create(user, token, valid_duration or self.default_valid_duration)
        logger.info("Session %s started for user %s", mask_token(token), user)
        return record

    async def validate(
        self,
        token: str,
        *,
        sliding: bool = False,
        valid_duration: Optional[timedelta] = None,
    ) -> ValidationResult:
        """Resolve ``token`` to its user.

        Raises ``NotFound`` for unknown tokens and ``InvalidSession`` for
        expired ones. With ``sliding=True`` the session's expiry moves to
        ``now + valid_duration``; if that refresh fails the lookup still
        succeeds and the failure is reported in ``touch_error``.
        """
        if len(token) != self.generator.length:
            raise NotFound("Session token not found")

        record = await self.storage.get(token)
        now = self._clock()

        if not record.is_valid(now):
            await self._discard_expired(token)
            raise InvalidSession()

        if not sliding:
            return ValidationResult(user=record.user, record=record)

        valid_until = now + (valid_duration or self.default_valid_duration)
        try:
            touched = await self.storage.touch(token, valid_until)
        except SessionAuthError as exc:
            logger.warning("Failed to refresh session %s: %s", mask_token(token), exc)
            return ValidationResult(user=record.user, record=record, touch_error=exc)

        if touched:
            record = record.with_valid_until(valid_until)
        else:
            logger.debug("Session %s disappeared before it could be refreshed", mask_token(token))
        return ValidationResult(user=record.user, record=record)

    async def logout(self, token: str) -> None:
        await self.storage.delete_one(token)
        logger.info("Session %s ended", mask_token(token))

    async def revoke_user(self, user: Hashable) -> int:
        removed = await self.storage.delete_for_user(user)
        logger.info("Revoked %s sessions of user %s", removed, user)
        return removed

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Remove expired sessions once and return how many went away."""
        removed = await self.storage.delete_expired(now or self._clock())
        logger.info("Swept %s expired sessions", removed)
        return removed

    async def _discard_expired(self, token: str) -> None:
        try:
            await self.storage.delete_one(token)
        except SessionAuthError as exc:
            logger.warning("Failed to remove expired session %s: %s", mask_token(token), exc)


__all__ = ["SessionController"]
