"""Abstract session storage definitions."""

import abc
from datetime import datetime, timedelta
from typing import Hashable

from ..models import SessionRecord


class SessionStorage(abc.ABC):
    """Abstract base class for session record storage.

    Backends persist records verbatim: ``get`` returns expired records too,
    and deciding validity is left to the caller.
    """

    async def initialize(self) -> None:
        """Prepare the storage; safe to call on every start."""

    @abc.abstractmethod
    async def get(self, token: str) -> SessionRecord:
        """Return the record for ``token`` or raise ``NotFound``."""

    @abc.abstractmethod
    async def create(self, user: Hashable, token: str, valid_duration: timedelta) -> SessionRecord:
        """Persist a new record valid for ``valid_duration``; ``Conflict`` if the token exists."""

    @abc.abstractmethod
    async def delete_for_user(self, user: Hashable) -> int:
        """Remove every record of ``user`` and return how many were removed."""

    @abc.abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """Remove records whose ``valid_until`` is before ``now``."""

    @abc.abstractmethod
    async def delete_one(self, token: str) -> None:
        """Remove the record for ``token`` if it exists."""

    @abc.abstractmethod
    async def touch(self, token: str, valid_until: datetime) -> bool:
        """Move the expiry of ``token``; ``False`` when no record was affected."""

    async def close(self) -> None:
        """Release connections held by the storage."""


__all__ = ["SessionStorage"]
