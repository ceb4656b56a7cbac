"""Exception taxonomy shared by session and credential storage."""

from contextlib import contextmanager
from typing import Iterator, Type


class SessionAuthError(Exception):
    """Base class for all errors raised by session_auth."""


class NotFound(SessionAuthError):
    """Raised when a token or username has no stored record."""

    def __init__(self, message: str = "Record not found") -> None:
        super().__init__(message)


class Conflict(SessionAuthError):
    """Raised when a unique key (token or username) is already taken."""


class DuplicateUsername(Conflict):
    """Raised when registering a username that already exists."""

    def __init__(self, username: str) -> None:
        super().__init__(f"Username '{username}' already in use")
        self.username = username


class InvalidSession(SessionAuthError):
    """Raised when a session record exists but has expired."""

    def __init__(self, message: str = "Session expired") -> None:
        super().__init__(message)


class BackendUnavailable(SessionAuthError):
    """Raised when the persistence layer cannot be reached or fails."""


class EntropyFailure(SessionAuthError):
    """Raised when the random source cannot produce token bytes."""


@contextmanager
def translate_errors(*error_types: Type[BaseException], backend: str) -> Iterator[None]:
    """Re-raise driver errors of ``error_types`` as :class:`BackendUnavailable`."""
    try:
        yield
    except SessionAuthError:
        raise
    except error_types as exc:
        raise BackendUnavailable(f"{backend} backend error: {exc}") from exc


__all__ = [
    "BackendUnavailable",
    "Conflict",
    "DuplicateUsername",
    "EntropyFailure",
    "InvalidSession",
    "NotFound",
    "SessionAuthError",
    "translate_errors",
]
