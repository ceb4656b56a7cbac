"""Records exchanged between the controllers and the storage backends."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
import json
import math
from typing import Any, Callable, Hashable, Optional

from .utils import ensure_utc

UserLoader = Callable[[Any], Hashable]


def keep_user(value: Any) -> Hashable:
    """Default loader: JSON-native identifiers (int, str) decode as stored."""
    return value


@dataclass(frozen=True)
class SessionRecord:
    """A persisted session: who owns ``token`` and how long it is valid."""

    user: Hashable
    token: str
    created_at: datetime
    valid_until: datetime

    def __post_init__(self) -> None:
        if self.valid_until < self.created_at:
            raise ValueError("valid_until must not precede created_at")

    @classmethod
    def issue(cls, user: Hashable, token: str, now: datetime, valid_duration: timedelta) -> "SessionRecord":
        if valid_duration <= timedelta(0):
            raise ValueError("valid_duration must be positive")
        created_at = ensure_utc(now)
        return cls(user=user, token=token, created_at=created_at, valid_until=created_at + valid_duration)

    def is_valid(self, now: datetime) -> bool:
        return ensure_utc(now) <= self.valid_until

    def remaining(self, now: datetime) -> timedelta:
        return max(self.valid_until - ensure_utc(now), timedelta(0))

    def max_age_seconds(self, now: datetime) -> int:
        """Whole seconds left, suitable for a cookie ``Max-Age`` attribute."""
        return int(self.remaining(now).total_seconds())

    def with_valid_until(self, valid_until: datetime) -> "SessionRecord":
        return replace(self, valid_until=ensure_utc(valid_until))

    def to_json(self) -> str:
        return json.dumps(
            {
                "user": self.user,
                "token": self.token,
                "created_at": self.created_at.isoformat(),
                "valid_until": self.valid_until.isoformat(),
            },
            default=str,
        )

    @classmethod
    def from_json(cls, raw: str, user_loader: UserLoader = keep_user) -> "SessionRecord":
        data = json.loads(raw)
        return cls(
            user=user_loader(data["user"]),
            token=data["token"],
            created_at=ensure_utc(datetime.fromisoformat(data["created_at"])),
            valid_until=ensure_utc(datetime.fromisoformat(data["valid_until"])),
        )


def ttl_milliseconds(delta: timedelta) -> int:
    """Round a positive duration up to whole milliseconds for Redis ``PX``."""
    return max(1, math.ceil(delta.total_seconds() * 1000))


@dataclass
class UserProfile:
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None


@dataclass
class UserAccount:
    """A registered user.

    ``is_active`` is kept for soft deactivation but no verification path
    consults it.
    """

    id: int
    username: str
    password_digest: bytes = field(repr=False)
    profile: UserProfile = field(default_factory=UserProfile)
    is_active: bool = True
    last_login: Optional[datetime] = None

    def to_json(self) -> str:
        return json.dumps(
            {
                "id": self.id,
                "username": self.username,
                "password": self.password_digest.decode("ascii"),
                "first_name": self.profile.first_name,
                "last_name": self.profile.last_name,
                "email": self.profile.email,
                "is_active": self.is_active,
                "last_login": self.last_login.isoformat() if self.last_login else None,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "UserAccount":
        data = json.loads(raw)
        last_login = data.get("last_login")
        return cls(
            id=int(data["id"]),
            username=data["username"],
            password_digest=data["password"].encode("ascii"),
            profile=UserProfile(
                first_name=data.get("first_name", ""),
                last_name=data.get("last_name", ""),
                email=data.get("email"),
            ),
            is_active=bool(data.get("is_active", True)),
            last_login=ensure_utc(datetime.fromisoformat(last_login)) if last_login else None,
        )


@dataclass
class ValidationResult:
    """Outcome of a successful token validation.

    ``touch_error`` carries a failed expiry refresh; the lookup itself
    succeeded, so ``user`` is still authoritative.
    """

    user: Any
    record: SessionRecord
    touch_error: Optional[Exception] = None


@dataclass
class VerifyResult:
    user_id: int
    matched: bool

    def __bool__(self) -> bool:
        return self.matched


__all__ = [
    "SessionRecord",
    "UserAccount",
    "UserLoader",
    "keep_user",
    "UserProfile",
    "ValidationResult",
    "VerifyResult",
    "ttl_milliseconds",
]
