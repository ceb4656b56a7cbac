"""Environment helpers for session_auth configuration."""

from dataclasses import dataclass
from datetime import timedelta
import logging
import os
from typing import Mapping, Optional

from .tokens import DEFAULT_TOKEN_BYTES

logger = logging.getLogger("session_auth.config")

BACKEND_CHOICES = ("auto", "memory", "sql", "redis")

DEFAULT_VALID_DURATION = timedelta(hours=24)
DEFAULT_BCRYPT_COST = 10
DEFAULT_KEY_PREFIX = "session_auth"
DEFAULT_CACHE_TTL = timedelta(hours=1)


@dataclass
class AuthSettings:
    token_bytes: int = DEFAULT_TOKEN_BYTES
    default_valid_duration: timedelta = DEFAULT_VALID_DURATION
    bcrypt_cost: int = DEFAULT_BCRYPT_COST
    session_backend: str = "auto"
    database_url: Optional[str] = None
    redis_url: Optional[str] = None
    key_prefix: str = DEFAULT_KEY_PREFIX
    cache_enabled: bool = False
    cache_ttl: timedelta = DEFAULT_CACHE_TTL
    memory_max_tokens: Optional[int] = None
    memory_warn_fraction: float = 0.8

    def __post_init__(self) -> None:
        if self.session_backend not in BACKEND_CHOICES:
            raise ValueError(
                f"session_backend must be one of {', '.join(BACKEND_CHOICES)}; got {self.session_backend!r}"
            )
        if self.token_bytes <= 0:
            raise ValueError("token_bytes must be > 0")
        if self.default_valid_duration <= timedelta(0):
            raise ValueError("default_valid_duration must be positive")


def load_settings(env: Optional[Mapping[str, str]] = None) -> AuthSettings:
    """Build :class:`AuthSettings` from ``SESSION_AUTH_*`` variables.

    Malformed numbers are logged and replaced by their defaults; an unknown
    backend name is an error because silently picking another store would
    hide misconfiguration.
    """
    env = _ensure_env(env)

    backend = env.get("SESSION_AUTH_BACKEND", "auto").strip().lower() or "auto"

    return AuthSettings(
        token_bytes=_parse_int(env.get("SESSION_AUTH_TOKEN_BYTES"), "SESSION_AUTH_TOKEN_BYTES") or DEFAULT_TOKEN_BYTES,
        default_valid_duration=_parse_seconds(
            env.get("SESSION_AUTH_VALID_SECONDS"), "SESSION_AUTH_VALID_SECONDS", default=DEFAULT_VALID_DURATION
        ),
        bcrypt_cost=_parse_int(env.get("SESSION_AUTH_BCRYPT_COST"), "SESSION_AUTH_BCRYPT_COST") or DEFAULT_BCRYPT_COST,
        session_backend=backend,
        database_url=env.get("DATABASE_URL") or None,
        redis_url=env.get("REDIS_URL") or None,
        key_prefix=env.get("SESSION_AUTH_KEY_PREFIX") or DEFAULT_KEY_PREFIX,
        cache_enabled=_parse_bool(env.get("SESSION_AUTH_CACHE")),
        cache_ttl=_parse_seconds(env.get("SESSION_AUTH_CACHE_TTL_SECONDS"), "SESSION_AUTH_CACHE_TTL_SECONDS", default=DEFAULT_CACHE_TTL),
        memory_max_tokens=_parse_int(env.get("SESSION_AUTH_MEMORY_MAX_TOKENS"), "SESSION_AUTH_MEMORY_MAX_TOKENS"),
        memory_warn_fraction=_parse_float(
            env.get("SESSION_AUTH_MEMORY_WARN_FRACTION"), "SESSION_AUTH_MEMORY_WARN_FRACTION", default=0.8
        ),
    )


def _ensure_env(env: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return env if env is not None else os.environ


def _parse_int(value: Optional[str], env_key: str) -> Optional[int]:
    if value is None:
        return None
    try:
        parsed = int(value)
        if parsed <= 0:
            logger.warning("%s must be > 0; ignoring value %s", env_key, value)
            return None
        return parsed
    except ValueError:
        logger.warning("%s must be an integer; ignoring value %s", env_key, value)
        return None


def _parse_float(value: Optional[str], env_key: str, *, default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)
        if not 0 < parsed < 1:
            logger.warning("%s must be between 0 and 1; using default %.2f", env_key, default)
            return default
        return parsed
    except ValueError:
        logger.warning("%s must be a float; using default %.2f", env_key, default)
        return default


def _parse_seconds(value: Optional[str], env_key: str, *, default: timedelta) -> timedelta:
    seconds = _parse_int(value, env_key)
    if seconds is None:
        return default
    return timedelta(seconds=seconds)


def _parse_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


__all__ = [
    "AuthSettings",
    "BACKEND_CHOICES",
    "DEFAULT_BCRYPT_COST",
    "DEFAULT_CACHE_TTL",
    "DEFAULT_KEY_PREFIX",
    "DEFAULT_VALID_DURATION",
    "load_settings",
]
