from datetime import datetime, timezone
from typing import Any, Callable

import redis.asyncio as redis

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalise ``value`` to an aware UTC datetime.

    Naive datetimes are assumed to already be in UTC, which is how every
    backend in this package writes them.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def mask_token(token: Any, visible: int = 6) -> str:
    """Return a log-safe prefix of a session token."""
    text = str(token)
    if len(text) <= visible:
        return "***"
    return f"{text[:visible]}***"


def redact_url(url: str) -> str:
    """Strip credentials from a connection URL before logging it."""
    if "@" not in url:
        return url
    scheme, separator, rest = url.partition("://")
    if not separator:
        return url.split("@", 1)[-1]
    return f"{scheme}://{rest.split('@', 1)[-1]}"


def create_redis_client(redis_url: str) -> "redis.Redis":
    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        health_check_interval=30,
    )
