"""Session storage factory and exports."""

import logging
from typing import Optional

import redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..config import AuthSettings
from ..errors import BackendUnavailable
from ..models import UserLoader, keep_user
from ..utils import Clock, redact_url, utcnow
from .base import SessionStorage
from .cache import CachedSessionStorage
from .dialects import MySQLQueries, PostgresQueries, SessionQueries, SQLiteQueries, queries_for_engine
from .memory import InMemorySessionStorage
from .redis_backend import RedisSessionStorage
from .sql import SQLSessionStorage

logger = logging.getLogger("session_auth.session_storage")


def create_session_storage(
    settings: AuthSettings,
    *,
    engine: Optional[AsyncEngine] = None,
    backend: Optional[str] = None,
    user_loader: UserLoader = keep_user,
    clock: Clock = utcnow,
) -> SessionStorage:
    """Create the session storage selected by ``settings``.

    With ``session_backend="auto"`` a reachable Redis wins, then a configured
    database, then process memory. Naming a backend explicitly never falls
    back: a missing URL is a configuration error. Pass ``backend`` (as
    returned by :func:`select_backend`) to reuse a choice already made.
    """
    backend = backend or select_backend(settings)

    if backend == "redis":
        logger.info("Using Redis session storage: %s", redact_url(settings.redis_url))
        storage: SessionStorage = RedisSessionStorage(
            settings.redis_url,
            settings.key_prefix,
            user_loader=user_loader,
            clock=clock,
        )
    elif backend == "sql":
        engine = engine or create_sql_engine(settings)
        logger.info("Using %s session storage", engine.dialect.name)
        storage = SQLSessionStorage(engine, clock=clock)
    else:
        logger.info(
            "Using in-memory session storage (max_tokens=%s warn_fraction=%.2f)",
            settings.memory_max_tokens,
            settings.memory_warn_fraction,
        )
        storage = InMemorySessionStorage(
            max_tokens=settings.memory_max_tokens,
            warn_fraction=settings.memory_warn_fraction,
            clock=clock,
        )

    if settings.cache_enabled and backend != "redis":
        if not settings.redis_url:
            raise ValueError("Session cache requires REDIS_URL")
        logger.info("Caching sessions in Redis (ttl=%s)", settings.cache_ttl)
        storage = CachedSessionStorage(
            storage,
            settings.redis_url,
            f"{settings.key_prefix}:cache",
            cache_ttl=settings.cache_ttl,
            user_loader=user_loader,
            clock=clock,
        )
    return storage


def create_sql_engine(settings: AuthSettings) -> AsyncEngine:
    if not settings.database_url:
        raise ValueError("SQL storage requires DATABASE_URL")
    try:
        return create_async_engine(settings.database_url, pool_pre_ping=True)
    except (SQLAlchemyError, ImportError) as exc:
        raise BackendUnavailable(
            f"Cannot create database engine for {redact_url(settings.database_url)}: {exc}"
        ) from exc


def select_backend(settings: AuthSettings) -> str:
    choice = settings.session_backend
    if choice == "redis":
        if not settings.redis_url:
            raise ValueError("Redis storage requires REDIS_URL")
        return "redis"
    if choice == "sql":
        if not settings.database_url:
            raise ValueError("SQL storage requires DATABASE_URL")
        return "sql"
    if choice == "memory":
        return "memory"

    if settings.redis_url:
        if _redis_connection_available(settings.redis_url):
            return "redis"
        fallback = "SQL" if settings.database_url else "in-memory"
        logger.warning(
            "Redis at %s unavailable - falling back to %s storage",
            redact_url(settings.redis_url),
            fallback,
        )
    if settings.database_url:
        return "sql"
    return "memory"


def _redis_connection_available(redis_url: str) -> bool:
    client = redis.Redis.from_url(
        redis_url,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    try:
        client.ping()
        return True
    except (redis.RedisError, OSError) as exc:
        logger.warning("Redis connection test failed for %s: %s", redact_url(redis_url), exc)
        return False
    finally:
        client.close()


__all__ = [
    "CachedSessionStorage",
    "InMemorySessionStorage",
    "MySQLQueries",
    "PostgresQueries",
    "RedisSessionStorage",
    "SQLSessionStorage",
    "SQLiteQueries",
    "SessionQueries",
    "SessionStorage",
    "create_session_storage",
    "create_sql_engine",
    "queries_for_engine",
    "select_backend",
]
