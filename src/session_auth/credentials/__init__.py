"""User credential storage factory and exports."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from ..config import AuthSettings
from ..session_storage import create_sql_engine, select_backend
from ..utils import redact_url
from .base import UserStorage
from .hashing import BcryptPasswordHasher, PasswordHasher
from .memory import InMemoryUserStorage
from .redis_backend import RedisUserStorage
from .sql import SQLUserStorage
from .store import CredentialStore

logger = logging.getLogger("session_auth.credentials")


def create_user_storage(
    settings: AuthSettings,
    *,
    engine: Optional[AsyncEngine] = None,
    backend: Optional[str] = None,
) -> UserStorage:
    """Create the user storage selected by ``settings``, with the same rules as sessions."""
    backend = backend or select_backend(settings)

    if backend == "redis":
        logger.info("Using Redis user storage: %s", redact_url(settings.redis_url))
        return RedisUserStorage(settings.redis_url, settings.key_prefix)
    if backend == "sql":
        engine = engine or create_sql_engine(settings)
        logger.info("Using %s user storage", engine.dialect.name)
        return SQLUserStorage(engine)

    logger.info("Using in-memory user storage")
    return InMemoryUserStorage()


def create_credential_store(
    settings: AuthSettings,
    *,
    engine: Optional[AsyncEngine] = None,
    backend: Optional[str] = None,
) -> CredentialStore:
    return CredentialStore(
        create_user_storage(settings, engine=engine, backend=backend),
        BcryptPasswordHasher(settings.bcrypt_cost),
    )


__all__ = [
    "BcryptPasswordHasher",
    "CredentialStore",
    "InMemoryUserStorage",
    "PasswordHasher",
    "RedisUserStorage",
    "SQLUserStorage",
    "UserStorage",
    "create_credential_store",
    "create_user_storage",
]
