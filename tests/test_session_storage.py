"""Tests for the storage factories."""

import pytest

import session_auth.session_storage as storage
from session_auth.config import AuthSettings
from session_auth.credentials import (
    CredentialStore,
    InMemoryUserStorage,
    RedisUserStorage,
    SQLUserStorage,
    create_credential_store,
    create_user_storage,
)

SQLITE_URL = "sqlite+aiosqlite:///:memory:"


def test_create_session_storage_defaults_to_memory():
    store = storage.create_session_storage(AuthSettings(memory_max_tokens=10))
    assert isinstance(store, storage.InMemorySessionStorage)
    assert store._max_tokens == 10


def test_create_session_storage_prefers_redis(monkeypatch):
    monkeypatch.setattr(storage, "_redis_connection_available", lambda url: True)
    settings = AuthSettings(redis_url="redis://example", database_url=SQLITE_URL)

    store = storage.create_session_storage(settings)

    assert isinstance(store, storage.RedisSessionStorage)
    assert store.redis_url == "redis://example"


def test_falls_back_to_sql_when_redis_unreachable(monkeypatch, caplog):
    monkeypatch.setattr(storage, "_redis_connection_available", lambda url: False)
    settings = AuthSettings(redis_url="redis://user:pw@example", database_url=SQLITE_URL)

    store = storage.create_session_storage(settings)

    assert isinstance(store, storage.SQLSessionStorage)
    assert "falling back to SQL storage" in caplog.text
    assert "pw@" not in caplog.text


def test_falls_back_to_memory_when_redis_unreachable(monkeypatch):
    monkeypatch.setattr(storage, "_redis_connection_available", lambda url: False)

    store = storage.create_session_storage(AuthSettings(redis_url="redis://example"))

    assert isinstance(store, storage.InMemorySessionStorage)


def test_explicit_backend_never_falls_back(monkeypatch):
    monkeypatch.setattr(storage, "_redis_connection_available", lambda url: False)

    store = storage.create_session_storage(AuthSettings(session_backend="redis", redis_url="redis://example"))
    assert isinstance(store, storage.RedisSessionStorage)

    with pytest.raises(ValueError):
        storage.create_session_storage(AuthSettings(session_backend="sql"))
    with pytest.raises(ValueError):
        storage.create_session_storage(AuthSettings(session_backend="redis"))


def test_cache_wraps_non_redis_backends():
    settings = AuthSettings(session_backend="sql", database_url=SQLITE_URL, redis_url="redis://example", cache_enabled=True)

    store = storage.create_session_storage(settings)

    assert isinstance(store, storage.CachedSessionStorage)
    assert isinstance(store.inner, storage.SQLSessionStorage)
    assert store.key_prefix == "session_auth:cache"


def test_cache_requires_redis_url():
    with pytest.raises(ValueError):
        storage.create_session_storage(AuthSettings(session_backend="memory", cache_enabled=True))


def test_create_user_storage_mirrors_session_choice(monkeypatch):
    monkeypatch.setattr(storage, "_redis_connection_available", lambda url: True)

    assert isinstance(create_user_storage(AuthSettings()), InMemoryUserStorage)
    assert isinstance(create_user_storage(AuthSettings(session_backend="sql", database_url=SQLITE_URL)), SQLUserStorage)
    assert isinstance(create_user_storage(AuthSettings(redis_url="redis://example")), RedisUserStorage)


def test_resolved_backend_pings_redis_once(monkeypatch):
    pings = []

    def ping(url):
        pings.append(url)
        return True

    monkeypatch.setattr(storage, "_redis_connection_available", ping)
    settings = AuthSettings(redis_url="redis://example")

    backend = storage.select_backend(settings)
    sessions = storage.create_session_storage(settings, backend=backend)
    users = create_user_storage(settings, backend=backend)
    credentials = create_credential_store(settings, backend=backend)

    assert pings == ["redis://example"]
    assert isinstance(sessions, storage.RedisSessionStorage)
    assert isinstance(users, RedisUserStorage)
    assert isinstance(credentials.storage, RedisUserStorage)


def test_create_credential_store_uses_configured_cost():
    store = create_credential_store(AuthSettings(bcrypt_cost=5))

    assert isinstance(store, CredentialStore)
    assert store.hasher.cost == 5
