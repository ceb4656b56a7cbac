"""Per-engine SQL text for the relational session and user stores.

Every dialect renders the same statements with named ``:param`` bind
parameters, so :class:`~session_auth.session_storage.sql.SQLSessionStorage`
and :class:`~session_auth.credentials.sql.SQLUserStorage` can run them
unchanged on any engine. Only DDL types and timestamp handling differ.
"""

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from ..utils import ensure_utc

SESSIONS_TABLE = "user_sessions"
USERS_TABLE = "users"

DEFAULT_TOKEN_LENGTH = 64
DEFAULT_DIGEST_LENGTH = 60


class SessionQueries:
    """Base statements, written in the SQL subset shared by all engines."""

    name = "generic"
    default_user_id_type = "BIGINT NOT NULL"
    timestamp_type = "TIMESTAMP"
    user_pk_type = "BIGINT PRIMARY KEY"
    returning_id = False
    requires_serialization = False

    def init_sessions(self, user_id_type: str, token_length: int) -> str:
        return f"""
        CREATE TABLE IF NOT EXISTS {SESSIONS_TABLE} (
            user_id {user_id_type},
            session_key CHAR({token_length}) NOT NULL,
            created_at {self.timestamp_type} NOT NULL,
            valid_until {self.timestamp_type} NOT NULL,
            UNIQUE(session_key)
        )"""

    def init_sessions_index(self) -> str:
        return f"CREATE INDEX IF NOT EXISTS {SESSIONS_TABLE}_user_id_idx ON {SESSIONS_TABLE} (user_id)"

    def get_session(self) -> str:
        return f"SELECT user_id, session_key, created_at, valid_until FROM {SESSIONS_TABLE} WHERE session_key = :token"

    def create_session(self) -> str:
        return (
            f"INSERT INTO {SESSIONS_TABLE} (user_id, session_key, created_at, valid_until) "
            "VALUES (:user_id, :token, :created_at, :valid_until)"
        )

    def delete_sessions_for_user(self) -> str:
        return f"DELETE FROM {SESSIONS_TABLE} WHERE user_id = :user_id"

    def delete_expired_sessions(self) -> str:
        return f"DELETE FROM {SESSIONS_TABLE} WHERE valid_until < :now"

    def delete_session(self) -> str:
        return f"DELETE FROM {SESSIONS_TABLE} WHERE session_key = :token"

    def touch_session(self) -> str:
        return f"UPDATE {SESSIONS_TABLE} SET valid_until = :valid_until WHERE session_key = :token"

    def drop_sessions(self) -> str:
        return f"DROP TABLE IF EXISTS {SESSIONS_TABLE}"

    def init_users(self, digest_length: int) -> str:
        return f"""
        CREATE TABLE IF NOT EXISTS {USERS_TABLE} (
            id {self.user_pk_type},
            username VARCHAR(150) NOT NULL,
            first_name VARCHAR(30) NOT NULL,
            last_name VARCHAR(30) NOT NULL,
            email VARCHAR(254),
            password CHAR({digest_length}) NOT NULL,
            is_active BOOLEAN NOT NULL,
            last_login {self.timestamp_type},
            UNIQUE(username)
        )"""

    def insert_user(self) -> str:
        stmt = (
            f"INSERT INTO {USERS_TABLE} (username, first_name, last_name, email, password, is_active, last_login) "
            "VALUES (:username, :first_name, :last_name, :email, :password, :is_active, :last_login)"
        )
        if self.returning_id:
            stmt += " RETURNING id"
        return stmt

    def get_user_by_username(self) -> str:
        return (
            "SELECT id, username, first_name, last_name, email, password, is_active, last_login "
            f"FROM {USERS_TABLE} WHERE username = :username"
        )

    def update_user_password(self) -> str:
        return f"UPDATE {USERS_TABLE} SET password = :password WHERE username = :username"

    def update_user_last_login(self) -> str:
        return f"UPDATE {USERS_TABLE} SET last_login = :last_login WHERE id = :id"

    def drop_users(self) -> str:
        return f"DROP TABLE IF EXISTS {USERS_TABLE}"

    def time_to_db(self, value: datetime) -> Any:
        """Convert an aware UTC datetime into the driver's bind value."""
        return ensure_utc(value).replace(tzinfo=None)

    def time_from_db(self, value: Any) -> datetime:
        """Convert a fetched column value into an aware UTC datetime."""
        if isinstance(value, datetime):
            return ensure_utc(value)
        if isinstance(value, bytes):
            value = value.decode("ascii")
        return ensure_utc(datetime.fromisoformat(str(value)))


class SQLiteQueries(SessionQueries):
    """SQLite stores timestamps as fixed-width ISO text.

    The fixed ``YYYY-MM-DD HH:MM:SS.ffffff`` form sorts lexically in time
    order, which the ``valid_until < :now`` sweep depends on. SQLite also
    does not tolerate concurrent writers, so access is serialised.
    """

    name = "sqlite"
    default_user_id_type = "INTEGER NOT NULL"
    timestamp_type = "TEXT"
    user_pk_type = "INTEGER PRIMARY KEY AUTOINCREMENT"
    returning_id = False
    requires_serialization = True

    def time_to_db(self, value: datetime) -> str:
        return ensure_utc(value).strftime("%Y-%m-%d %H:%M:%S.%f")


class PostgresQueries(SessionQueries):
    name = "postgresql"
    default_user_id_type = "BIGINT NOT NULL"
    timestamp_type = "TIMESTAMP WITH TIME ZONE"
    user_pk_type = "BIGSERIAL PRIMARY KEY"
    returning_id = True

    def time_to_db(self, value: datetime) -> datetime:
        return ensure_utc(value)


class MySQLQueries(SessionQueries):
    name = "mysql"
    default_user_id_type = "BIGINT UNSIGNED NOT NULL"
    timestamp_type = "DATETIME(6)"
    user_pk_type = "BIGINT UNSIGNED AUTO_INCREMENT PRIMARY KEY"

    def init_sessions_index(self) -> str:
        # MySQL has no CREATE INDEX IF NOT EXISTS; the index is declared inline instead.
        return ""

    def init_sessions(self, user_id_type: str, token_length: int) -> str:
        return f"""
        CREATE TABLE IF NOT EXISTS {SESSIONS_TABLE} (
            user_id {user_id_type},
            session_key CHAR({token_length}) NOT NULL,
            created_at {self.timestamp_type} NOT NULL,
            valid_until {self.timestamp_type} NOT NULL,
            UNIQUE(session_key),
            INDEX {SESSIONS_TABLE}_user_id_idx (user_id)
        )"""


_DIALECTS = {
    "sqlite": SQLiteQueries,
    "postgresql": PostgresQueries,
    "mysql": MySQLQueries,
    "mariadb": MySQLQueries,
}


def queries_for_engine(engine: AsyncEngine) -> SessionQueries:
    """Pick the statement set matching ``engine``'s dialect."""
    try:
        return _DIALECTS[engine.dialect.name]()
    except KeyError:
        raise ValueError(f"Unsupported SQL dialect: {engine.dialect.name}") from None


__all__ = [
    "DEFAULT_DIGEST_LENGTH",
    "DEFAULT_TOKEN_LENGTH",
    "MySQLQueries",
    "PostgresQueries",
    "SESSIONS_TABLE",
    "SQLiteQueries",
    "SessionQueries",
    "USERS_TABLE",
    "queries_for_engine",
]
