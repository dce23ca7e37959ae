"""
storage/sql.py -- SQLAlchemy Core persistence layer for users and tokens.

Pattern: Repository + Data Mapper. SQLStore is the repository;
_row_to_user / _row_to_token are the mappers. The session service never
touches SQL directly.

SQLAlchemy Core (not ORM) keeps the dataclasses in auth/models.py the
authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness:
  Login uniqueness is the UNIQUE constraint on users.login. save_user() is a
  single INSERT; a duplicate surfaces as IntegrityError and is translated to
  DuplicateUserError. There is no check-then-insert window.

  Access is the primary key of tokens; refresh carries its own UNIQUE
  constraint.

Atomicity:
  Every multi-statement operation runs inside engine.begin(), which commits
  on success and rolls back on any exception. rotate_token() deletes the old
  row with a WHERE on both access and refresh, so two concurrent rotations of
  the same pair cannot both succeed.

Timestamps are stored as ISO 8601 UTC strings, as elsewhere in this codebase.

Usage:
    store = SQLStore()                                   # SQLite file default
    store = SQLStore("postgresql://user:pw@host/users")  # PostgreSQL
    user_id = store.save_user(User(login="alice", password=hashed))
    store.close()
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from auth.errors import DuplicateRefreshError, DuplicateUserError, NoUserError, TokenNotFoundError
from auth.models import Token, User
from auth.tokens import burn_verify, verify_password

logger = logging.getLogger("userservice.storage")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'userservice.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("login", String(255), nullable=False, unique=True),  # case-sensitive
    Column("password", Text, nullable=False),  # bcrypt hash
    Column("permissions", Integer, nullable=False, server_default="0"),
)

_tokens = Table(
    "tokens",
    _metadata,
    Column("access", String(512), primary_key=True),
    Column("refresh", String(512), nullable=False, unique=True),
    Column("expiration", String(32), nullable=False),  # ISO 8601 UTC
    Column("user_id", Integer, nullable=False, index=True),
)


# ---------------------------------------------------------------------------
# SQLite tuning
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _is_sqlite_memory(db_url: str) -> bool:
    return db_url in ("sqlite://", "sqlite:///:memory:")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _db_id(user_id: str) -> int | None:
    """Translate an opaque user id to the integer primary key, or None if it cannot be one.

    Only the canonical decimal form issued by save_user() is accepted: "01",
    "+1" or " 1" would otherwise alias user 1. Values outside a signed 64-bit
    INTEGER never reach the driver.
    """
    if not isinstance(user_id, str) or not user_id.isdecimal():
        return None
    pk = int(user_id)
    if str(pk) != user_id or not -(2**63) <= pk < 2**63:
        return None
    return pk


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SQLStore:
    """Relational implementation of storage.base.Store."""

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        kwargs: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        if _is_sqlite_memory(db_url):
            # One shared connection, otherwise every pooled connection would
            # see its own empty in-memory database.
            kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **kwargs)
        if db_url.startswith("sqlite") and not _is_sqlite_memory(db_url):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        logger.info("SQL store ready (dialect=%s)", self.engine.dialect.name)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def save_user(self, user: User) -> str:
        """Insert a new user and return its assigned id.

        Relies on UNIQUE(login): the INSERT either succeeds or raises
        IntegrityError, which becomes DuplicateUserError.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        login=user.login,
                        password=user.password,
                        permissions=user.permissions,
                    )
                )
        except IntegrityError as exc:
            raise DuplicateUserError() from exc
        return str(result.inserted_primary_key[0])

    def check_user(self, user: User) -> str:
        """Return the id of the user whose login and password match.

        Always runs bcrypt, against a dummy hash when the login is unknown,
        so response time does not reveal which logins exist.
        """
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id, _users.c.password).where(_users.c.login == user.login)).fetchone()
        if row is None:
            burn_verify(user.password)
            raise NoUserError()
        if not verify_password(user.password, row.password):
            raise NoUserError()
        return str(row.id)

    def user_by_login(self, login: str) -> User | None:
        """Look up a user by exact login (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.login == login)).fetchone()
        return _row_to_user(row) if row is not None else None

    def user(self, user_id: str) -> User:
        pk = _db_id(user_id)
        if pk is None:
            raise NoUserError()
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == pk)).fetchone()
        if row is None:
            raise NoUserError()
        return _row_to_user(row)

    def pop_user(self, user_id: str) -> None:
        pk = _db_id(user_id)
        if pk is None:
            raise NoUserError()
        with self.engine.begin() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == pk))
        if result.rowcount == 0:
            raise NoUserError()

    def change_user(self, user: User) -> User:
        """Update login and password of an existing user. Permissions are not touched."""
        pk = _db_id(user.id)
        if pk is None:
            raise NoUserError()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.update().where(_users.c.id == pk).values(login=user.login, password=user.password)
                )
                if result.rowcount == 0:
                    raise NoUserError()
                row = conn.execute(_users.select().where(_users.c.id == pk)).fetchone()
        except IntegrityError as exc:
            raise DuplicateUserError() from exc
        return _row_to_user(row)

    def set_permission(self, user_id: str, permissions: int) -> None:
        pk = _db_id(user_id)
        if pk is None:
            raise NoUserError()
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == pk).values(permissions=permissions))
        if result.rowcount == 0:
            raise NoUserError()

    def load_users(self) -> list[User]:
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select()).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def save_token(self, token: Token, user_id: str) -> None:
        """Insert or overwrite the token keyed by access.

        Overwrite is a DELETE + INSERT in one transaction. A refresh value
        already held by a different access trips UNIQUE(refresh).
        """
        pk = _db_id(user_id)
        if pk is None:
            raise NoUserError()
        try:
            with self.engine.begin() as conn:
                conn.execute(_tokens.delete().where(_tokens.c.access == token.access))
                conn.execute(_tokens.insert().values(**_token_values(token, pk)))
        except IntegrityError as exc:
            raise DuplicateRefreshError() from exc

    def check_token(self, access: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_tokens.c.access).where(_tokens.c.access == access)).fetchone()
        return row is not None

    def check_refresh(self, refresh: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_tokens.c.access).where(_tokens.c.refresh == refresh)).fetchone()
        return row is not None

    def token(self, access: str) -> Token | None:
        with self.engine.connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.access == access)).fetchone()
        return _row_to_token(row) if row is not None else None

    def get_session_id(self, access: str) -> str:
        with self.engine.connect() as conn:
            row = conn.execute(select(_tokens.c.user_id).where(_tokens.c.access == access)).fetchone()
        if row is None:
            raise TokenNotFoundError()
        return str(row.user_id)

    def token_expired(self, access: str, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        with self.engine.connect() as conn:
            row = conn.execute(select(_tokens.c.expiration).where(_tokens.c.access == access)).fetchone()
        if row is None:
            raise TokenNotFoundError()
        return now >= _from_iso(row.expiration)

    def pop_token(self, access: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(_tokens.delete().where(_tokens.c.access == access))

    def pop_user_tokens(self, user_id: str) -> int:
        pk = _db_id(user_id)
        if pk is None:
            return 0
        with self.engine.begin() as conn:
            result = conn.execute(_tokens.delete().where(_tokens.c.user_id == pk))
        return result.rowcount

    def rotate_token(self, access: str, refresh: str, new_token: Token) -> str:
        """Swap (access, refresh) for new_token under the same owner in one transaction.

        The DELETE matches on both columns; rowcount 0 means the pair is gone
        (logged out, or another rotation won) and nothing is inserted.
        """
        try:
            with self.engine.begin() as conn:
                row = conn.execute(
                    select(_tokens.c.user_id).where((_tokens.c.access == access) & (_tokens.c.refresh == refresh))
                ).fetchone()
                if row is None:
                    raise TokenNotFoundError()
                result = conn.execute(
                    _tokens.delete().where((_tokens.c.access == access) & (_tokens.c.refresh == refresh))
                )
                if result.rowcount != 1:
                    raise TokenNotFoundError()
                conn.execute(_tokens.delete().where(_tokens.c.access == new_token.access))
                conn.execute(_tokens.insert().values(**_token_values(new_token, row.user_id)))
        except IntegrityError as exc:
            raise DuplicateRefreshError() from exc
        return str(row.user_id)

    def load_tokens(self) -> list[Token]:
        with self.engine.connect() as conn:
            rows = conn.execute(_tokens.select()).fetchall()
        return [_row_to_token(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=str(row.id),
        login=row.login,
        password=row.password,
        permissions=int(row.permissions),
    )


def _row_to_token(row) -> Token:
    return Token(
        access=row.access,
        refresh=row.refresh,
        expiration=_from_iso(row.expiration),
    )


def _token_values(token: Token, user_pk: int) -> dict:
    return {
        "access": token.access,
        "refresh": token.refresh,
        "expiration": _to_iso(token.expiration),
        "user_id": user_pk,
    }
