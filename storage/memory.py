"""
storage/memory.py -- Thread-safe in-memory store.

Two tables, each behind its own lock:
  users:  id -> User, plus a login -> id index for uniqueness and lookups
  tokens: access -> _TokenRecord, plus a refresh -> access index

Operations that touch both tables take the users lock first, then the tokens
lock. Nothing in this module acquires them the other way round.

Records are copied on the way in and on the way out so callers can never
mutate stored state through a returned object.

State lives on the instance -- two MemoryStore() objects share nothing, which
is what the tests rely on.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from auth.errors import DuplicateRefreshError, DuplicateUserError, NoUserError, TokenNotFoundError
from auth.models import Token, User
from auth.tokens import burn_verify, verify_password

logger = logging.getLogger("userservice.storage")


@dataclass
class _TokenRecord:
    refresh: str
    expiration: datetime
    user_id: str


class MemoryStore:
    """In-memory implementation of storage.base.Store."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._logins: dict[str, str] = {}
        self._users_lock = threading.RLock()
        self._next_id = 0

        self._tokens: dict[str, _TokenRecord] = {}
        self._refresh_index: dict[str, str] = {}
        self._tokens_lock = threading.RLock()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def save_user(self, user: User) -> str:
        with self._users_lock:
            if user.login in self._logins:
                raise DuplicateUserError()
            self._next_id += 1
            user_id = str(self._next_id)
            self._users[user_id] = replace(user, id=user_id)
            self._logins[user.login] = user_id
        logger.debug("memory: saved user id=%s", user_id)
        return user_id

    def check_user(self, user: User) -> str:
        with self._users_lock:
            user_id = self._logins.get(user.login)
            stored = self._users.get(user_id) if user_id is not None else None
        # bcrypt runs outside the lock -- it is deliberately slow.
        if stored is None:
            burn_verify(user.password)
            raise NoUserError()
        if not verify_password(user.password, stored.password):
            raise NoUserError()
        return stored.id

    def user_by_login(self, login: str) -> User | None:
        with self._users_lock:
            user_id = self._logins.get(login)
            if user_id is None:
                return None
            return replace(self._users[user_id])

    def user(self, user_id: str) -> User:
        with self._users_lock:
            stored = self._users.get(user_id)
            if stored is None:
                raise NoUserError()
            return replace(stored)

    def pop_user(self, user_id: str) -> None:
        with self._users_lock:
            stored = self._users.pop(user_id, None)
            if stored is None:
                raise NoUserError()
            del self._logins[stored.login]

    def change_user(self, user: User) -> User:
        with self._users_lock:
            stored = self._users.get(user.id)
            if stored is None:
                raise NoUserError()
            owner = self._logins.get(user.login)
            if owner is not None and owner != user.id:
                raise DuplicateUserError()
            updated = replace(stored, login=user.login, password=user.password)
            del self._logins[stored.login]
            self._logins[updated.login] = updated.id
            self._users[updated.id] = updated
            return replace(updated)

    def set_permission(self, user_id: str, permissions: int) -> None:
        with self._users_lock:
            stored = self._users.get(user_id)
            if stored is None:
                raise NoUserError()
            self._users[user_id] = replace(stored, permissions=permissions)

    def load_users(self) -> list[User]:
        with self._users_lock:
            return [replace(u) for u in self._users.values()]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def save_token(self, token: Token, user_id: str) -> None:
        with self._tokens_lock:
            self._put_token(token, user_id)

    def _put_token(self, token: Token, user_id: str) -> None:
        # Caller holds _tokens_lock.
        holder = self._refresh_index.get(token.refresh)
        if holder is not None and holder != token.access:
            raise DuplicateRefreshError()
        previous = self._tokens.get(token.access)
        if previous is not None:
            self._refresh_index.pop(previous.refresh, None)
        self._tokens[token.access] = _TokenRecord(token.refresh, token.expiration, user_id)
        self._refresh_index[token.refresh] = token.access

    def _drop_token(self, access: str) -> _TokenRecord | None:
        # Caller holds _tokens_lock.
        record = self._tokens.pop(access, None)
        if record is not None:
            self._refresh_index.pop(record.refresh, None)
        return record

    def check_token(self, access: str) -> bool:
        with self._tokens_lock:
            return access in self._tokens

    def check_refresh(self, refresh: str) -> bool:
        with self._tokens_lock:
            return refresh in self._refresh_index

    def token(self, access: str) -> Token | None:
        with self._tokens_lock:
            record = self._tokens.get(access)
            if record is None:
                return None
            return Token(access=access, refresh=record.refresh, expiration=record.expiration)

    def get_session_id(self, access: str) -> str:
        with self._users_lock, self._tokens_lock:
            record = self._tokens.get(access)
            if record is None:
                raise TokenNotFoundError()
            return record.user_id

    def token_expired(self, access: str, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        with self._tokens_lock:
            record = self._tokens.get(access)
            if record is None:
                raise TokenNotFoundError()
            return now >= record.expiration

    def pop_token(self, access: str) -> None:
        with self._tokens_lock:
            self._drop_token(access)

    def pop_user_tokens(self, user_id: str) -> int:
        with self._tokens_lock:
            owned = [a for a, r in self._tokens.items() if r.user_id == user_id]
            for access in owned:
                self._drop_token(access)
        return len(owned)

    def rotate_token(self, access: str, refresh: str, new_token: Token) -> str:
        with self._tokens_lock:
            record = self._tokens.get(access)
            if record is None or record.refresh != refresh:
                raise TokenNotFoundError()
            self._drop_token(access)
            try:
                self._put_token(new_token, record.user_id)
            except DuplicateRefreshError:
                # Put the old pair back so a failed swap changes nothing.
                self._put_token(Token(access, record.refresh, record.expiration), record.user_id)
                raise
            return record.user_id

    def load_tokens(self) -> list[Token]:
        with self._tokens_lock:
            return [Token(access=a, refresh=r.refresh, expiration=r.expiration) for a, r in self._tokens.items()]

    def close(self) -> None:
        with self._users_lock, self._tokens_lock:
            self._users.clear()
            self._logins.clear()
            self._tokens.clear()
            self._refresh_index.clear()
