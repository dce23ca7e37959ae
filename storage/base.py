"""
storage/base.py -- The store contract every backend implements.

The session service depends on this Protocol only. MemoryStore and SQLStore
satisfy it structurally; neither inherits from it.

Contract notes:
  Existence checks (check_token, check_refresh) return bool. "Not found" is
  False, never an exception. Exceptions are reserved for explicit lookups of
  a specific record (user(), get_session_id(), token_expired()) and for
  constraint violations.

  check_user() verifies the presented plaintext against the stored bcrypt
  hash. Every other method treats User.password as opaque.

  rotate_token() is the only operation that must be atomic across more than
  one record: the old token is removed and the new one saved for the same
  owner, or nothing changes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from auth.models import Token, User


@runtime_checkable
class Store(Protocol):
    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def save_user(self, user: User) -> str:
        """Insert a user and return the assigned id. DuplicateUserError if the login exists."""
        ...

    def check_user(self, user: User) -> str:
        """Return the id of the user whose login and password match. NoUserError otherwise."""
        ...

    def user_by_login(self, login: str) -> User | None: ...

    def user(self, user_id: str) -> User:
        """Return the full record. NoUserError if unknown."""
        ...

    def pop_user(self, user_id: str) -> None:
        """Remove the record. NoUserError if unknown."""
        ...

    def change_user(self, user: User) -> User:
        """Update login and password of user.id, keeping permissions.

        NoUserError if the id is unknown, DuplicateUserError if the new
        login belongs to somebody else.
        """
        ...

    def set_permission(self, user_id: str, permissions: int) -> None:
        """Overwrite the permission bitmask. NoUserError if unknown."""
        ...

    def load_users(self) -> list[User]: ...

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def save_token(self, token: Token, user_id: str) -> None:
        """Insert or overwrite keyed by access. DuplicateRefreshError on a foreign refresh clash."""
        ...

    def check_token(self, access: str) -> bool: ...

    def check_refresh(self, refresh: str) -> bool: ...

    def token(self, access: str) -> Token | None: ...

    def get_session_id(self, access: str) -> str:
        """Return the owner id. TokenNotFoundError if unknown."""
        ...

    def token_expired(self, access: str, now: datetime | None = None) -> bool:
        """Compare the stored expiration to `now`. TokenNotFoundError if unknown."""
        ...

    def pop_token(self, access: str) -> None:
        """Remove the token. Unknown access is not an error."""
        ...

    def pop_user_tokens(self, user_id: str) -> int:
        """Remove every token owned by user_id and return how many went."""
        ...

    def rotate_token(self, access: str, refresh: str, new_token: Token) -> str:
        """Swap (access, refresh) for new_token under the same owner, atomically.

        Returns the owner id. TokenNotFoundError if no token with that access
        AND refresh exists at the moment of the swap.
        """
        ...

    def load_tokens(self) -> list[Token]: ...

    def close(self) -> None: ...
