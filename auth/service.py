"""
auth/service.py -- Session and permission engine.

SessionService orchestrates credential checks, token issuance, rotation and
expiry, and permission-gated user mutation. It drives a storage.base.Store
and nothing else: no HTTP, no SQL, no module-level state. One instance is
built at startup with an injected store and shared by both listeners.

Token lifecycle:
  absent -> live -> live but expired -> absent

  Expiry is detected lazily. get_id_by_token() purges an expired token the
  first time it is presented after its expiration; there is no background
  sweep. Rotation (refresh_token) replaces the old pair through the store's
  compare-and-swap so a crash or a concurrent rotation cannot leave two live
  pairs for one session.

Authorization:
  Editing a user and granting permissions both require MANAGE_USERS on the
  acting user, resolved from the presented access token.

Cancellation:
  Every public method calls check_deadline() on entry, and the token
  generation loop calls it on every attempt. Outside a core.context.deadline()
  scope those checks are no-ops.

Layer rule: no imports from api/. storage/ is reached only through the Store
Protocol passed to __init__.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from auth import permissions as perms
from auth.errors import (
    DuplicateAccessError,
    DuplicateRefreshError,
    DuplicateUserError,
    NoTokensError,
    RefreshMismatchError,
    TokenExpiredError,
    TokenNotFoundError,
    UserServiceError,
    WrongPermissionsError,
)
from auth.models import Token, User
from auth.tokens import generate_secret, hash_password, secrets_match
from core.config import Settings, get_settings
from core.context import check_deadline
from storage.base import Store

logger = logging.getLogger("userservice.auth")


class SessionService:
    """Business logic over a Store.

    Usage:
        service = SessionService(MemoryStore())
        user_id = service.new_user(User(login="alice", password="pw1"))
        token = service.create_token("alice", "pw1")
        assert service.get_id_by_token(token.access) == user_id
    """

    def __init__(self, store: Store, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.token_ttl = timedelta(seconds=self.settings.token_ttl_seconds)
        self.generate_retries = self.settings.token_generate_retries

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def new_user(self, user: User) -> str:
        """Register a user and return the id assigned by the store.

        `user.password` is the plaintext; only its bcrypt hash is stored.
        The login lookup gives a fast DuplicateUserError; the store's own
        uniqueness check still decides races between concurrent sign-ups.
        """
        check_deadline()
        if self.store.user_by_login(user.login) is not None:
            raise DuplicateUserError()
        check_deadline()
        stored = replace(user, id="", password=hash_password(user.password, self.settings.bcrypt_rounds))
        user_id = self.store.save_user(stored)
        logger.info("Created user id=%s", user_id)
        return user_id

    def check_user(self, user: User) -> str:
        """Return the id of the user whose login and password match. NoUserError otherwise."""
        check_deadline()
        return self.store.check_user(user)

    def user_info(self, user_id: str) -> User:
        check_deadline()
        return self.store.user(user_id)

    def delete_user(self, user_id: str) -> None:
        """Remove a user and every token it owns.

        Tokens go second: if the user does not exist NoUserError is raised
        and nothing is touched.
        """
        check_deadline()
        self.store.pop_user(user_id)
        dropped = self.store.pop_user_tokens(user_id)
        logger.info("Deleted user id=%s (%d tokens revoked)", user_id, dropped)

    def edit_user(self, access: str, user: User) -> User:
        """Change login and password of `user.id` on behalf of the token holder.

        Requires MANAGE_USERS. Permissions are never changed here -- that is
        give_permission()'s job.
        """
        self._require(access, perms.Permission.MANAGE_USERS)
        check_deadline()
        hashed = hash_password(user.password, self.settings.bcrypt_rounds)
        changed = self.store.change_user(replace(user, password=hashed))
        logger.info("Edited user id=%s", changed.id)
        return changed

    def give_permission(self, access: str, user_id: str, permissions: int) -> None:
        """Replace the permission bitmask of `user_id` on behalf of the token holder.

        Requires MANAGE_USERS. The new bitmask is validated (known bits,
        prerequisites present) and overwrites the old one; it is not merged.
        """
        actor_id = self._require(access, perms.Permission.MANAGE_USERS)
        perms.validate(permissions)
        check_deadline()
        self.store.set_permission(user_id, permissions)
        logger.info(
            "User id=%s set permissions of id=%s to %s",
            actor_id,
            user_id,
            ",".join(perms.names(permissions)) or "none",
        )

    def ensure_admin(self, login: str, password: str) -> str:
        """Create the bootstrap administrator if missing and return its id.

        An existing account with that login keeps its password but has every
        permission bit restored, so a restart always leaves a working admin.
        """
        existing = self.store.user_by_login(login)
        if existing is None:
            try:
                return self.new_user(User(login=login, password=password, permissions=perms.ALL_PERMISSIONS))
            except DuplicateUserError:
                existing = self.store.user_by_login(login)
                if existing is None:
                    raise
        if existing.permissions != perms.ALL_PERMISSIONS:
            self.store.set_permission(existing.id, perms.ALL_PERMISSIONS)
            logger.warning("Restored full permissions for bootstrap admin id=%s", existing.id)
        return existing.id

    def list_users(self) -> list[User]:
        check_deadline()
        return self.store.load_users()

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def create_token(self, login: str, password: str) -> Token:
        """Log in: verify credentials, issue a fresh pair, bind it to the user."""
        user_id = self.check_user(User(login=login, password=password))
        token = self.get_unique_token()
        self.bind(token, user_id)
        logger.info("Issued token %s... for user id=%s", token.prefix, user_id)
        return token

    def bind(self, token: Token, user_id: str) -> None:
        check_deadline()
        self.store.save_token(token, user_id)

    def get_unique_token(self) -> Token:
        """Draw an access/refresh pair that collides with no live token.

        Each half gets its own retry budget. Exhausting either raises
        NoTokensError chained from the last collision.
        """
        access = self._draw_unique(self.store.check_token, DuplicateAccessError)
        refresh = self._draw_unique(self.store.check_refresh, DuplicateRefreshError)
        expiration = datetime.now(timezone.utc) + self.token_ttl
        return Token(access=access, refresh=refresh, expiration=expiration)

    def _draw_unique(self, exists: Callable[[str], bool], collision: type[UserServiceError]) -> str:
        last_error: UserServiceError | None = None
        for attempt in range(1, self.generate_retries + 1):
            check_deadline()
            candidate = generate_secret(self.settings.token_bytes)
            if not exists(candidate):
                return candidate
            last_error = collision()
            logger.warning("%s on attempt %d/%d", collision.code, attempt, self.generate_retries)
        raise NoTokensError() from last_error

    def get_id_by_token(self, access: str) -> str:
        """Resolve an access token to its owner.

        Unknown -> TokenNotFoundError. Expired -> the token is purged and
        TokenExpiredError raised; presenting it again then yields
        TokenNotFoundError.
        """
        check_deadline()
        if not self.store.check_token(access):
            raise TokenNotFoundError()
        if self.is_expired(access):
            self.store.pop_token(access)
            logger.info("Purged expired token %s...", access[:8])
            raise TokenExpiredError()
        return self.store.get_session_id(access)

    def is_expired(self, access: str) -> bool:
        check_deadline()
        return self.store.token_expired(access)

    def delete_token(self, access: str) -> None:
        """Log out. Deleting an unknown token is not an error."""
        check_deadline()
        self.store.pop_token(access)

    def refresh_token(self, access: str, refresh: str) -> Token:
        """Rotate a live pair: the old access stops resolving, a new pair is returned.

        The owner is resolved through get_id_by_token(), so an expired pair
        cannot be rotated -- the holder has to log in again.
        """
        check_deadline()
        stored = self.store.token(access)
        if stored is None:
            raise TokenNotFoundError()
        if not secrets_match(refresh, stored.refresh):
            raise RefreshMismatchError()
        user_id = self.get_id_by_token(access)
        new_token = self.get_unique_token()
        check_deadline()
        try:
            owner = self.store.rotate_token(access, refresh, new_token)
        except DuplicateRefreshError as exc:
            # A live token took the new refresh value after it was drawn.
            raise NoTokensError() from exc
        if owner != user_id:
            # The access value was re-bound between the lookup and the swap.
            # Should never happen with unique access values; refuse loudly.
            self.store.pop_token(new_token.access)
            raise TokenNotFoundError()
        logger.info("Rotated token %s... -> %s... for user id=%s", access[:8], new_token.prefix, owner)
        return new_token

    def list_tokens(self) -> list[Token]:
        check_deadline()
        return self.store.load_tokens()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, access: str, permission: perms.Permission) -> str:
        """Resolve the acting user and check one permission. Returns the actor id."""
        actor_id = self.get_id_by_token(access)
        check_deadline()
        actor = self.store.user(actor_id)
        if not perms.has(actor.permissions, permission):
            logger.warning("User id=%s denied: missing %s", actor_id, permission.name)
            raise WrongPermissionsError()
        return actor_id
