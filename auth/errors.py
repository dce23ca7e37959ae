"""
auth/errors.py -- Error taxonomy shared by the session engine and the stores.

Every failure the engine or a store can report is a subclass of
UserServiceError carrying a stable machine-readable `code`. The HTTP layer
maps codes to status codes; nothing below api/ knows about HTTP.

Propagation policy: store errors propagate unchanged through the engine. The
engine raises its own kinds (WrongPermissionsError, RefreshMismatchError,
NoTokensError, TokenExpiredError) where the decision is a business rule.

Layer rule: stdlib only. No imports from api/, storage/, or core/.
"""

from __future__ import annotations


class UserServiceError(Exception):
    """Base class for all user service failures."""

    code: str = "user_service_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__doc__ or self.code)
        self.message = message or (self.__doc__ or self.code).strip()


class DuplicateUserError(UserServiceError):
    """A user with this login already exists."""

    code = "duplicate_user"


class NoUserError(UserServiceError):
    """No user matches the given id or credentials."""

    code = "no_user"


class DuplicateAccessError(UserServiceError):
    """Generated access token collides with a live token."""

    code = "duplicate_access"


class DuplicateRefreshError(UserServiceError):
    """Generated refresh token collides with a live token."""

    code = "duplicate_refresh"


class NoTokensError(UserServiceError):
    """Could not generate a unique token pair."""

    code = "no_tokens"


class TokenExpiredError(UserServiceError):
    """Access token has expired."""

    code = "token_expired"


class TokenNotFoundError(UserServiceError):
    """Access token is not on record."""

    code = "token_not_found"


class WrongPermissionsError(UserServiceError):
    """Acting user lacks the required permission."""

    code = "wrong_permissions"


class RefreshMismatchError(UserServiceError):
    """Refresh token does not match the one issued with the access token."""

    code = "no_refresh"


class InvalidPermissionsError(UserServiceError):
    """Permission bitmask contains unknown bits or misses a prerequisite."""

    code = "invalid_permissions"


__all__ = [
    "UserServiceError",
    "DuplicateUserError",
    "NoUserError",
    "DuplicateAccessError",
    "DuplicateRefreshError",
    "NoTokensError",
    "TokenExpiredError",
    "TokenNotFoundError",
    "WrongPermissionsError",
    "RefreshMismatchError",
    "InvalidPermissionsError",
]
