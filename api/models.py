"""
API request and response models for the user service HTTP endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field names follow the wire format used by existing clients ("newLogin",
"newPassword"); Python attribute names stay snake_case via aliases.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Token, User
from auth.permissions import names as permission_names

# bcrypt only looks at the first 72 bytes of a password.
_MAX_PASSWORD_BYTES = 72

_Login = Annotated[str, Field(min_length=1, max_length=255)]
_Password = Annotated[str, Field(min_length=1, max_length=_MAX_PASSWORD_BYTES)]
_Secret = Annotated[str, Field(min_length=1, max_length=512)]


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {_MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class Credentials(BaseModel):
    """Request body for POST /user/login and POST /user/create."""

    login: _Login
    password: _Password

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class TokenRequest(BaseModel):
    """Body carrying a single access token (delete, logout, private lookups)."""

    token: _Secret


class EditRequest(BaseModel):
    """Request body for POST /user/edit."""

    model_config = ConfigDict(populate_by_name=True)

    token: _Secret
    id: str = Field(min_length=1, max_length=64)
    new_login: _Login = Field(alias="newLogin")
    new_password: _Password = Field(alias="newPassword")

    @field_validator("new_password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class GiveRequest(BaseModel):
    """Request body for POST /user/give. `permission` replaces the whole bitmask."""

    token: _Secret
    id: str = Field(min_length=1, max_length=64)
    permission: int = Field(ge=0)


class RefreshRequest(BaseModel):
    """Request body for POST /user/refresh."""

    access: _Secret
    refresh: _Secret


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """A freshly issued access/refresh pair."""

    access: str
    refresh: str
    expiration: datetime

    @classmethod
    def from_token(cls, token: Token) -> "TokenResponse":
        return cls(access=token.access, refresh=token.refresh, expiration=token.expiration)


class IdResponse(BaseModel):
    id: str


class PermissionsResponse(BaseModel):
    permissions: int
    names: list[str] = Field(default_factory=list)

    @classmethod
    def from_user(cls, user: User) -> "PermissionsResponse":
        return cls(permissions=user.permissions, names=permission_names(user.permissions))


class UserResponse(BaseModel):
    """Public view of a user record. The password hash is never serialized."""

    id: str
    login: str
    permissions: int

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, login=user.login, permissions=user.permissions)


class MessageResponse(BaseModel):
    message: str


class ErrorDetail(BaseModel):
    """Structured error payload. `code` is stable and machine-readable."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Envelope returned for every non-2xx response."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Liveness payload for GET /health on either listener."""

    status: str = "healthy"
    version: str
    listener: str
