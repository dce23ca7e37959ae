"""
api/routes/public.py -- Public login, sign-up and user management endpoints.

Routes:
  POST /user/login    -- credentials -> 302 + token pair
  POST /user/create   -- credentials -> 201 + {id}; 409 on duplicate login
  POST /user/delete   -- {token} -> deletes the token holder's own account
  POST /user/edit     -- {token,id,newLogin,newPassword}; MANAGE_USERS required
  POST /user/give     -- {token,id,permission}; MANAGE_USERS required
  POST /user/refresh  -- {access,refresh} -> 302 + new token pair
  POST /user/logout   -- {token} -> revokes the token

Errors raised by the session service propagate to the exception handlers in
api/main.py, which turn them into 400 responses with a stable error code.
Only /user/create maps a service error itself (duplicate login -> 409).

Security:
  Cache-Control: no-store on every response that carries a token pair.
  Login failures return the same code for wrong login and wrong password.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from api.models import (
    Credentials,
    EditRequest,
    GiveRequest,
    IdResponse,
    MessageResponse,
    RefreshRequest,
    TokenRequest,
    TokenResponse,
    UserResponse,
)
from auth.dependencies import get_service
from auth.errors import DuplicateUserError
from auth.models import Token, User
from auth.service import SessionService

router = APIRouter()


def _token_response(token: Token) -> JSONResponse:
    # 302 without a Location header: the body is the point, clients must not follow.
    resp = JSONResponse(
        status_code=302,
        content=TokenResponse.from_token(token).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/user/login", status_code=302, response_model=TokenResponse)
def login(body: Credentials, service: SessionService = Depends(get_service)) -> JSONResponse:
    """Authenticate and issue a new access/refresh pair."""
    token = service.create_token(body.login, body.password)
    return _token_response(token)


@router.post("/user/create", status_code=201, response_model=IdResponse)
def create_user(body: Credentials, service: SessionService = Depends(get_service)) -> IdResponse:
    """Self-service sign-up. New accounts start with no permissions."""
    try:
        user_id = service.new_user(User(login=body.login, password=body.password, permissions=0))
    except DuplicateUserError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": exc.code, "message": "A user with that login already exists."},
        ) from exc
    return IdResponse(id=user_id)


@router.post("/user/delete", response_model=MessageResponse)
def delete_user(body: TokenRequest, service: SessionService = Depends(get_service)) -> MessageResponse:
    """Delete the account that owns the token. Its tokens are revoked with it."""
    user_id = service.get_id_by_token(body.token)
    service.delete_user(user_id)
    return MessageResponse(message="User deleted.")


@router.post("/user/edit", response_model=UserResponse)
def edit_user(body: EditRequest, service: SessionService = Depends(get_service)) -> UserResponse:
    """Change another user's login and password. Permissions are left alone."""
    changed = service.edit_user(body.token, User(id=body.id, login=body.new_login, password=body.new_password))
    return UserResponse.from_user(changed)


@router.post("/user/give", response_model=MessageResponse)
def give_permission(body: GiveRequest, service: SessionService = Depends(get_service)) -> MessageResponse:
    """Overwrite a user's permission bitmask."""
    service.give_permission(body.token, body.id, body.permission)
    return MessageResponse(message="Permissions updated.")


@router.post("/user/refresh", status_code=302, response_model=TokenResponse)
def refresh(body: RefreshRequest, service: SessionService = Depends(get_service)) -> JSONResponse:
    """Rotate a live token pair. The presented access stops working."""
    token = service.refresh_token(body.access, body.refresh)
    return _token_response(token)


@router.post("/user/logout", response_model=MessageResponse)
def logout(body: TokenRequest, service: SessionService = Depends(get_service)) -> MessageResponse:
    """Revoke a token. Unknown tokens are accepted silently."""
    service.delete_token(body.token)
    return MessageResponse(message="Logged out.")
