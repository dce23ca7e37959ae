"""
api/routes/private.py -- Identity resolution for other internal services.

Routes:
  POST /user/id           -- {token} -> {id}
  POST /user/permissions  -- {token} -> {permissions, names}

These are mounted only on the private listener. Anything that can reach
them can turn a token into a user id, so the port is meant to sit behind a
firewall.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import IdResponse, PermissionsResponse, TokenRequest
from auth.dependencies import get_service
from auth.service import SessionService

router = APIRouter()


@router.post("/user/id", response_model=IdResponse)
def user_id(body: TokenRequest, service: SessionService = Depends(get_service)) -> IdResponse:
    return IdResponse(id=service.get_id_by_token(body.token))


@router.post("/user/permissions", response_model=PermissionsResponse)
def user_permissions(body: TokenRequest, service: SessionService = Depends(get_service)) -> PermissionsResponse:
    """Return the permission bitmask of the token holder."""
    user = service.user_info(service.get_id_by_token(body.token))
    return PermissionsResponse.from_user(user)
