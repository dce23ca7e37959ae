"""
auth/dependencies.py -- FastAPI Depends() helpers.

Both listeners keep the shared SessionService on app.state.service. Route
handlers never construct a service or a store themselves; they ask for one
here, which keeps tests free to inject a service built on any store.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
Nothing else under auth/ does.
"""

from __future__ import annotations

from fastapi import Request

from auth.service import SessionService


def get_service(request: Request) -> SessionService:
    """Return the SessionService attached to the running app.

    Use as a FastAPI dependency:
        @router.post("/user/id")
        def route(body: TokenRequest, service: SessionService = Depends(get_service)): ...
    """
    return request.app.state.service
