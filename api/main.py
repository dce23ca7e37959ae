"""
api/main.py -- FastAPI application factories for the user service.

Two ASGI apps share one SessionService:
  public   -- login, sign-up, user management (api/routes/public.py)
  private  -- token -> identity resolution (api/routes/private.py)

They are separate apps rather than one app with two prefixes so each can be
bound to its own port and the private one firewalled independently.

Middleware stack (outermost to innermost), identical on both apps:
  1. log_requests     -- method, path, status, latency for every request
  2. request_deadline -- opens a core.context.deadline() scope per request

Exception handlers turn every failure into the same ErrorResponse envelope:
  UserServiceError        -> 400 with the error's stable code
  DeadlineExceeded        -> 503 deadline_exceeded
  RequestValidationError  -> 400 validation_error
  HTTPException           -> its own status, structured detail passed through
  anything else           -> 500 internal_error, traceback logged, never sent
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.private import router as private_router
from api.routes.public import router as public_router
from auth.errors import UserServiceError
from auth.service import SessionService
from core.config import Settings
from core.context import DeadlineExceeded, deadline
from storage import open_store

VERSION = "0.1.0"

logger = logging.getLogger("userservice.api")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ---------------------------------------------------------------------------
# Service assembly
# ---------------------------------------------------------------------------


def build_service(settings: Settings) -> SessionService:
    """Open the configured store, wrap it in a SessionService, seed the admin.

    The bootstrap admin is optional: without ADMIN_LOGIN nobody can edit
    users or grant permissions until someone is promoted out of band.
    """
    store = open_store(settings.database_url)
    logger.info("Store initialized (%s)", type(store).__name__)
    service = SessionService(store, settings)
    if settings.admin_login:
        admin_id = service.ensure_admin(settings.admin_login, settings.admin_password)
        logger.info("Bootstrap admin ready (id=%s)", admin_id)
    else:
        logger.warning("ADMIN_LOGIN not set -- no user can manage users until one is granted MANAGE_USERS")
    return service


# ---------------------------------------------------------------------------
# Shared wiring
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


def _install(app: FastAPI, service: SessionService, listener: str) -> FastAPI:
    app.state.service = service
    timeout = service.settings.request_timeout_seconds

    # Registered first so it ends up innermost: the deadline scope wraps the
    # route, the log line wraps everything.
    @app.middleware("http")
    async def request_deadline(request: Request, call_next):
        with deadline(timeout):
            return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %s %d %.1fms %s",
            listener,
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    @app.exception_handler(UserServiceError)
    async def service_error_handler(request: Request, exc: UserServiceError) -> JSONResponse:
        """All domain failures are per-request client errors."""
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
        return _error(400, exc.code, exc.message)

    @app.exception_handler(DeadlineExceeded)
    async def deadline_handler(request: Request, exc: DeadlineExceeded) -> JSONResponse:
        logger.warning("%s %s exceeded its %.1fs deadline", request.method, request.url.path, timeout)
        return _error(503, "deadline_exceeded", "The request took too long.")

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return 400 when the body fails validation -- malformed requests are plain bad requests here."""
        return _error(400, "validation_error", "Request validation failed.", str(exc.errors()))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Return a structured error for HTTPException.

        Route handlers raise HTTPException with a dict detail carrying code and
        message. Use it directly rather than stringifying it.
        """
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
        return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors.

        The traceback goes to the log only; the client gets a generic message.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error(500, "internal_error", "An unexpected error occurred.")

    @app.get("/health", tags=["Health"])
    async def health() -> HealthResponse:
        """Liveness probe. Never touches the store."""
        return HealthResponse(version=VERSION, listener=listener)

    return app


# ---------------------------------------------------------------------------
# App factories
# ---------------------------------------------------------------------------


def create_public_app(service: SessionService) -> FastAPI:
    app = FastAPI(
        title="User Service",
        description="Login, sign-up and user management.",
        version=VERSION,
    )
    _install(app, service, "public")
    app.include_router(public_router, tags=["Users"])
    return app


def create_private_app(service: SessionService) -> FastAPI:
    # No interactive docs on the internal listener.
    app = FastAPI(
        title="User Service (internal)",
        description="Token to identity resolution for internal services.",
        version=VERSION,
        docs_url=None,
        redoc_url=None,
    )
    _install(app, service, "private")
    app.include_router(private_router, tags=["Identity"])
    return app
