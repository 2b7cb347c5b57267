"""
api/main.py -- FastAPI application entry point for SessionGuard.

Thin HTTP adapter over auth.service.AuthService. Routing, request validation
and status-code mapping live here; every business rule lives in auth/.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Lifespan handles startup (settings validation, engine + tables, service
wiring, expired-session sweep task) and shutdown (cancel sweep, dispose
engine) symmetrically.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import (
    AuthError,
    DuplicateEmailError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
)
from auth.service import build_auth_service
from auth.store import open_engine
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessionguard.api")

# Status code per classified auth failure. Anything not listed is a 500.
_AUTH_ERROR_STATUS: dict[type[AuthError], int] = {
    DuplicateEmailError: 400,
    InvalidCredentialsError: 401,
    InvalidRefreshTokenError: 403,
    ForbiddenError: 403,
}

# ---------------------------------------------------------------------------
# Background sweep task
# ---------------------------------------------------------------------------


async def _sweep_loop(app: FastAPI, interval_seconds: float) -> None:
    """Delete expired sessions every interval_seconds until cancelled.

    The sweep itself is a blocking DB call, so it runs in a worker thread.
    A failed sweep (e.g. "database is locked") is logged and retried on the
    next tick; only task.cancel() at shutdown ends the loop.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(app.state.auth_service.sessions.delete_expired)
        except Exception:
            logger.exception("Expired session sweep failed")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    get_settings() runs first: missing or confusable secrets abort startup
    here rather than failing individual requests later.
    """
    settings = get_settings()
    logging.getLogger("sessionguard").setLevel(settings.log_level.upper())
    logger.info("SessionGuard API starting up")

    app.state.engine = open_engine(settings.database_url)
    app.state.auth_service = build_auth_service(settings, app.state.engine)
    logger.info(
        "Auth initialized (rotation=%s, single_session=%s)",
        settings.refresh_rotation_enabled,
        settings.single_session_per_user,
    )
    app.state.sweep_task = None
    if settings.session_sweep_interval_seconds > 0:
        app.state.sweep_task = asyncio.create_task(_sweep_loop(app, settings.session_sweep_interval_seconds))

    yield

    if app.state.sweep_task is not None:
        app.state.sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await app.state.sweep_task
    app.state.engine.dispose()
    logger.info("SessionGuard API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SessionGuard API",
    description="Password authentication with session-bound refresh tokens.",
    version=__version__,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One access-log line per request. Headers and bodies (tokens, passwords) are never logged."""
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %d (%.1f ms, client=%s)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
        request.client.host if request.client else "-",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves the API in one envelope:
#   {"error": {"code": ..., "message": ..., "detail": ...}}
# ---------------------------------------------------------------------------


def _error(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map a classified auth failure to its status code.

    The message is the class-level one, so no internal reason can leak.
    """
    status_code = _AUTH_ERROR_STATUS.get(type(exc), 500)
    if status_code == 500:
        logger.error("Unmapped auth error %s on %s %s", exc.code, request.method, request.url.path)
    return _error(status_code, exc.code, exc.message, headers={"Cache-Control": "no-store"})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Dependencies raise HTTPException with a {"code", "message"} dict as detail."""
    if isinstance(exc.detail, dict):
        return _error(exc.status_code, exc.detail.get("code", f"http_{exc.status_code}"), exc.detail.get("message", ""))
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unexpected server errors (database unavailable, bugs).

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=__version__)
