"""
api/routes/v1/auth.py -- Authentication and session management REST endpoints.

Routes:
  POST   /api/v1/auth/register              -- create account (public)
  POST   /api/v1/auth/login                 -- password login; returns token pair (public)
  POST   /api/v1/auth/refresh               -- exchange refresh token for a new pair (public)
  POST   /api/v1/auth/logout                -- end one session or all sessions (requires auth)
  GET    /api/v1/auth/sessions              -- list the caller's active sessions (requires auth)
  DELETE /api/v1/auth/sessions/{session_id} -- revoke one of the caller's sessions (requires auth)
  GET    /api/v1/auth/me                    -- current user profile (requires auth)
  GET    /api/v1/auth/admin-only            -- role-gated example (admin only)

Handlers are plain ``def`` so FastAPI runs them in its worker thread pool --
argon2 hashing never blocks the event loop.

Errors: handlers let AuthError subclasses propagate; api/main.py maps each
kind to a status code and the shared error envelope.

Security:
  [C1] Login failures are indistinguishable (same code, same message).
  [M5] Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.models import (
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    SessionResponse,
    TokenResponse,
    UserResponse,
)
from auth.dependencies import get_auth_service, get_current_user, get_session_metadata, require_admin
from auth.models import SessionMetadata, TokenPair, User
from auth.service import AuthService

# Auth policy:
# - POST   /auth/register, /auth/login, /auth/refresh: public
# - POST   /auth/logout, GET /auth/sessions, DELETE /auth/sessions/{id}, GET /auth/me:
#          requires auth (get_current_user); ownership checked in AuthService
# - GET    /auth/admin-only: requires admin (require_admin)
router = APIRouter()


def _token_response(pair: TokenPair, service: AuthService) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=TokenResponse.from_pair(pair, expires_in=service.access_ttl_seconds).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(body: RegisterRequest, service: AuthService = Depends(get_auth_service)) -> RegisterResponse:
    """Create a new account with the default "user" role. The password hash is never returned."""
    user = service.register(body.email, body.password, body.full_name)
    return RegisterResponse(user=UserResponse.from_user(user))


@router.post("/auth/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
    metadata: SessionMetadata = Depends(get_session_metadata),
) -> JSONResponse:
    """Authenticate with email and password; open a session and return access + refresh tokens."""
    pair = service.login(body.email, body.password, metadata)
    return _token_response(pair, service)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
    metadata: SessionMetadata = Depends(get_session_metadata),
) -> JSONResponse:
    """Exchange a refresh token for a new token pair.

    Every failure -- bad signature, expiry, revoked or unknown session --
    returns the same 403 invalid_refresh_token error.
    """
    pair = service.refresh(body.refresh_token, metadata)
    return _token_response(pair, service)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    body: Optional[LogoutRequest] = None,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke one session (body.session_id) or, without a body, every session of the caller.

    The access token used for this call stays valid until it expires.
    """
    session_id = body.session_id if body is not None else None
    return MessageResponse(**service.logout(current_user.id, session_id))


@router.get("/auth/sessions", response_model=list[SessionResponse])
def list_sessions(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> list[SessionResponse]:
    """List the caller's active sessions, most recently used first."""
    return [SessionResponse.from_info(s) for s in service.list_sessions(current_user.id)]


@router.delete("/auth/sessions/{session_id}", response_model=MessageResponse)
def revoke_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke one session. 403 if it does not exist or belongs to another user [IDOR guard]."""
    return MessageResponse(**service.revoke_session(current_user.id, session_id))


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the profile of the authenticated user."""
    return UserResponse.from_user(current_user)


@router.get("/auth/admin-only")
def admin_only(current_user: User = Depends(require_admin)) -> dict:
    """Role-gated example endpoint."""
    return {
        "message": "This is admin-only data.",
        "user": UserResponse.from_user(current_user).model_dump(mode="json"),
    }
