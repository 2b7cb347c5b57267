"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens are read from the Authorization: Bearer <token> header only.
The AuthService instance lives on app.state (wired in api/main.py lifespan).

get_current_user() raises HTTP 401 if the request is not authenticated.
require_admin() wraps get_current_user() and raises HTTP 403 if not admin.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.errors import ForbiddenError, InvalidCredentialsError
from auth.models import SessionMetadata, User
from auth.service import AuthService, require_role


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_session_metadata(request: Request) -> SessionMetadata:
    """Capture the client address and User-Agent for session bookkeeping."""
    return SessionMetadata(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def get_current_user(request: Request) -> User:
    """Require a valid access token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    token = _bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    try:
        return get_auth_service(request).authenticate(token)
    except InvalidCredentialsError as exc:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Invalid or expired access token."},
        ) from exc


def require_admin(request: Request) -> User:
    """Require admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    user = get_current_user(request)
    try:
        return require_role(user, "admin")
    except ForbiddenError as exc:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        ) from exc
