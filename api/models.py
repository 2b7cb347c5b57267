"""
API request and response models for SessionGuard REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
UserResponse has no password_hash field, so a hash can never be serialized.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import SessionInfo, TokenPair, User

# Deliberately loose: one "@", no whitespace, a dot in the domain part.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Stored exactly as sent. Passwords are never normalized; an email with
    surrounding whitespace fails EMAIL_PATTERN instead of being trimmed.
    """

    email: str = Field(max_length=200, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=200)


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=200)
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    """Optional body for POST /auth/logout. Omit session_id to end every session."""

    session_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: str
    full_name: Optional[str]
    created_at: Optional[datetime]

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            full_name=user.full_name,
            created_at=user.created_at,
        )


class RegisterResponse(BaseModel):
    user: UserResponse


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

    @classmethod
    def from_pair(cls, pair: TokenPair, expires_in: int) -> "TokenResponse":
        return cls(access_token=pair.access_token, refresh_token=pair.refresh_token, expires_in=expires_in)


class SessionResponse(BaseModel):
    session_id: str
    created_at: Optional[datetime]
    last_used_at: Optional[datetime]
    expires_at: datetime
    ip: Optional[str]
    user_agent: Optional[str]

    @classmethod
    def from_info(cls, info: SessionInfo) -> "SessionResponse":
        return cls(
            session_id=info.session_id,
            created_at=info.created_at,
            last_used_at=info.last_used_at,
            expires_at=info.expires_at,
            ip=info.ip,
            user_agent=info.user_agent,
        )


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope: {"error": {"code", "message", "detail"}}."""

    error: ErrorDetail
