"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; stores, the session manager and the service do the work.
Validity of a Session (revoked / expired) is decided by SessionManager, not here.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """An identity that can log in with email + password.

    email is unique and compared case-sensitively, exactly as stored.
    password_hash is an encoded argon2id hash (or a legacy bcrypt hash that
    gets upgraded on the next successful login). It never leaves the core:
    response shaping at the HTTP boundary drops it.
    """

    email: str
    password_hash: str
    role: str = "user"  # "user", "admin"
    id: str | None = None  # assigned by UserStore.create()
    full_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Session:
    """One authenticated login instance, bound to a refresh-token lineage.

    The refresh token itself is never stored -- it only carries this session's
    id. revoked only ever moves False -> True. A session is valid while it is
    not revoked and expires_at is still in the future.
    """

    user_id: str
    expires_at: datetime
    id: str | None = None  # assigned by SessionStore.create()
    revoked: bool = False
    last_used_at: datetime | None = None
    ip: str | None = None
    user_agent: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class SessionMetadata:
    """Informational request origin captured on login and refresh."""

    ip: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class SessionInfo:
    """Public projection of a Session returned by list_sessions().

    Deliberately excludes user_id and the revoked flag (only active sessions
    are listed). There is no token material to exclude -- none is stored.
    """

    session_id: str
    created_at: datetime | None
    last_used_at: datetime | None
    expires_at: datetime
    ip: str | None
    user_agent: str | None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AccessClaims:
    """Verified claims of an access token."""

    user_id: str  # "sub"
    email: str
    role: str


@dataclass(frozen=True)
class RefreshClaims:
    """Verified claims of a refresh token.

    session_id is None when the token carries no "sess" claim; the service
    rejects such tokens.
    """

    user_id: str  # "sub"
    session_id: str | None  # "sess"
