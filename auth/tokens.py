"""
auth/tokens.py -- JWT signing and verification (Token Codec).

Security design decisions:
  JWT: python-jose with HS256. Two token classes with distinct claim sets:
       access  = {sub, email, role}   signed with ACCESS_SECRET
       refresh = {sub, sess}          signed with REFRESH_SECRET
       Every token also carries iat, exp, a random jti and a "typ" claim.

  Distinct secrets are mandatory (enforced in core.config). An access token
       presented to the refresh verifier fails signature verification, and the
       "typ" claim is checked as a second line of defence against token-class
       confusion.

  Expiry is enforced here, at decode time, from the exp claim -- independently
       of any session check the caller does afterwards.

  decode_token() raises one of InvalidSignatureError, TokenExpiredError or
       MalformedTokenError. Callers at the service layer collapse those into a
       single external error kind; the distinction is kept for logging.

Layer rule: no imports from api/. Secrets and TTLs arrive through TokenCodec's
constructor -- this module never reads settings itself.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError

from auth.errors import InvalidSignatureError, MalformedTokenError, TokenExpiredError
from auth.models import AccessClaims, RefreshClaims

if TYPE_CHECKING:
    from auth.models import User
    from core.config import Settings

_ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"


# ---------------------------------------------------------------------------
# Low-level encode / decode
# ---------------------------------------------------------------------------


def encode_token(
    claims: dict[str, Any],
    secret: str,
    ttl_seconds: int,
    *,
    token_type: str,
    now: datetime | None = None,
) -> str:
    """Sign claims into a JWT that expires ttl_seconds after ``now``.

    ``now`` defaults to the current UTC time; tests pass a past instant to
    mint already-expired tokens.
    """
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        **claims,
        "typ": token_type,
        "jti": secrets.token_hex(8),
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(seconds=ttl_seconds)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def decode_token(token: str, secret: str, *, token_type: str | None = None) -> dict[str, Any]:
    """Verify a JWT against ``secret`` and return its claims.

    Raises:
        MalformedTokenError:   not a JWT, bad claims, or wrong "typ".
        InvalidSignatureError: signature does not verify with ``secret``.
        TokenExpiredError:     signature is fine but exp has passed.
    """
    if not token or not isinstance(token, str):
        raise MalformedTokenError("Empty token.")
    try:
        jwt.get_unverified_header(token)
    except JWTError as exc:
        raise MalformedTokenError("Token is not a well-formed JWT.") from exc

    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpiredError("Token has expired.") from exc
    except JWTClaimsError as exc:
        raise MalformedTokenError("Token claims are invalid.") from exc
    except JWTError as exc:
        # jose folds signature failures into the generic JWTError.
        raise InvalidSignatureError("Token signature verification failed.") from exc

    if token_type is not None and payload.get("typ") != token_type:
        raise MalformedTokenError("Unexpected token type.")
    if not isinstance(payload.get("sub"), str) or not payload["sub"]:
        raise MalformedTokenError("Token has no subject.")
    return payload


# ---------------------------------------------------------------------------
# Codec bound to the configured secrets and lifetimes
# ---------------------------------------------------------------------------


class TokenCodec:
    """Issues and verifies access and refresh tokens.

    Usage:
        codec = TokenCodec.from_settings(get_settings())
        pair_access = codec.issue_access_token(user)
        claims = codec.verify_refresh_token(raw_refresh_token)
    """

    def __init__(
        self,
        *,
        access_secret: str,
        refresh_secret: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("Both access and refresh secrets are required.")
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh secrets must differ.")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl_seconds = access_ttl_seconds
        self.refresh_ttl_seconds = refresh_ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(
            access_secret=settings.access_secret,
            refresh_secret=settings.refresh_secret,
            access_ttl_seconds=settings.access_ttl_seconds,
            refresh_ttl_seconds=settings.refresh_ttl_seconds,
        )

    def issue_access_token(self, user: User, now: datetime | None = None) -> str:
        claims = {"sub": user.id, "email": user.email, "role": user.role}
        return encode_token(claims, self._access_secret, self.access_ttl_seconds, token_type=ACCESS, now=now)

    def issue_refresh_token(self, user_id: str, session_id: str, now: datetime | None = None) -> str:
        claims = {"sub": user_id, "sess": session_id}
        return encode_token(claims, self._refresh_secret, self.refresh_ttl_seconds, token_type=REFRESH, now=now)

    def verify_access_token(self, token: str) -> AccessClaims:
        payload = decode_token(token, self._access_secret, token_type=ACCESS)
        email = payload.get("email")
        role = payload.get("role")
        if not isinstance(email, str) or not isinstance(role, str):
            raise MalformedTokenError("Access token is missing identity claims.")
        return AccessClaims(user_id=payload["sub"], email=email, role=role)

    def verify_refresh_token(self, token: str) -> RefreshClaims:
        payload = decode_token(token, self._refresh_secret, token_type=REFRESH)
        session_id = payload.get("sess")
        if not isinstance(session_id, str) or not session_id:
            session_id = None
        return RefreshClaims(user_id=payload["sub"], session_id=session_id)
