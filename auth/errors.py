"""
auth/errors.py -- Classified failures raised by the auth core.

Every expected, caller-recoverable outcome has its own exception class; the
class is the error kind. Each carries a stable machine-readable ``code`` that
the HTTP boundary copies into the error envelope.

Anything that is NOT an AuthError (e.g. sqlalchemy.exc.OperationalError when
the database is down) is an unexpected internal failure. The service never
catches those and never disguises them as one of the kinds below.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for classified authentication failures."""

    code = "auth_error"
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class DuplicateEmailError(AuthError):
    code = "duplicate_email"
    message = "Email already in use."


class InvalidCredentialsError(AuthError):
    """Unknown email, wrong password, or an unusable access token.

    The same class and message are used for every cause so callers cannot
    tell whether an account exists.
    """

    code = "invalid_credentials"
    message = "Invalid credentials."


class InvalidRefreshTokenError(AuthError):
    """Any refresh failure: bad token, missing/expired/revoked session, owner mismatch."""

    code = "invalid_refresh_token"
    message = "Invalid refresh token."


class ForbiddenError(AuthError):
    """Ownership or role check failed."""

    code = "forbidden"
    message = "Forbidden."


class UserNotFoundError(AuthError):
    """Internal only -- collapsed into InvalidRefreshTokenError by the refresh flow."""

    code = "user_not_found"
    message = "User not found."


# ---------------------------------------------------------------------------
# Token codec failures
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Base class for token verification failures (auth/tokens.py)."""

    reason = "invalid"


class InvalidSignatureError(TokenError):
    reason = "signature"


class TokenExpiredError(TokenError):
    reason = "expired"


class MalformedTokenError(TokenError):
    reason = "malformed"
