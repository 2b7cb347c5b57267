"""
auth/service.py -- Auth orchestration: register, login, refresh, logout, sessions.

AuthService is the only component with business rules. It composes the
credential verifier (auth.passwords), the session manager (auth.sessions),
the token codec (auth.tokens) and the user store.

Error policy:
  Every expected failure leaves this module as one of the AuthError
  subclasses in auth.errors. Refresh failures of any origin -- bad signature,
  expiry, malformed token, missing/expired/revoked session, owner mismatch,
  rotation race, deleted user -- are all raised as InvalidRefreshTokenError.
  The precise reason is logged, never returned. Store failures
  (SQLAlchemyError) are not caught here and surface as internal errors.

Concurrency:
  The service holds no mutable state; all durable state is in the stores.
  With rotation enabled, the conditional revoke in SessionStore decides which
  of two concurrent refreshes of the same token wins. The loser sees
  revoke() == False and fails cleanly instead of minting an orphaned pair.

  revoke_session() checks ownership and then revokes. The gap between the two
  is harmless: a session's owner never changes and revoke is idempotent.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    AuthError,
    DuplicateEmailError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    TokenError,
    UserNotFoundError,
)
from auth.models import Session, SessionInfo, SessionMetadata, TokenPair, User
from auth.passwords import equalize_timing, hash_password, needs_rehash, verify_password
from auth.sessions import SessionManager, utcnow
from auth.store import SessionStore, UserStore
from auth.tokens import TokenCodec

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from core.config import Settings

logger = logging.getLogger("sessionguard.auth")

DEFAULT_ROLE = "user"


def require_role(user: User, role: str) -> User:
    """Capability check: raise ForbiddenError unless user.role == role."""
    if user.role != role:
        raise ForbiddenError(f"{role.capitalize()} role required.")
    return user


class AuthService:
    """Usage:
    service = AuthService(
        users=UserStore(engine),
        sessions=SessionManager(SessionStore(engine)),
        tokens=TokenCodec.from_settings(settings),
        refresh_ttl_seconds=settings.refresh_ttl_seconds,
        rotation_enabled=settings.refresh_rotation_enabled,
    )
    pair = service.login("a@x.com", "secret1", SessionMetadata(ip="10.0.0.1"))
    """

    def __init__(
        self,
        *,
        users: UserStore,
        sessions: SessionManager,
        tokens: TokenCodec,
        refresh_ttl_seconds: int,
        rotation_enabled: bool = False,
        single_session_per_user: bool = False,
    ) -> None:
        self._users = users
        self._sessions = sessions
        self._tokens = tokens
        self._refresh_ttl = timedelta(seconds=refresh_ttl_seconds)
        self.rotation_enabled = rotation_enabled
        self.single_session_per_user = single_session_per_user

    @property
    def access_ttl_seconds(self) -> int:
        return self._tokens.access_ttl_seconds

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, full_name: str | None = None) -> User:
        """Create a user with the default role.

        The returned User still carries password_hash; stripping it is the
        caller's job when shaping a response.
        """
        if not email:
            raise ValueError("email is required.")
        if not password:
            raise ValueError("password is required.")
        if self._users.find_by_email(email) is not None:
            raise DuplicateEmailError()

        password_hash = hash_password(password)
        try:
            user = self._users.create(
                User(email=email, password_hash=password_hash, role=DEFAULT_ROLE, full_name=full_name)
            )
        except IntegrityError as exc:
            # A concurrent registration won the UNIQUE(email) race.
            raise DuplicateEmailError() from exc
        logger.info("Registered user %s", user.id)
        return user

    def login(self, email: str, password: str, metadata: SessionMetadata | None = None) -> TokenPair:
        """Verify credentials, open a new session, and issue a token pair.

        Unknown email and wrong password raise the same InvalidCredentialsError
        after the same amount of hashing work [C1]. Existing sessions stay
        valid unless single_session_per_user is set.
        """
        metadata = metadata or SessionMetadata()
        user = self._users.find_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return early before running argon2 [C1]
            equalize_timing(password)
            logger.info("Login failed")
            raise InvalidCredentialsError()
        if not verify_password(user.password_hash, password):
            logger.info("Login failed")
            raise InvalidCredentialsError()

        if needs_rehash(user.password_hash):
            self._users.update(user.id, password_hash=hash_password(password))
            logger.info("Upgraded password hash for user %s", user.id)

        if self.single_session_per_user:
            self._sessions.revoke_all_by_user(user.id)

        session = self._open_session(user, metadata)
        logger.info("Login succeeded for user %s (session %s)", user.id, session.id)
        return self._issue_pair(user, session)

    def authenticate(self, access_token: str) -> User:
        """Resolve an access token to its user.

        Access tokens are stateless: they stay usable until they expire, even
        after the session they were issued with is revoked.
        """
        try:
            claims = self._tokens.verify_access_token(access_token)
        except TokenError as exc:
            raise InvalidCredentialsError() from exc
        user = self._users.find_by_id(claims.user_id)
        if user is None:
            raise InvalidCredentialsError()
        return user

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str, metadata: SessionMetadata | None = None) -> TokenPair:
        """Exchange a refresh token for a new token pair.

        Every classified failure is re-raised as InvalidRefreshTokenError
        exactly once, here. Unexpected exceptions propagate untouched.
        """
        metadata = metadata or SessionMetadata()
        try:
            return self._refresh(refresh_token, metadata)
        except InvalidRefreshTokenError:
            raise
        except TokenError as exc:
            logger.warning("Refresh rejected: token %s", exc.reason)
            raise InvalidRefreshTokenError() from exc
        except AuthError as exc:
            logger.warning("Refresh rejected: %s", exc.code)
            raise InvalidRefreshTokenError() from exc

    def _refresh(self, refresh_token: str, metadata: SessionMetadata) -> TokenPair:
        claims = self._tokens.verify_refresh_token(refresh_token)
        if claims.session_id is None:
            logger.warning("Refresh rejected: token carries no session")
            raise InvalidRefreshTokenError()

        session = self._sessions.find_by_id(claims.session_id)
        if session is None:
            logger.warning("Refresh rejected: session %s not found", claims.session_id)
            raise InvalidRefreshTokenError()
        if not self._sessions.is_valid(session):
            reason = "revoked" if session.revoked else "expired"
            logger.warning("Refresh rejected: session %s %s", session.id, reason)
            raise InvalidRefreshTokenError()
        if session.user_id != claims.user_id:
            logger.warning("Refresh rejected: session %s is not bound to the token subject", session.id)
            raise InvalidRefreshTokenError()

        self._sessions.touch(session.id, ip=metadata.ip, user_agent=metadata.user_agent)

        user = self._users.find_by_id(claims.user_id)
        if user is None:
            raise UserNotFoundError()

        if not self.rotation_enabled:
            return self._issue_pair(user, session)

        # Single-use refresh tokens: only the request that actually flips the
        # session to revoked may open the replacement.
        if not self._sessions.revoke(session.id):
            logger.warning("Refresh rejected: session %s was rotated concurrently", session.id)
            raise InvalidRefreshTokenError()
        replacement = self._open_session(
            user,
            SessionMetadata(
                ip=metadata.ip or session.ip,
                user_agent=metadata.user_agent or session.user_agent,
            ),
        )
        logger.info("Rotated session %s -> %s", session.id, replacement.id)
        return self._issue_pair(user, replacement)

    # ------------------------------------------------------------------
    # Session management
    # ------------------------------------------------------------------

    def logout(self, user_id: str, session_id: str | None = None) -> dict:
        """Revoke one session (when session_id is given) or all of the user's sessions.

        Always succeeds. Revoking a session id that is already revoked -- or
        that belongs to someone else -- changes nothing: only sessions owned by
        user_id are ever touched.
        """
        if session_id is not None:
            session = self._sessions.find_by_id(session_id)
            if session is not None and session.user_id == user_id:
                self._sessions.revoke(session_id)
            return {"message": "Logged out successfully."}
        self._sessions.revoke_all_by_user(user_id)
        return {"message": "Logged out from all sessions."}

    def list_sessions(self, user_id: str) -> list[SessionInfo]:
        return [_to_session_info(s) for s in self._sessions.find_active_by_user_id(user_id)]

    def revoke_session(self, user_id: str, session_id: str) -> dict:
        """Revoke a session owned by user_id; ForbiddenError otherwise.

        Unknown ids and other users' ids get the same ForbiddenError so the
        endpoint cannot be used to probe which session ids exist.
        """
        session = self._sessions.find_by_id(session_id)
        if session is None or session.user_id != user_id:
            logger.warning("User %s attempted to revoke session %s they do not own", user_id, session_id)
            raise ForbiddenError("Session not found or not owned by user.")
        self._sessions.revoke(session_id)
        return {"message": "Session revoked successfully."}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open_session(self, user: User, metadata: SessionMetadata) -> Session:
        expires_at = self._sessions.now() + self._refresh_ttl
        return self._sessions.create(user.id, expires_at, ip=metadata.ip, user_agent=metadata.user_agent)

    def _issue_pair(self, user: User, session: Session) -> TokenPair:
        # Same clock as the session, so token exp and session expires_at agree.
        now = self._sessions.now()
        return TokenPair(
            access_token=self._tokens.issue_access_token(user, now=now),
            refresh_token=self._tokens.issue_refresh_token(user.id, session.id, now=now),
        )


def _to_session_info(session: Session) -> SessionInfo:
    return SessionInfo(
        session_id=session.id,
        created_at=session.created_at,
        last_used_at=session.last_used_at,
        expires_at=session.expires_at,
        ip=session.ip,
        user_agent=session.user_agent,
    )


def build_auth_service(
    settings: Settings,
    engine: Engine,
    clock: Callable[[], datetime] = utcnow,
) -> AuthService:
    """Wire an AuthService from validated settings and an open engine."""
    return AuthService(
        users=UserStore(engine),
        sessions=SessionManager(SessionStore(engine), clock=clock),
        tokens=TokenCodec.from_settings(settings),
        refresh_ttl_seconds=settings.refresh_ttl_seconds,
        rotation_enabled=settings.refresh_rotation_enabled,
        single_session_per_user=settings.single_session_per_user,
    )
