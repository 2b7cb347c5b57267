"""
auth/sessions.py -- Validity-aware operations over the SessionStore.

SessionManager owns the session state machine:

    Active  --revoke / rotation-->  Revoked   (terminal)
    Active  --time passes------->   Expired   (terminal, detected lazily)

There is no background transition to Expired: is_valid() compares expires_at
with the manager's clock whenever a caller asks. Expired rows are only
physically removed by delete_expired(), a maintenance sweep that never runs on
the request path.

The clock is injectable so tests can move time forward without sleeping.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from auth.models import Session
from auth.store import SessionStore

logger = logging.getLogger("sessionguard.auth.sessions")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    def __init__(self, store: SessionStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def is_valid(self, session: Session) -> bool:
        """A session is valid iff it is not revoked and now < expires_at."""
        return not session.revoked and self._clock() < session.expires_at

    def create(
        self,
        user_id: str,
        expires_at: datetime,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> Session:
        session = self._store.create(
            Session(
                user_id=user_id,
                expires_at=expires_at,
                ip=ip,
                user_agent=user_agent,
                created_at=self._clock(),
            )
        )
        logger.debug("Session %s created for user %s", session.id, user_id)
        return session

    def find_by_id(self, session_id: str) -> Session | None:
        return self._store.find_by_id(session_id)

    def find_by_user_id(self, user_id: str) -> list[Session]:
        return self._store.find_by_user_id(user_id)

    def find_active_by_user_id(self, user_id: str) -> list[Session]:
        """Unrevoked, unexpired sessions of a user, most recently used first."""
        return self._store.find_active_by_user_id(user_id, now=self._clock())

    def touch(self, session_id: str, ip: str | None = None, user_agent: str | None = None) -> None:
        """Record a use of the session.

        Does not check validity -- callers decide whether the session may be used.
        """
        self._store.update_last_used(session_id, ip=ip, user_agent=user_agent, now=self._clock())

    def revoke(self, session_id: str) -> bool:
        """Revoke one session. Idempotent.

        Returns True if this call performed the revocation, False if the
        session was already revoked (or does not exist). Rotation uses the
        False case to detect a concurrent refresh of the same token.
        """
        revoked = self._store.revoke(session_id)
        if revoked:
            logger.info("Session %s revoked", session_id)
        return revoked

    def revoke_all_by_user(self, user_id: str) -> int:
        count = self._store.revoke_all_by_user_id(user_id)
        if count:
            logger.info("Revoked %d session(s) for user %s", count, user_id)
        return count

    def delete(self, session_id: str) -> bool:
        return self._store.delete(session_id)

    def delete_expired(self) -> int:
        """Maintenance sweep: delete every session past its expiry, revoked or not."""
        deleted = self._store.delete_expired(now=self._clock())
        logger.info("Expired session sweep removed %d row(s)", deleted)
        return deleted
