"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore and SessionStore are the repositories; _row_to_user /
_row_to_session are the mappers. Service code never touches SQL directly.

Both stores share one Engine (see open_engine()), so users and sessions live
in the same database and the same connection pool.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  SessionStore.revoke() is a conditional UPDATE (... AND revoked = 0). The
  rowcount tells the caller whether *this* call flipped the flag, which is how
  refresh-token rotation detects that a concurrent request already used the
  same session. Revoking an already-revoked session is a harmless no-op.

  UserStore.create() relies on UNIQUE(email). Two concurrent registrations of
  the same address cannot both insert; the loser gets IntegrityError.

Timestamps:
  Stored as fixed-width ISO 8601 UTC strings (microsecond precision, always
  32 chars) so that string comparison in SQL matches chronological order on
  every backend, including SQLite which has no native timestamp type.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func
from sqlalchemy.engine import Engine

from auth.models import Session, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(200), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("full_name", String(200)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("expires_at", String(32), nullable=False, index=True),
    Column("revoked", Integer, nullable=False, server_default="0"),
    Column("last_used_at", String(32)),
    Column("ip", String(45)),  # fits an IPv6 literal
    Column("user_agent", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    WAL (Write-Ahead Logging) allows readers to proceed without blocking
    during writes. Set per-connection because SQLite PRAGMAs are not
    inherited by new connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def open_engine(db_url: str) -> Engine:
    """Create an Engine for db_url and make sure both auth tables exist.

    create_all() is idempotent (CREATE TABLE IF NOT EXISTS semantics), so this
    is safe to call on every startup.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


# ---------------------------------------------------------------------------
# User repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        engine = open_engine("sqlite:///auth.db")
        users = UserStore(engine)
        user = users.create(User(email="a@x.com", password_hash=hash_password("secret")))
        users.find_by_email("a@x.com")
    """

    _UPDATABLE_FIELDS: set = {"email", "password_hash", "role", "full_name"}

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, user: User) -> User:
        """Insert a new user, assign its id and timestamps, and return it.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        The service turns that into DuplicateEmailError.
        """
        now = _utcnow()
        user_id = str(uuid4())
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email,
                    password_hash=user.password_hash,
                    role=user.role,
                    full_name=user.full_name,
                    created_at=_to_db(now),
                    updated_at=_to_db(now),
                )
            )
            conn.commit()
        return User(
            id=user_id,
            email=user.email,
            password_hash=user.password_hash,
            role=user.role,
            full_name=user.full_name,
            created_at=now,
            updated_at=now,
        )

    def find_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: email, password_hash, role, full_name. Unknown keys
        raise ValueError rather than being silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - self._UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return False
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(**fields, updated_at=_to_db(_utcnow()))
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Session repository
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for Session entities.

    ``now`` parameters let the session manager evaluate expiry against its own
    clock; they default to the current UTC time.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, session: Session) -> Session:
        """Insert a new session, assign its id and timestamps, and return it.

        created_at is taken from the given session when set (the session
        manager passes its own clock), otherwise the current UTC time.
        """
        now = session.created_at or _utcnow()
        session_id = str(uuid4())
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session_id,
                    user_id=session.user_id,
                    expires_at=_to_db(session.expires_at),
                    revoked=1 if session.revoked else 0,
                    last_used_at=_to_db(session.last_used_at),
                    ip=session.ip,
                    user_agent=session.user_agent,
                    created_at=_to_db(now),
                    updated_at=_to_db(now),
                )
            )
            conn.commit()
        return Session(
            id=session_id,
            user_id=session.user_id,
            expires_at=session.expires_at,
            revoked=session.revoked,
            last_used_at=session.last_used_at,
            ip=session.ip,
            user_agent=session.user_agent,
            created_at=now,
            updated_at=now,
        )

    def find_by_id(self, session_id: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def find_by_user_id(self, user_id: str) -> list[Session]:
        """Return every session of a user, including revoked and expired ones (newest first)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select().where(_sessions.c.user_id == user_id).order_by(_sessions.c.created_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def find_active_by_user_id(self, user_id: str, now: datetime | None = None) -> list[Session]:
        """Return unrevoked, unexpired sessions of a user, most recently used first.

        A session that was never refreshed counts as used at its creation time.
        """
        cutoff = _to_db(now or _utcnow())
        recency = func.coalesce(_sessions.c.last_used_at, _sessions.c.created_at)
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select()
                .where(
                    (_sessions.c.user_id == user_id)
                    & (_sessions.c.revoked == 0)
                    & (_sessions.c.expires_at > cutoff)
                )
                .order_by(recency.desc(), _sessions.c.created_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def update_last_used(
        self,
        session_id: str,
        ip: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Stamp last_used_at; overwrite ip / user_agent only when given."""
        stamp = _to_db(now or _utcnow())
        values: dict = {"last_used_at": stamp, "updated_at": stamp}
        if ip:
            values["ip"] = ip
        if user_agent:
            values["user_agent"] = user_agent
        with self.engine.connect() as conn:
            conn.execute(_sessions.update().where(_sessions.c.id == session_id).values(**values))
            conn.commit()

    def revoke(self, session_id: str) -> bool:
        """Mark a session revoked.

        Returns True only if this call changed the row (it existed and was
        still active). False means not found or already revoked.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.id == session_id) & (_sessions.c.revoked == 0))
                .values(revoked=1, updated_at=_to_db(_utcnow()))
            )
            conn.commit()
        return result.rowcount > 0

    def revoke_all_by_user_id(self, user_id: str) -> int:
        """Revoke every still-active session of a user. Returns the number revoked."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.user_id == user_id) & (_sessions.c.revoked == 0))
                .values(revoked=1, updated_at=_to_db(_utcnow()))
            )
            conn.commit()
        return result.rowcount

    def delete_expired(self, now: datetime | None = None) -> int:
        """Delete sessions whose expires_at is in the past, revoked or not."""
        cutoff = _to_db(now or _utcnow())
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at < cutoff))
            conn.commit()
        return result.rowcount

    def delete(self, session_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        full_name=row.full_name,
        created_at=_from_db(row.created_at),
        updated_at=_from_db(row.updated_at),
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        expires_at=_from_db(row.expires_at),
        revoked=bool(row.revoked),
        last_used_at=_from_db(row.last_used_at),
        ip=row.ip,
        user_agent=row.user_agent,
        created_at=_from_db(row.created_at),
        updated_at=_from_db(row.updated_at),
    )
