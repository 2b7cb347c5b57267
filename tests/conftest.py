"""
tests/conftest.py -- Shared test fixtures for SessionGuard.

This module provides:
  - FakeClock / clock: a settable clock injected into SessionManager so
    expiry can be tested without sleeping
  - settings, engine: validated Settings and an in-memory SQLite engine
  - make_service: builds an AuthService with per-test policy overrides
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
api_client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Unit fixtures run on one thread and use plain :memory:.

ACCESS_SECRET / REFRESH_SECRET must be set before any project import so that
get_settings() validates instead of raising.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from uuid import uuid4

# CRITICAL: set secrets before any auth/core import so get_settings() succeeds.
os.environ.setdefault("ACCESS_SECRET", "test-access-secret-0123456789abcdef0123")
os.environ.setdefault("REFRESH_SECRET", "test-refresh-secret-0123456789abcdef012")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import AuthService, build_auth_service
from auth.store import open_engine
from core.config import Settings

ACCESS_SECRET = "unit-access-secret-aaaaaaaaaaaaaaaaaaaaaaaa"
REFRESH_SECRET = "unit-refresh-secret-bbbbbbbbbbbbbbbbbbbbbbb"


class FakeClock:
    """Callable clock starting at the real current time; advance() moves it forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        access_secret=ACCESS_SECRET,
        refresh_secret=REFRESH_SECRET,
        database_url="sqlite:///:memory:",
    )


@pytest.fixture
def engine(settings: Settings):
    eng = open_engine(settings.database_url)
    yield eng
    eng.dispose()


@pytest.fixture
def make_service(settings: Settings, engine, clock: FakeClock):
    """Return a factory: make_service(refresh_rotation_enabled=True, ...) -> AuthService.

    All services built in one test share the same database and clock.
    """

    def _make(**overrides) -> AuthService:
        return build_auth_service(settings.model_copy(update=overrides), engine, clock=clock)

    return _make


@pytest.fixture
def service(make_service) -> AuthService:
    return make_service()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(auth_service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-built AuthService into app.state so routes see an isolated
    test database. No sweep task is started.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = auth_service
        yield

    return test_lifespan


@pytest.fixture
def api_client(settings: Settings) -> Generator[TestClient, None, None]:
    """Yield a TestClient backed by a fresh shared-memory database (rotation disabled)."""
    db_url = f"sqlite:///file:test_api_{uuid4().hex}?mode=memory&cache=shared&uri=true"
    eng = open_engine(db_url)
    app.router.lifespan_context = _patch_lifespan(build_auth_service(settings, eng))
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
    eng.dispose()
