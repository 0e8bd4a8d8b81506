"""
tests/conftest.py -- Shared test fixtures for the session auth service.

This module provides:
  - FakeClock: controllable "now" for session expiry tests
  - hasher: argon2 hasher with cheap cost parameters
  - user_store / session_store: isolated SQLite file stores per test
  - resolver / manager: core services wired to those stores
  - client: TestClient over the real app with a patched lifespan

Design: each test gets its own SQLite file under tmp_path. File databases
(not :memory:) are required because TestClient runs sync handlers in a
thread pool and the concurrency tests race real threads; every connection
must see the same schema and data.

DEBUG and the Argon2 cost env vars must be set before any auth/core import so
get_settings() auto-generates SECRET_KEY and hashing stays fast.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ARGON2_TIME_COST", "1")
os.environ.setdefault("ARGON2_MEMORY_COST", "1024")
os.environ.setdefault("ARGON2_PARALLELISM", "1")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.identity import IdentityResolver
from auth.passwords import CredentialHasher
from auth.sessions import SessionManager
from auth.store import SessionStore, UserStore


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self) -> None:
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> CredentialHasher:
    return CredentialHasher(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'auth.db'}"


@pytest.fixture
def user_store(db_url) -> Generator[UserStore, None, None]:
    store = UserStore(db_url=db_url)
    yield store
    store.close()


@pytest.fixture
def session_store(db_url) -> Generator[SessionStore, None, None]:
    store = SessionStore(db_url=db_url)
    yield store
    store.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def resolver(user_store, hasher) -> IdentityResolver:
    return IdentityResolver(user_store, hasher)


@pytest.fixture
def manager(session_store, user_store, clock) -> SessionManager:
    return SessionManager(session_store, user_store, max_age_seconds=3600, clock=clock)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store, session_store, hasher, resolver, manager, oauth):
    """Return a lifespan that wires pre-built test objects into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.session_store = session_store
        app.state.hasher = hasher
        app.state.resolver = resolver
        app.state.session_manager = manager
        app.state.oauth = oauth
        yield

    return test_lifespan


@pytest.fixture
def oauth_registry() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(user_store, session_store, hasher, resolver, manager, oauth_registry) -> Generator[TestClient, None, None]:
    """TestClient over the real app; cookies persist across requests in one test."""
    app.router.lifespan_context = _patch_lifespan(
        user_store, session_store, hasher, resolver, manager, oauth_registry
    )
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as c:
        yield c


def register(client: TestClient, email: str = "a@x.com", password: str = "password1"):
    return client.post("/api/v1/auth/register", json={"email": email, "password": password})


def login(client: TestClient, email: str = "a@x.com", password: str = "password1"):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})
