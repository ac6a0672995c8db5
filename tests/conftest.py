"""
tests/conftest.py -- Shared test fixtures for Gatekeeper.

This module provides:
  - FakeClock: a settable clock injected into SessionManager for expiry tests
  - store / sessions / directory: components over an isolated SQLite file
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - client: TestClient against the real app with a pre-created admin account

Design: every test gets its own SQLite *file* under tmp_path rather than
':memory:'. TestClient and the concurrency tests use several threads, and a
plain in-memory database is per-connection, so each thread would see a
blank schema.

Environment must be set before any api/, auth/ or core/ import:
  DEBUG=true               -- get_settings() auto-generates SECRET_KEY
  RATE_LIMIT_ENABLED=false -- many logins from one client must not hit 429
  BCRYPT_ROUNDS=4          -- minimum bcrypt cost keeps the suite fast
  ALLOWED_HOSTS            -- TestClient sends Host: testserver
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager, suppress

# CRITICAL: set before any project import.
os.environ.setdefault("DEBUG", "true")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ALLOWED_HOSTS"] = '["testserver", "localhost"]'

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.directory import DirectoryService
from auth.hashing import PasswordHasher
from auth.sessions import SessionManager
from auth.store import CredentialStore

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "Adminpass123!"
USER_PASSWORD = "Securepassword123."


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'auth.db'}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(db_url) -> Generator[CredentialStore, None, None]:
    s = CredentialStore(db_url)
    yield s
    s.close()


@pytest.fixture
def sessions(db_url, clock) -> Generator[SessionManager, None, None]:
    m = SessionManager(db_url, secret_key=TEST_SECRET, default_ttl=3600, clock=clock)
    yield m
    m.close()


@pytest.fixture
def directory(store, sessions, hasher) -> DirectoryService:
    return DirectoryService(store, sessions, hasher, session_ttl=3600)


@pytest.fixture
def admin_token(directory) -> str:
    directory.create_admin("Site Admin", ADMIN_EMAIL, ADMIN_PASSWORD)
    _, token = directory.login(ADMIN_EMAIL, ADMIN_PASSWORD)
    return token


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(directory: DirectoryService):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown has a real
    asyncio.Task to cancel, exactly like production.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = directory.store
        app.state.sessions = directory.sessions
        app.state.directory = directory
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.purge_task

    return test_lifespan


@pytest.fixture
def client(directory) -> Generator[TestClient, None, None]:
    """TestClient over the real app, wired to this test's directory.

    An admin account (ADMIN_EMAIL / ADMIN_PASSWORD) exists before the first
    request.
    """
    directory.create_admin("Site Admin", ADMIN_EMAIL, ADMIN_PASSWORD)
    app.router.lifespan_context = _patch_lifespan(directory)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def login(client: TestClient) -> Callable[[str, str], str]:
    """Return a helper that logs in over HTTP and returns the bearer token.

    The login response also sets the session cookie on the client's jar;
    the helper clears it so each test chooses its transport explicitly.
    """

    def _login(email: str, password: str) -> str:
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        client.cookies.clear()
        return resp.json()["data"]["access_token"]

    return _login


@pytest.fixture
def admin_headers(login) -> dict[str, str]:
    return {"Authorization": f"Bearer {login(ADMIN_EMAIL, ADMIN_PASSWORD)}"}
