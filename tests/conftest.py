"""
tests/conftest.py -- Shared test fixtures for BranchDesk tests.

This module provides:
  - _make_test_engine(): one isolated in-memory SQLite engine per suffix
  - _seed_accounts(): the three system roles plus admin/user/inactive accounts
  - _patch_lifespan(): wires a test engine into app.state, bypassing real startup
  - engine / account_ids / codec / sessions / guard: unit-level fixtures on a
    fresh database per test
  - api_client / web_client: module-scoped TestClients on the assembled app

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any auth/core import:
  DEBUG=true         get_settings() auto-generates SECRET_KEY
  BCRYPT_ROUNDS=4    keeps hashing fast
  ALLOWED_HOSTS      TestClient sends Host: testserver

Seeded credentials (all fixtures):
  admin@test.com     / adminpass123     role admin, active
  user@test.com      / userpass123      role user, active
  inactive@test.com  / inactivepass123  role user, inactive
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any auth/core import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ["ALLOWED_HOSTS"] = '["testserver", "localhost"]'

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import attach_services
from asgi import app
from auth.guard import SessionGuard
from auth.models import Account, AccountStatus, Role, RoleName
from auth.passwords import hash_password
from auth.session import SessionService
from auth.store import AccountStore, TokenStore
from auth.tokens import DEFAULT_TOKEN_TTL, TokenCodec
from core.db import create_db_engine

SESSION_MAX_AGE = 8 * 3600

# ---------------------------------------------------------------------------
# Database helpers
# ---------------------------------------------------------------------------


def _make_test_engine(db_suffix: str) -> Engine:
    """Create an engine on an isolated named shared-memory SQLite database.

    Args:
        db_suffix: Unique string appended to the DB name so test modules and
                   unit tests never share state (e.g. 'api', 'web').
    """
    return create_db_engine(f"sqlite:///file:test_branchdesk_{db_suffix}?mode=memory&cache=shared&uri=true")


def _seed_accounts(engine: Engine) -> dict[str, int]:
    """Create system roles and the three test accounts. Returns ids by key.

    Keys: "admin", "user", "inactive" (account ids) and "role_admin",
    "role_manager", "role_user" (role ids).
    """
    store = AccountStore(engine)
    ids: dict[str, int] = {}
    for name in RoleName:
        ids[f"role_{name.value}"] = store.create_role(Role(name=name, is_system_role=True))

    ids["admin"] = store.create_account(
        Account(
            email="admin@test.com",
            password_hash=hash_password("adminpass123"),
            role_id=ids["role_admin"],
            employee_id="EMP-0001",
        )
    )
    ids["user"] = store.create_account(
        Account(email="user@test.com", password_hash=hash_password("userpass123"), role_id=ids["role_user"])
    )
    ids["inactive"] = store.create_account(
        Account(
            email="inactive@test.com",
            password_hash=hash_password("inactivepass123"),
            role_id=ids["role_user"],
            status=AccountStatus.inactive,
        )
    )
    return ids


def _patch_lifespan(engine: Engine):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-seeded test engine into app.state so TestClient routes see
    an isolated database rather than the configured DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        attach_services(app, engine)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit-level fixtures -- fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    test_engine = _make_test_engine(f"unit_{uuid.uuid4().hex}")
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def account_ids(engine: Engine) -> dict[str, int]:
    return _seed_accounts(engine)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec("unit-test-signing-key-0123456789abcdef", DEFAULT_TOKEN_TTL)


@pytest.fixture
def sessions(engine: Engine, account_ids: dict[str, int], codec: TokenCodec) -> SessionService:
    """SessionService over the seeded unit database."""
    return SessionService(AccountStore(engine), TokenStore(engine), codec, SESSION_MAX_AGE)


@pytest.fixture
def guard(sessions: SessionService) -> SessionGuard:
    return SessionGuard(sessions.codec, sessions.tokens)


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient for JSON API integration tests.

    The TestClient uses the real assembled app with a patched lifespan so
    tests hit real route handlers and middleware against a seeded in-memory
    database. Log in through POST /api/v1/auth/login; the client's cookie
    jar then carries auth-token for the rest of the test.
    """
    test_engine = _make_test_engine(f"api_{request.module.__name__}")
    _seed_accounts(test_engine)
    app.router.lifespan_context = _patch_lifespan(test_engine)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    test_engine.dispose()


@pytest.fixture(scope="module")
def web_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient for web route integration tests.

    follow_redirects=False is essential for web route tests: we assert on
    redirect *locations* (e.g. 302 to /login), which are invisible once
    the client follows the redirect and returns the final 200 response.
    """
    test_engine = _make_test_engine(f"web_{request.module.__name__}")
    _seed_accounts(test_engine)
    app.router.lifespan_context = _patch_lifespan(test_engine)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client

    test_engine.dispose()


@pytest.fixture(autouse=True)
def _fresh_cookie_jar(request) -> None:
    """Start every test logged out, even though the client is module-scoped."""
    for name in ("api_client", "web_client"):
        if name in request.fixturenames:
            request.getfixturevalue(name).cookies.clear()
