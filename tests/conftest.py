"""
tests/conftest.py -- Shared test fixtures for Credgate.

This module provides:
  - rows: an isolated RowStore per test
  - issuer, authenticator: wired over `rows` and the fake mail world in fakes.py
  - api_client: TestClient with a patched lifespan over isolated stores

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

The DEBUG env var must be set before any core.config import so
get_settings() auto-generates SECRET_KEY rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any core/auth import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.authenticator import Authenticator
from auth.store import CredentialStore
from auth.tokens import JWTTokenIssuer
from db.rows import RowStore
from fakes import TEST_SECRET, make_verifier, memory_db_url
from verify.policy import DomainPolicy

# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def rows() -> Generator[RowStore, None, None]:
    store = RowStore(db_url=memory_db_url(f"test_rows_{uuid.uuid4().hex}"))
    store.create_tables()
    yield store
    store.close()


@pytest.fixture
def issuer(rows: RowStore) -> JWTTokenIssuer:
    return JWTTokenIssuer(rows, TEST_SECRET, expire_seconds=600)


@pytest.fixture
def authenticator(rows: RowStore, issuer: JWTTokenIssuer) -> Authenticator:
    verifier, _, _ = make_verifier(policy=DomainPolicy.blacklist(["blocked.example"]))
    return Authenticator(CredentialStore(rows), verifier, issuer)


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(rows: RowStore, authenticator: Authenticator):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can cancel a real
    asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.rows = rows
        app.state.issuer = authenticator.issuer
        app.state.authenticator = authenticator
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with isolated in-memory stores.

    Each test module gets its own database, so modules never share credentials.
    """
    rows = RowStore(db_url=memory_db_url(f"test_api_{uuid.uuid4().hex}"))
    rows.create_tables()
    verifier, _, _ = make_verifier(policy=DomainPolicy.blacklist(["blocked.example"]))
    authenticator = Authenticator(CredentialStore(rows), verifier, JWTTokenIssuer(rows, TEST_SECRET))

    app.router.lifespan_context = _patch_lifespan(rows, authenticator)

    # TrustedHostMiddleware rejects the default "testserver" host.
    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client

    rows.close()
