"""
tests/conftest.py -- Shared test fixtures for the user service.

This module provides:
  - settings_factory: make_settings(**overrides) with fast test defaults
  - store: every test using it runs once per backend (memory, sql)
  - service: SessionService over that store with test settings
  - admin: (user_id, token) for a user holding every permission bit
  - api: (public_client, private_client, service) sharing one service

Design: the SQL backend runs on "sqlite://" which SQLStore pins to a single
StaticPool connection. TestClient runs sync route handlers in a thread pool;
a plain per-connection :memory: database would present a blank schema to
each worker thread.

BCRYPT_ROUNDS must be set before any auth module import. auth/tokens.py reads
the cost once at import time, and the default (12) would make every test
that creates a user take a noticeable fraction of a second.
"""

from __future__ import annotations

import os
from collections.abc import Generator

# CRITICAL: Set before any auth/core import so get_settings() picks it up.
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("ADMIN_LOGIN", None)
os.environ.pop("ADMIN_PASSWORD", None)
os.environ.pop("DATABASE_URL", None)

import pytest
from fastapi.testclient import TestClient

from api.main import create_private_app, create_public_app
from auth.models import Token
from auth.service import SessionService
from core.config import Settings
from storage import MemoryStore, SQLStore
from storage.base import Store

# ---------------------------------------------------------------------------
# Store / service fixtures
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> Settings:
    values = {"bcrypt_rounds": 4, "token_ttl_seconds": 600, "token_generate_retries": 5}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings_factory():
    """Return make_settings so tests can build Settings with their own overrides."""
    return make_settings


@pytest.fixture(params=["memory", "sql"])
def store(request) -> Generator[Store, None, None]:
    """A fresh, empty store. Parametrized so contract tests cover both backends."""
    s: Store = MemoryStore() if request.param == "memory" else SQLStore("sqlite://")
    yield s
    s.close()


@pytest.fixture
def service(store: Store) -> SessionService:
    return SessionService(store, make_settings())


@pytest.fixture
def admin(service: SessionService) -> tuple[str, Token]:
    """Yield (admin_id, token) for a user holding every permission bit."""
    admin_id = service.ensure_admin("admin", "adminpw")
    return admin_id, service.create_token("admin", "adminpw")


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def api(service: SessionService) -> Generator[tuple[TestClient, TestClient, SessionService], None, None]:
    """Yield (public_client, private_client, service).

    follow_redirects=False: login and refresh answer 302 with the token pair
    in the body, and tests assert on that status directly.
    """
    public = TestClient(create_public_app(service), follow_redirects=False, raise_server_exceptions=True)
    private = TestClient(create_private_app(service), follow_redirects=False, raise_server_exceptions=True)
    with public, private:
        yield public, private, service
