"""
tests/conftest.py -- Shared test fixtures for authcore.

This module provides:
  - config:     AuthConfig for an in-memory engine with a cheap bcrypt cost
  - engine:     a fresh AuthEngine per test (clean store, no shared state)
  - api_client: TestClient over create_app(engine), lifespan included

Design: every fixture builds its own engine. There is no process-wide
instance to reset between tests, so two tests can never see each other's
users. bcrypt_rounds=4 is the bcrypt minimum and keeps hashing fast.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.engine import AuthEngine, create_auth
from core.config import AuthConfig

SECRET = "test-secret-key-for-authcore-0123456789"
OTHER_SECRET = "another-secret-key-for-authcore-9876543210"


def _make_config(**overrides) -> AuthConfig:
    values = {"secret": SECRET, "storage_type": "memory", "bcrypt_rounds": 4}
    values.update(overrides)
    return AuthConfig(**values)


@pytest.fixture
def secret() -> str:
    return SECRET


@pytest.fixture
def other_secret() -> str:
    return OTHER_SECRET


@pytest.fixture
def make_config():
    """Factory for test configs; keyword arguments override the defaults."""
    return _make_config


@pytest.fixture
def config() -> AuthConfig:
    return _make_config()


@pytest.fixture
def engine(config: AuthConfig) -> Generator[AuthEngine, None, None]:
    auth = create_auth(config)
    yield auth
    auth.close()


@pytest.fixture
def api_client(engine: AuthEngine) -> Generator[tuple[TestClient, AuthEngine], None, None]:
    """Yield (client, engine) for HTTP integration tests.

    The client runs the real lifespan, which adopts the given engine instead
    of building one from the environment.
    """
    app = create_app(engine)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, engine
