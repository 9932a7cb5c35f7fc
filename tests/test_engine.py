"""Unit tests for auth/engine.py -- register / login / verify.

Covers:
  - register + login + verify round trip
  - second register for the same username -> DuplicateUser, one record kept
  - wrong password and unknown user -> indistinguishable InvalidCredentials
  - input shape validation -> InvalidInput, nothing stored
  - tokens from another secret, tampered tokens, expired tokens
  - driver errors surface as StoreUnavailable, never as driver exceptions
  - N concurrent registrations of one username -> exactly one success,
    for the memory store and for SQLite both in-memory and file-backed
  - create_auth() selects the adapter from config
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from auth.engine import AuthEngine, create_auth
from auth.errors import (
    DuplicateUser,
    ExpiredToken,
    InvalidCredentials,
    InvalidInput,
    InvalidToken,
    StoreUnavailable,
)
from auth.models import SessionClaim
from auth.store import MemoryCredentialStore, SqlCredentialStore

# ---------------------------------------------------------------------------
# Register / login / verify
# ---------------------------------------------------------------------------


def test_register_login_verify_round_trip(engine):
    engine.register("alice", "pw1")
    token = engine.login("alice", "pw1")
    claim = engine.verify(token)
    assert claim.subject == "alice"
    assert claim.expires_at is not None


def test_register_stores_hash_not_plaintext(engine):
    engine.register("alice", "pw1")
    record = engine.store.find_by_username("alice")
    assert record.password_hash != "pw1"
    assert engine.hasher.verify("pw1", record.password_hash)


def test_register_twice_raises_duplicate(engine):
    engine.register("alice", "pw1")
    with pytest.raises(DuplicateUser):
        engine.register("alice", "pw2")
    assert len(engine.store) == 1
    # The original password still works; the second attempt changed nothing.
    assert engine.verify(engine.login("alice", "pw1")).subject == "alice"


def test_wrong_password_and_unknown_user_indistinguishable(engine):
    engine.register("alice", "pw1")
    with pytest.raises(InvalidCredentials) as wrong_pw:
        engine.login("alice", "pw2")
    with pytest.raises(InvalidCredentials) as unknown:
        engine.login("bob", "anything")
    assert type(wrong_pw.value) is type(unknown.value)
    assert str(wrong_pw.value) == str(unknown.value)
    assert wrong_pw.value.code == unknown.value.code


@pytest.mark.parametrize(
    "username, password",
    [
        ("", "pw1"),
        ("alice", ""),
        (" alice", "pw1"),
        ("alice ", "pw1"),
        ("a" * 256, "pw1"),
        ("alice", "p" * 73),
        (None, "pw1"),
        ("alice", None),
    ],
)
def test_register_rejects_bad_shapes(engine, username, password):
    with pytest.raises(InvalidInput):
        engine.register(username, password)
    assert len(engine.store) == 0


def test_login_with_empty_username_is_invalid_credentials(engine):
    with pytest.raises(InvalidCredentials):
        engine.login("", "pw1")


class _ForbiddenStore:
    backend_errors = ()

    def find_by_username(self, username):
        pytest.fail("verify() must not read the credential store")

    def create(self, username, password_hash):
        pytest.fail("verify() must not write the credential store")

    def close(self):
        pass


def test_verify_does_not_consult_store(engine, config):
    engine.register("alice", "pw1")
    token = engine.login("alice", "pw1")
    detached = AuthEngine(config, _ForbiddenStore())
    assert detached.verify(token).subject == "alice"


# ---------------------------------------------------------------------------
# Token integrity through the engine
# ---------------------------------------------------------------------------


def test_tampered_signature_rejected(engine):
    engine.register("alice", "pw1")
    header, payload, signature = engine.login("alice", "pw1").split(".")
    flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
    with pytest.raises(InvalidToken):
        engine.verify(f"{header}.{payload}.{flipped}")


def test_token_from_other_secret_rejected(engine, make_config, other_secret):
    other = create_auth(make_config(secret=other_secret))
    other.register("alice", "pw1")
    token = other.login("alice", "pw1")
    with pytest.raises(InvalidToken):
        engine.verify(token)


def test_expired_token_propagates(engine):
    stale = SessionClaim(subject="alice", issued_at=datetime.now(timezone.utc) - timedelta(hours=2))
    token = engine.tokens.issue(stale)
    with pytest.raises(ExpiredToken):
        engine.verify(token)


# ---------------------------------------------------------------------------
# Store failure translation
# ---------------------------------------------------------------------------


class _StoreDown(Exception):
    pass


class _UnreachableStore:
    backend_errors = (_StoreDown,)

    def find_by_username(self, username):
        raise _StoreDown("connection refused")

    def create(self, username, password_hash):
        raise _StoreDown("connection refused")

    def close(self):
        pass


def test_store_errors_become_store_unavailable(config):
    engine = AuthEngine(config, _UnreachableStore())
    with pytest.raises(StoreUnavailable) as exc_info:
        engine.register("alice", "pw1")
    assert isinstance(exc_info.value.__cause__, _StoreDown)
    with pytest.raises(StoreUnavailable):
        engine.login("alice", "pw1")


def test_unreachable_database_at_construction(make_config, tmp_path):
    missing = tmp_path / "no-such-dir" / "auth.db"
    with pytest.raises(StoreUnavailable):
        create_auth(make_config(storage_type="postgres", db_uri=f"sqlite:///{missing}"))


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


@pytest.fixture(params=["memory", "sqlite-memory", "sqlite-file"])
def any_store_engine(request, make_config, tmp_path):
    """Engine over each store that can take concurrent writers in-process.

    mongomock checks its unique index and inserts in separate steps, so the
    document adapter's atomicity belongs to a real MongoDB server and is not
    exercised here.
    """
    if request.param == "memory":
        config = make_config()
    elif request.param == "sqlite-memory":
        config = make_config(storage_type="postgres", db_uri="sqlite://")
    else:
        config = make_config(storage_type="postgres", db_uri=f"sqlite:///{tmp_path / 'auth.db'}")
    auth = create_auth(config)
    yield auth
    auth.close()


def test_concurrent_register_same_username(any_store_engine):
    attempts = 8

    def attempt(_):
        try:
            any_store_engine.register("alice", "pw1")
            return "ok"
        except DuplicateUser:
            return "duplicate"

    with ThreadPoolExecutor(max_workers=attempts) as pool:
        results = list(pool.map(attempt, range(attempts)))

    assert results.count("ok") == 1
    assert results.count("duplicate") == attempts - 1
    assert any_store_engine.verify(any_store_engine.login("alice", "pw1")).subject == "alice"


def test_concurrent_register_distinct_usernames(any_store_engine):
    names = [f"user{i}" for i in range(8)]
    with ThreadPoolExecutor(max_workers=len(names)) as pool:
        list(pool.map(lambda name: any_store_engine.register(name, "pw1"), names))
    for name in names:
        assert any_store_engine.store.find_by_username(name) is not None


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_create_auth_memory(engine):
    assert isinstance(engine.store, MemoryCredentialStore)


def test_create_auth_relational(make_config):
    engine = create_auth(make_config(storage_type="postgres", db_uri="sqlite://"))
    assert isinstance(engine.store, SqlCredentialStore)
    engine.register("alice", "pw1")
    assert engine.verify(engine.login("alice", "pw1")).subject == "alice"
    engine.close()


def test_engines_are_independent(make_config):
    first = create_auth(make_config())
    second = create_auth(make_config())
    first.register("alice", "pw1")
    with pytest.raises(InvalidCredentials):
        second.login("alice", "pw1")
