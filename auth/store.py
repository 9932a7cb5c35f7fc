"""
auth/store.py -- Credential store contract and its in-process adapters.

Pattern: Repository + Data Mapper. CredentialStore is the capability
contract every backend satisfies; the engine depends on nothing else.
Backends are selected at construction time by store_class(), never by
branching on a type tag inside the engine.

Adapters:
  MemoryCredentialStore -- dict guarded by a lock. Process lifetime only.
  SqlCredentialStore    -- SQLAlchemy Core; PostgreSQL in production, any
                           SQLAlchemy URL (e.g. SQLite, in-memory or file) in tests.
  MongoCredentialStore  -- PyMongo, see auth/mongo_store.py.

Uniqueness:
  create() must leave at most one record per username even under
  concurrent calls. The memory adapter holds its lock across the existence
  check and the insert; the SQL adapter relies on the UNIQUE constraint on
  users.username and maps IntegrityError to DuplicateUser.

Errors:
  Stores raise DuplicateUser themselves. Driver failures propagate as-is;
  each adapter lists the driver exception types in backend_errors so the
  engine can translate exactly those into StoreUnavailable.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import threading
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from auth.errors import DuplicateUser
from auth.models import UserRecord

if TYPE_CHECKING:
    from core.config import AuthConfig

logger = logging.getLogger("authcore.auth.store")

# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


@runtime_checkable
class CredentialStore(Protocol):
    """Capability contract for username -> password-hash persistence."""

    backend_errors: tuple[type[BaseException], ...]

    def find_by_username(self, username: str) -> UserRecord | None:
        """Return the record for username, or None. No side effects."""
        ...

    def create(self, username: str, password_hash: str) -> UserRecord:
        """Insert and return a new record. Raises DuplicateUser if username exists."""
        ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# In-memory adapter
# ---------------------------------------------------------------------------


class MemoryCredentialStore:
    """Dict-backed store. Contents vanish with the process.

    Usage:
        store = MemoryCredentialStore()
        store.create("alice", hasher.hash("pw"))
        record = store.find_by_username("alice")
    """

    backend_errors: tuple[type[BaseException], ...] = ()

    def __init__(self) -> None:
        self._records: dict[str, UserRecord] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: AuthConfig) -> MemoryCredentialStore:
        return cls()

    def find_by_username(self, username: str) -> UserRecord | None:
        return self._records.get(username)

    def create(self, username: str, password_hash: str) -> UserRecord:
        # Check-and-insert under one lock so concurrent registrations for the
        # same username cannot both pass the existence check.
        with self._lock:
            if username in self._records:
                raise DuplicateUser()
            record = UserRecord(username=username, password_hash=password_hash, created_at=_now_iso())
            self._records[username] = record
        return record

    def __len__(self) -> int:
        return len(self._records)

    def close(self) -> None:
        self._records.clear()


# ---------------------------------------------------------------------------
# Relational adapter (SQLAlchemy Core)
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode on SQLite connections.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _normalize_url(db_uri: str) -> str:
    # SQLAlchemy 1.4+ dropped the "postgres" dialect alias that many hosting
    # providers still hand out.
    if db_uri.startswith("postgres://"):
        return "postgresql://" + db_uri[len("postgres://") :]
    return db_uri


def _is_private_memory_db(url: URL) -> bool:
    """True for sqlite:// and sqlite:///:memory:, whose database lives inside one connection."""
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


class SqlCredentialStore:
    """Relational store over SQLAlchemy Core.

    Usage:
        store = SqlCredentialStore("postgresql://user:pw@db/auth")
        store.create("alice", hasher.hash("pw"))
        store.close()

    A plain in-memory SQLite URL (sqlite://) gets one connection shared by
    every thread (StaticPool), and calls on it are serialized. Otherwise
    each thread would open its own empty database without the users table.
    """

    backend_errors: tuple[type[BaseException], ...] = (SQLAlchemyError,)

    def __init__(self, db_url: str) -> None:
        url = make_url(_normalize_url(db_url))
        engine_kwargs: dict = {"pool_pre_ping": True}
        self._lock = nullcontext()
        if url.get_backend_name() == "sqlite":
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        if _is_private_memory_db(url):
            engine_kwargs["poolclass"] = StaticPool
            self._lock = threading.Lock()
        self.engine: Engine = create_engine(url, **engine_kwargs)
        if url.get_backend_name() == "sqlite":
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        logger.info("SQL credential store ready (%s)", self.engine.url.render_as_string(hide_password=True))

    @classmethod
    def from_config(cls, config: AuthConfig) -> SqlCredentialStore:
        return cls(config.db_uri)

    def find_by_username(self, username: str) -> UserRecord | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self._lock, self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_record(row) if row is not None else None

    def create(self, username: str, password_hash: str) -> UserRecord:
        """Insert a new user.

        Relies on the UNIQUE constraint rather than a read-then-write check,
        so two concurrent inserts for the same username cannot both commit.
        """
        created_at = _now_iso()
        try:
            with self._lock, self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(
                        username=username,
                        password_hash=password_hash,
                        created_at=created_at,
                    )
                )
        except IntegrityError as exc:
            raise DuplicateUser() from exc
        return UserRecord(username=username, password_hash=password_hash, created_at=created_at)

    def close(self) -> None:
        self.engine.dispose()


def _row_to_record(row) -> UserRecord:
    return UserRecord(
        username=row.username,
        password_hash=row.password_hash,
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def store_class(storage_type: str) -> type:
    """Return the adapter class for a storage_type.

    Callers read both the constructor (from_config) and the driver errors
    (backend_errors) off the one class, so the choice is made once.
    """
    if storage_type == "memory":
        return MemoryCredentialStore
    if storage_type == "postgres":
        return SqlCredentialStore
    if storage_type == "mongo":
        from auth.mongo_store import MongoCredentialStore

        return MongoCredentialStore
    raise ValueError(f"Unknown storage_type: {storage_type!r}")


def build_store(config: AuthConfig) -> CredentialStore:
    """Construct the adapter named by config.storage_type.

    Driver errors raised while connecting propagate unchanged; create_auth()
    translates them.
    """
    return store_class(config.storage_type).from_config(config)
