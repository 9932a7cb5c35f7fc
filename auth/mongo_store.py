"""
auth/mongo_store.py -- Document-store credential adapter (PyMongo).

One document per user in the "users" collection:
    {"username": str, "password_hash": str, "created_at": ISO-8601 str}

Uniqueness is enforced by a unique index on username, created at
construction time. insert_one() against an existing username raises
DuplicateKeyError, which is mapped to DuplicateUser -- there is no
read-then-write window.

The database is taken from the URI path (mongodb://host/dbname) and
defaults to "authcore" when the URI names none.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pymongo import ASCENDING, MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from auth.errors import DuplicateUser
from auth.models import UserRecord
from auth.store import _now_iso

if TYPE_CHECKING:
    from core.config import AuthConfig

logger = logging.getLogger("authcore.auth.store")

_DEFAULT_DB = "authcore"
_COLLECTION = "users"
_SERVER_SELECTION_TIMEOUT_MS = 5000


class MongoCredentialStore:
    """Credential store backed by a MongoDB collection.

    Usage:
        store = MongoCredentialStore("mongodb://localhost:27017/auth")
        store.create("alice", hasher.hash("pw"))
        store.close()

    Tests pass a ready client (e.g. mongomock.MongoClient()) instead of a URI.
    """

    backend_errors: tuple[type[BaseException], ...] = (PyMongoError,)

    def __init__(self, db_uri: str | None = None, client: MongoClient | None = None) -> None:
        if client is None:
            if not db_uri:
                raise ValueError("MongoCredentialStore needs a db_uri or a client")
            client = MongoClient(db_uri, serverSelectionTimeoutMS=_SERVER_SELECTION_TIMEOUT_MS)
        self._client = client
        database = client.get_default_database(default=_DEFAULT_DB)
        self._users = database[_COLLECTION]
        self._users.create_index([("username", ASCENDING)], unique=True)
        logger.info("Mongo credential store ready (database=%s)", database.name)

    @classmethod
    def from_config(cls, config: AuthConfig) -> MongoCredentialStore:
        return cls(db_uri=config.db_uri)

    def find_by_username(self, username: str) -> UserRecord | None:
        doc = self._users.find_one({"username": username})
        return _doc_to_record(doc) if doc is not None else None

    def create(self, username: str, password_hash: str) -> UserRecord:
        record = UserRecord(username=username, password_hash=password_hash, created_at=_now_iso())
        try:
            self._users.insert_one(
                {
                    "username": record.username,
                    "password_hash": record.password_hash,
                    "created_at": record.created_at,
                }
            )
        except DuplicateKeyError as exc:
            raise DuplicateUser() from exc
        return record

    def close(self) -> None:
        self._client.close()


def _doc_to_record(doc: dict) -> UserRecord:
    return UserRecord(
        username=doc["username"],
        password_hash=doc["password_hash"],
        created_at=doc.get("created_at"),
    )
