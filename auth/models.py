"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the token
issuer and the engine do the work; these only carry shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class UserRecord:
    """One registered identity in a credential store.

    username is the unique, immutable identifier. password_hash is whatever
    the hasher produced -- never the plaintext -- and is kept out of repr()
    so a stray log line cannot leak it.
    """

    username: str
    password_hash: str = field(repr=False)
    created_at: str | None = None


@dataclass(frozen=True)
class SessionClaim:
    """The payload carried by a signed session token.

    expires_at is None when the issuer was configured without expiry.
    """

    subject: str
    issued_at: datetime
    expires_at: datetime | None = None
