"""
auth/passwords.py -- Credential hasher (bcrypt, direct usage).

Bcrypt is the right choice for low-entropy secrets (passwords) because its
cost factor makes brute-force expensive while a single verification stays
cheap. Salts are generated per call, so hashing the same password twice
yields two different strings; verify() is the only way to compare.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection hashes a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

Passwords longer than 72 bytes are refused upstream by the engine's input
validation, so nothing reaching hash() is silently truncated.
"""

from __future__ import annotations

from typing import Protocol

import bcrypt

MAX_PASSWORD_BYTES = 72


class PasswordHasher(Protocol):
    def hash(self, plaintext: str) -> str: ...

    def verify(self, plaintext: str, hashed: str) -> bool: ...


class BcryptHasher:
    """bcrypt wrapper with a configurable cost factor.

    rounds=12 is the production default; tests use 4 (the bcrypt minimum).
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Return a salted bcrypt hash of plaintext."""
        return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Return True if plaintext matches hashed. Never raises on mismatch.

        A malformed stored hash counts as a mismatch rather than an error.
        """
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False
