"""
auth/engine.py -- AuthEngine: register / login / verify orchestration.

The engine composes three collaborators and owns none of their mechanics:
  CredentialStore -- persistence (auth/store.py, auth/mongo_store.py)
  PasswordHasher  -- one-way hashing (auth/passwords.py)
  TokenIssuer     -- signed session tokens (auth/tokens.py)

It is an explicitly constructed object. There is no module-level instance:
build one with create_auth(config) and hand it to whatever needs it
(app.state, a CLI, a test fixture). Several engines with different secrets
can live in one process.

Stateless sessions: verify() trusts a correctly signed, unexpired token
without a store round-trip. Deleting a user or "logging out" does not
invalidate tokens already issued.

Error translation: the engine re-raises the driver exceptions a store
declares in backend_errors as StoreUnavailable, so adapter details never
reach callers. No operation is retried here.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from auth.errors import InvalidCredentials, InvalidInput, StoreUnavailable
from auth.gate import RequestGate
from auth.models import SessionClaim
from auth.passwords import MAX_PASSWORD_BYTES, BcryptHasher, PasswordHasher
from auth.store import CredentialStore, store_class
from auth.tokens import TokenIssuer
from core.config import AuthConfig

logger = logging.getLogger("authcore.auth")

MAX_USERNAME_LENGTH = 255


def _validate(username: object, password: object) -> None:
    if not isinstance(username, str) or not isinstance(password, str):
        raise InvalidInput()
    if not username or not password:
        raise InvalidInput()
    if username != username.strip() or len(username) > MAX_USERNAME_LENGTH:
        raise InvalidInput()
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise InvalidInput(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")


class AuthEngine:
    """Authentication core bound to one config, one store and one secret.

    Usage:
        auth = create_auth(AuthConfig(secret=..., storage_type="memory"))
        auth.register("alice", "pw")
        token = auth.login("alice", "pw")
        claim = auth.verify(token)        # claim.subject == "alice"

    Every method may block (store I/O, bcrypt). All methods are safe to call
    from several threads at once; the store adapter owns write atomicity.
    """

    def __init__(
        self,
        config: AuthConfig,
        store: CredentialStore,
        hasher: PasswordHasher | None = None,
        tokens: TokenIssuer | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.hasher = hasher or BcryptHasher(rounds=config.bcrypt_rounds)
        self.tokens = tokens or TokenIssuer(config.secret, expire_seconds=config.token_expire_seconds)
        # Timing equalization: an unknown username still pays for one bcrypt
        # verification, so response time does not reveal whether it exists.
        self._dummy_hash = self.hasher.hash("authcore_timing_dummy")
        self._gate = RequestGate(self)

    @contextmanager
    def _store_call(self) -> Iterator[None]:
        try:
            yield
        except self.store.backend_errors as exc:
            logger.error("Credential store unavailable: %s", type(exc).__name__)
            raise StoreUnavailable() from exc

    def register(self, username: str, password: str) -> None:
        """Create a user. Raises InvalidInput, DuplicateUser or StoreUnavailable."""
        _validate(username, password)
        password_hash = self.hasher.hash(password)
        with self._store_call():
            self.store.create(username, password_hash)
        logger.info("Registered user %s", username)

    def login(self, username: str, password: str) -> str:
        """Check credentials and return a signed session token.

        Unknown username and wrong password raise the same InvalidCredentials.
        """
        if not isinstance(username, str) or not isinstance(password, str) or not username:
            raise InvalidCredentials()
        with self._store_call():
            record = self.store.find_by_username(username)
        if record is None:
            self.hasher.verify(password, self._dummy_hash)
            logger.info("Login failed for %s", username)
            raise InvalidCredentials()
        if not self.hasher.verify(password, record.password_hash):
            logger.info("Login failed for %s", username)
            raise InvalidCredentials()
        return self.tokens.issue(SessionClaim(subject=username, issued_at=datetime.now(timezone.utc)))

    def verify(self, token: str) -> SessionClaim:
        """Return the claim carried by token. Raises InvalidToken or ExpiredToken."""
        return self.tokens.verify(token)

    def middleware(self, request, response, continuation):
        """Request Gate over this engine with the default header/cookie carrier.

        See auth.gate.RequestGate for the full contract.
        """
        return self._gate(request, response, continuation)

    def close(self) -> None:
        self.store.close()


def create_auth(config: AuthConfig) -> AuthEngine:
    """Build an AuthEngine whose store is selected by config.storage_type.

    Raises StoreUnavailable if a database-backed store cannot be reached.
    """
    adapter = store_class(config.storage_type)
    try:
        store = adapter.from_config(config)
    except adapter.backend_errors as exc:
        logger.error("Could not initialize %s credential store: %s", config.storage_type, type(exc).__name__)
        raise StoreUnavailable() from exc
    logger.info("Auth engine initialized (storage_type=%s)", config.storage_type)
    return AuthEngine(config, store)
