"""
core/config.py -- Authentication configuration via pydantic-settings.

AuthConfig is the one configuration object an AuthEngine consumes. It is
built once (from keyword arguments, environment variables or a .env file)
and is frozen afterwards, so a single instance can be shared by every
concurrent request without locking.

Design patterns used:
  BaseSettings (pydantic-settings): field names map to env var names
      (e.g. storage_type -> STORAGE_TYPE). Type coercion is built in.

  @model_validator(mode="after"): cross-field rules that a single field
      annotation cannot express -- the secret policy and the
      "db_uri required unless memory" rule.

  Cached loader: get_settings() is for process wiring only (api/main.py,
      main.py). Library code receives an explicit AuthConfig instead of
      reaching for a module-level singleton.

Security notes:
  A secret shorter than 32 characters is rejected outright. HS256 signing
  relies on key entropy -- a short key weakens every issued token.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authcore.config")

_MIN_SECRET_LENGTH = 32

StorageType = Literal["memory", "mongo", "postgres"]


class AuthConfig(BaseSettings):
    """Configuration consumed by create_auth().

    All fields except secret have defaults, so AuthConfig(secret=...) is
    enough for an in-memory engine in tests.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Empty string is the sentinel for "not configured"; the validator
    # below refuses it, so callers never see "".
    secret: str = ""
    storage_type: StorageType = "memory"
    db_uri: str = ""

    # 0 disables the exp claim entirely.
    token_expire_seconds: int = Field(default=3600, ge=0)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    secure_cookies: bool = False

    @model_validator(mode="after")
    def validate_backend(self) -> "AuthConfig":
        """Enforce the secret policy and the storage/db_uri pairing."""
        if not self.secret:
            raise ValueError("secret is required. Set SECRET in your environment or .env file.")
        if len(self.secret) < _MIN_SECRET_LENGTH:
            raise ValueError(f"secret must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.storage_type != "memory" and not self.db_uri:
            raise ValueError(f"db_uri is required when storage_type is {self.storage_type!r}.")
        if self.storage_type == "memory" and self.db_uri:
            logger.warning("db_uri is ignored for storage_type='memory'")
        return self


@lru_cache
def get_settings() -> AuthConfig:
    """Return the process-wide AuthConfig loaded from the environment.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return AuthConfig()
