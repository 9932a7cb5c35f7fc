"""
auth/errors.py -- Error taxonomy for the authentication core.

Every failure a caller of AuthEngine can observe is an AuthError subclass.
Adapter-specific exceptions (SQLAlchemy, PyMongo) never cross the engine
boundary; the engine re-raises them as StoreUnavailable.

code and status_code are read by the HTTP layer to build the error
envelope. They are class attributes so handlers need no lookup table.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all authentication failures."""

    code = "auth_error"
    status_code = 400
    message = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class InvalidInput(AuthError):
    """register() arguments failed shape validation."""

    code = "invalid_input"
    status_code = 400
    message = "Invalid username or password format."


class DuplicateUser(AuthError):
    code = "duplicate_user"
    status_code = 409
    message = "Username already exists."


class InvalidCredentials(AuthError):
    """Unknown username or wrong password.

    The two cases are deliberately a single class with a single message so
    a caller cannot enumerate usernames.
    """

    code = "invalid_credentials"
    status_code = 401
    message = "Invalid username or password."


class InvalidToken(AuthError):
    code = "invalid_token"
    status_code = 401
    message = "Token is invalid."


class ExpiredToken(InvalidToken):
    code = "expired_token"
    status_code = 401
    message = "Token has expired."


class StoreUnavailable(AuthError):
    code = "store_unavailable"
    status_code = 503
    message = "Credential store is unavailable."
