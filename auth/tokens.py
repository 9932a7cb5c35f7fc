"""
auth/tokens.py -- Session token issuer/verifier and cookie helper.

Security design decisions:
  JWT: python-jose with HS256. Tokens are compact three-segment strings
       (header.payload.signature, base64url) carrying sub, iat and -- when
       expiry is configured -- exp. Signing key is AuthConfig.secret.

  Verification raises rather than returning None: InvalidToken for a bad
       signature or malformed payload, ExpiredToken once exp has passed.
       Callers decide what a failure means; nothing fails silently.

  Canonical segments: base64url decoders ignore the unused low bits of the
       final character, so two different strings can decode to the same
       signature bytes. verify() re-encodes every segment and rejects any
       token whose text is not the canonical encoding, which makes every
       single-character change to a token fatal.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from jose.utils import base64url_decode, base64url_encode

from auth.errors import ExpiredToken, InvalidToken
from auth.models import SessionClaim

_ALGORITHM = "HS256"
COOKIE_NAME = "access_token"


def _timestamp(moment: datetime) -> int:
    return calendar.timegm(moment.utctimetuple())


def _from_timestamp(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _is_canonical(segment: str) -> bool:
    try:
        raw = base64url_decode(segment.encode("ascii"))
        return base64url_encode(raw).decode("ascii") == segment
    except (ValueError, TypeError, UnicodeError):
        return False


class TokenIssuer:
    """Issue and verify signed session tokens.

    Usage:
        issuer = TokenIssuer(secret, expire_seconds=3600)
        token = issuer.issue(SessionClaim(subject="alice", issued_at=now))
        claim = issuer.verify(token)  # raises InvalidToken / ExpiredToken

    expire_seconds=0 issues tokens without an exp claim; they stay valid for
    as long as the secret does.
    """

    def __init__(self, secret: str, expire_seconds: int = 3600) -> None:
        if not secret:
            raise ValueError("TokenIssuer requires a non-empty secret")
        self._secret = secret
        self.expire_seconds = expire_seconds

    def issue(self, claim: SessionClaim) -> str:
        """Encode and sign claim. Pure function of claim, secret and config."""
        issued_at = _timestamp(claim.issued_at)
        payload: dict = {"sub": claim.subject, "iat": issued_at}
        if self.expire_seconds > 0:
            payload["exp"] = issued_at + self.expire_seconds
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> SessionClaim:
        """Check signature, structure and expiry; return the decoded claim."""
        if not isinstance(token, str) or not token:
            raise InvalidToken()
        segments = token.split(".")
        if len(segments) != 3 or not all(segments) or not all(_is_canonical(s) for s in segments):
            raise InvalidToken()
        try:
            payload = jwt.decode(token, self._secret, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise ExpiredToken() from exc
        except JWTError as exc:
            raise InvalidToken() from exc

        subject = payload.get("sub")
        issued_at = payload.get("iat")
        if not isinstance(subject, str) or not subject or not isinstance(issued_at, int):
            raise InvalidToken()
        exp = payload.get("exp")
        if exp is not None and not isinstance(exp, int):
            raise InvalidToken()
        return SessionClaim(
            subject=subject,
            issued_at=_from_timestamp(issued_at),
            expires_at=_from_timestamp(exp) if exp is not None else None,
        )


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, max_age: int = 0, secure: bool = False) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when enabled (production).
    max_age: matches the token expiry so both expire together; 0 means a
        browser-session cookie.

    Args:
        response: Starlette/FastAPI response object.
        token:    Encoded session token.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age or None,
    )


def clear_auth_cookie(response) -> None:
    response.delete_cookie(COOKIE_NAME)
