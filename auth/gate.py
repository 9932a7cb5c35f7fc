"""
auth/gate.py -- Request Gate: authenticate inbound requests before handling.

States: Unauthenticated -> TokenPresent -> Verified | Rejected.
  - No token found             -> Rejected
  - Token fails verification   -> Rejected
  - Token verifies             -> Verified: identity attached, continuation runs
Rejected writes a 401 and never invokes the continuation. Verified writes
nothing itself. The response never says *why* authentication failed; the
sub-kind (missing / invalid / expired) goes to the log only.

The gate depends on a TokenCarrier, not on a web framework. A carrier knows
how to pull a token out of a request, where to attach the resolved identity,
and how to turn a response into a 401. StarletteCarrier covers Starlette and
FastAPI objects (and anything shaped like them):
  1. Authorization: Bearer <token> header -- API clients.
  2. "access_token" cookie -- browser sessions (set by set_auth_cookie()).

Entry points:
  RequestGate(engine)(request, response, continuation) -- framework-neutral.
  AuthMiddleware  -- Starlette/FastAPI ASGI middleware gating a whole app.
  get_current_identity -- FastAPI Depends() helper for single routes.

Layer rule: no imports from api/. This module may import from fastapi and
starlette because two of its entry points are part of that stack.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any, Protocol

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from auth.errors import AuthError, ExpiredToken, InvalidToken
from auth.models import SessionClaim
from auth.tokens import COOKIE_NAME

if TYPE_CHECKING:
    from auth.engine import AuthEngine

logger = logging.getLogger("authcore.auth.gate")

UNAUTHORIZED_BODY = {"error": {"code": "unauthorized", "message": "Authentication required."}}
_CHALLENGE = {"WWW-Authenticate": "Bearer"}


class TokenCarrier(Protocol):
    """Framework adapter used by RequestGate."""

    def extract_token(self, request: Any) -> str | None: ...

    def attach_identity(self, request: Any, claim: SessionClaim) -> None: ...

    def write_unauthorized(self, response: Any) -> None: ...


class StarletteCarrier:
    """Carrier for Starlette-shaped requests and responses.

    Requests need .headers (mapping) and optionally .cookies; the identity is
    stored as request.state.identity. Responses need a writable .status_code
    and .headers; a .body attribute, when present, receives the JSON error.
    """

    def extract_token(self, request: Any) -> str | None:
        headers = getattr(request, "headers", None) or {}
        auth_header = headers.get("Authorization") or headers.get("authorization") or ""
        scheme, _, credentials = auth_header.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
        cookies = getattr(request, "cookies", None) or {}
        return cookies.get(COOKIE_NAME) or None

    def attach_identity(self, request: Any, claim: SessionClaim) -> None:
        state = getattr(request, "state", None)
        if state is None:
            state = SimpleNamespace()
            request.state = state
        state.identity = claim

    def write_unauthorized(self, response: Any) -> None:
        response.status_code = 401
        response.headers.update(_CHALLENGE)
        if hasattr(response, "body"):
            body = json.dumps(UNAUTHORIZED_BODY).encode("utf-8")
            response.body = body
            response.headers["content-type"] = "application/json"
            response.headers["content-length"] = str(len(body))


class RequestGate:
    """Framework-neutral authentication gate over one AuthEngine.

    Usage:
        gate = RequestGate(engine)
        result = gate(request, response, lambda: handler(request))

    Returns whatever the continuation returns on success (a coroutine if the
    continuation is async -- the caller awaits it), or None once the
    response has been turned into a 401.
    """

    def __init__(self, engine: AuthEngine, carrier: TokenCarrier | None = None) -> None:
        self.engine = engine
        self.carrier = carrier or StarletteCarrier()

    def authenticate(self, request: Any) -> SessionClaim:
        """Resolve the request's identity or raise an AuthError."""
        token = self.carrier.extract_token(request)
        if not token:
            logger.info("Rejected request: missing token")
            raise InvalidToken("Missing token.")
        try:
            return self.engine.verify(token)
        except ExpiredToken:
            logger.info("Rejected request: expired token")
            raise
        except AuthError as exc:
            logger.info("Rejected request: %s", exc.code)
            raise

    def __call__(self, request: Any, response: Any, continuation: Callable[[], Any]) -> Any:
        try:
            claim = self.authenticate(request)
        except AuthError:
            self.carrier.write_unauthorized(response)
            return None
        self.carrier.attach_identity(request, claim)
        return continuation()


def unauthorized_response() -> JSONResponse:
    return JSONResponse(status_code=401, content=UNAUTHORIZED_BODY, headers=_CHALLENGE)


class AuthMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that gates every non-exempt path of an application.

    Usage:
        app.add_middleware(AuthMiddleware, engine=engine, exempt_paths=("/api/v1/health",))

    When engine is None the gate is built lazily from request.app.state.auth,
    which lets the engine be created in the application lifespan.

    exempt_paths match exactly, or as a prefix when they end with "/".
    """

    def __init__(
        self,
        app,
        engine: AuthEngine | None = None,
        exempt_paths: Iterable[str] = (),
        carrier: TokenCarrier | None = None,
    ) -> None:
        super().__init__(app)
        self._carrier = carrier or StarletteCarrier()
        self._gate = RequestGate(engine, self._carrier) if engine is not None else None
        self.exempt_paths = tuple(exempt_paths)

    def _is_exempt(self, path: str) -> bool:
        return any(path == p or (p.endswith("/") and path.startswith(p)) for p in self.exempt_paths)

    async def dispatch(self, request: Request, call_next):
        if self._is_exempt(request.url.path):
            return await call_next(request)
        gate = self._gate or RequestGate(request.app.state.auth, self._carrier)
        try:
            claim = gate.authenticate(request)
        except AuthError:
            return unauthorized_response()
        self._carrier.attach_identity(request, claim)
        return await call_next(request)


def get_current_identity(request: Request) -> SessionClaim:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: SessionClaim = Depends(get_current_identity)): ...

    Reuses an identity already attached by AuthMiddleware when present.
    """
    claim = getattr(request.state, "identity", None)
    if isinstance(claim, SessionClaim):
        return claim
    gate = RequestGate(request.app.state.auth)
    try:
        claim = gate.authenticate(request)
    except AuthError:
        raise HTTPException(
            status_code=401,
            detail=UNAUTHORIZED_BODY["error"],
            headers=_CHALLENGE,
        ) from None
    gate.carrier.attach_identity(request, claim)
    return claim
