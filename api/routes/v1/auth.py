"""
api/routes/v1/auth.py -- Registration, login and session endpoints.

Routes:
  POST /api/v1/auth/register  -- create a user; 201
  POST /api/v1/auth/login     -- password login; returns token + sets cookie
  POST /api/v1/auth/logout    -- clears cookie; 200
  GET  /api/v1/auth/me        -- identity carried by the token (requires auth)

Security:
  Wrong username and wrong password produce the same 401 body
  ("invalid_credentials") -- AuthEngine.login() raises one error for both.
  Cache-Control: no-store on login responses.
  Logout only clears the cookie. Tokens are stateless; an already-issued
  token stays valid until it expires.

Handlers are plain def (not async) because every engine call may block on
bcrypt or store I/O; FastAPI runs them in its thread pool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import CredentialsRequest, LoginResponse, MeResponse, RegisterResponse
from auth.engine import AuthEngine
from auth.gate import get_current_identity
from auth.models import SessionClaim
from auth.tokens import clear_auth_cookie, set_auth_cookie

# Auth policy:
# - POST /api/v1/auth/register: public
# - POST /api/v1/auth/login:    public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:   public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/me:       requires auth (get_current_identity)
router = APIRouter()


@router.post("/auth/register", status_code=201, response_model=RegisterResponse)
def register(request: Request, body: CredentialsRequest) -> RegisterResponse:
    """Create a user. AuthError subclasses are rendered by the app's handler."""
    engine: AuthEngine = request.app.state.auth
    engine.register(body.username, body.password)
    return RegisterResponse(username=body.username)


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: CredentialsRequest) -> JSONResponse:
    """Authenticate with username and password; return and set the session token."""
    engine: AuthEngine = request.app.state.auth
    token = engine.login(body.username, body.password)
    expires_in = engine.config.token_expire_seconds
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=expires_in,
            username=body.username,
        ).model_dump(),
    )
    set_auth_cookie(resp, token, max_age=expires_in, secure=engine.config.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the session cookie."""
    resp = JSONResponse(content={"message": "Logged out."})
    clear_auth_cookie(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
async def me(identity: SessionClaim = Depends(get_current_identity)) -> MeResponse:
    return MeResponse(
        username=identity.subject,
        issued_at=identity.issued_at,
        expires_at=identity.expires_at,
    )
