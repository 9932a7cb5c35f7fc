"""
api/main.py -- FastAPI application factory for authcore.

Exposes one AuthEngine over HTTP. The engine is never a module global:
create_app(engine) stores it on app.state.auth, or -- when no engine is
passed -- the lifespan builds one from get_settings() at startup and closes
it at shutdown.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- adds CORS headers for allowed browser origins
  2. log_requests   -- one access-log line per request with latency

Error envelope: every error response is {"error": {"code", "message"}} so
clients can parse failures without inspecting status codes first.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.engine import AuthEngine, create_auth
from auth.errors import AuthError, InvalidToken
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authcore.api")


def _error(status_code: int, code: str, message: str, detail: str | None = None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(
            exclude_none=True
        ),
        headers=headers,
    )


def create_app(engine: AuthEngine | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        engine: A ready AuthEngine. Tests pass one; production leaves it None
                and lets the lifespan build it from the environment.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Create (or adopt) the engine on startup; close what we created on shutdown."""
        owned = engine is None
        app.state.auth = engine if engine is not None else create_auth(get_settings())
        logger.info("authcore API starting up (storage_type=%s)", app.state.auth.config.storage_type)

        yield

        if owned:
            app.state.auth.close()
        logger.info("authcore API shutdown complete")

    app = FastAPI(
        title="authcore API",
        description="User registration, password login and stateless session tokens.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
        allow_credentials=True,
        max_age=3600,
    )

    # -----------------------------------------------------------------------
    # Request logging middleware
    # -----------------------------------------------------------------------

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        """Render the taxonomy. Token failures collapse into one uniform 401."""
        if isinstance(exc, InvalidToken):
            return _error(401, "unauthorized", "Authentication required.", headers={"WWW-Authenticate": "Bearer"})
        return _error(exc.status_code, exc.code, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return 422 with structured error when the request body fails validation."""
        return _error(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Return a structured error for all FastAPI/Starlette HTTP exceptions.

        When detail is already a structured dict, use it directly as the error
        field rather than stringifying it.
        """
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
        return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors. The traceback goes to the log only."""
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error(500, "internal_error", "An unexpected error occurred.")

    @app.get("/api/v1/health", tags=["Health"])
    async def health() -> HealthResponse:
        """Return API liveness and current version."""
        return HealthResponse(version=__version__)

    return app
