"""
api/main.py -- FastAPI application entry point for Credgate.

Exposes the authenticator over HTTP: sign-in with live email verification,
credential removal, token grants, revocation and permission checks.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins

Lifespan handles startup (row store, authenticator wiring, purge task) and
shutdown (cancel purge task, dispose the engine) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.authenticator import Authenticator
from auth.store import CredentialStore
from auth.tokens import JWTTokenIssuer
from core.config import get_settings
from core.errors import (
    Conflict,
    CredgateError,
    MalformedInput,
    NotFound,
    PolicyViolation,
    ResolutionFailure,
    StorageFault,
    TokenFault,
    Unauthorized,
    Unreachable,
)
from db.rows import RowStore
from verify.verifier import EmailVerifier

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("credgate.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Drop revocation rows for expired tokens every hour.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(60 * 60)
        removed = await asyncio.to_thread(app.state.issuer.purge_expired)
        if removed:
            logger.info("Purged %d expired revocation rows", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the collaborators once and share them through app.state.

    Startup order matters:
      1. Row store first -- the credential store and the issuer both write to it.
      2. Authenticator second -- composes store, verifier and issuer.
      3. Purge task last -- references app.state.issuer.
    """
    settings = get_settings()
    logger.info("Credgate API starting up")

    app.state.rows = RowStore(db_url=settings.database_url)
    app.state.rows.create_tables()
    app.state.issuer = JWTTokenIssuer(app.state.rows, settings.secret_key, settings.token_expire_seconds)
    app.state.authenticator = Authenticator(
        CredentialStore(app.state.rows),
        EmailVerifier.from_settings(settings),
        app.state.issuer,
    )
    logger.info("Authenticator initialized (policy=%r)", app.state.authenticator.verifier.policy)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.rows.close()
    logger.info("Credgate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Credgate API",
    description="Email-verified credentials and permission-bearing tokens.",
    version=_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["localhost", "127.0.0.1", "*.localhost"],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


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


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])

# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

# Most specific class first; the first isinstance() match wins.
_STATUS_BY_ERROR: tuple[tuple[type[CredgateError], int], ...] = (
    (MalformedInput, 422),
    (PolicyViolation, 403),
    (Unreachable, 422),
    (Conflict, 409),
    (Unauthorized, 401),
    (NotFound, 404),
    (ResolutionFailure, 502),
    (TokenFault, 401),
    (StorageFault, 500),
)


def status_for(exc: CredgateError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return 500


@app.exception_handler(CredgateError)
async def credgate_error_handler(request: Request, exc: CredgateError) -> JSONResponse:
    """Map the error taxonomy onto HTTP statuses.

    Storage faults are logged with their traceback and answered with a
    generic message; the driver error never reaches the response body.
    """
    status = status_for(exc)
    if status >= 500:
        logger.exception("%s on %s %s", type(exc).__name__, request.method, request.url.path)
        detail = ErrorDetail(code=exc.code, message="An internal storage error occurred.")
    else:
        detail = ErrorDetail(code=exc.code, message=str(exc))
    return JSONResponse(status_code=status, content=ErrorResponse(error=detail).model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and row store reachability."""
    database = "ok" if request.app.state.rows.ping() else "error"
    return HealthResponse(version=_VERSION, components={"app": "ok", "database": database})
