"""
api/routes/v1/auth.py -- Credential and token REST endpoints.

Routes:
  POST /api/v1/auth/sign-in    -- verify the email, register the credential; 201
  POST /api/v1/auth/sign-out   -- prove access, delete the credential; 200
  POST /api/v1/auth/log-in     -- prove access, issue a bearer token; 200
  POST /api/v1/auth/log-out    -- revoke a bearer token; 200
  POST /api/v1/auth/validate   -- does a token carry the given permission bits?
  GET  /api/v1/auth/me         -- decode the caller's bearer token

Error mapping lives in api/main.py: every route lets CredgateError subclasses
propagate and the shared handler turns them into the error envelope.

Security:
  [C1] check_access() provides timing equalization and a single generic
       Unauthorized for unknown email and wrong password -- use it via the
       Authenticator, never inline the store lookup.
  [M5] Cache-Control: no-store on responses that carry a token.

Handlers are sync (def, not async def): sign-in blocks on DNS and SMTP and
every route blocks on bcrypt, so FastAPI runs them in its thread pool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    CredentialsRequest,
    LogInRequest,
    MeResponse,
    TokenRequest,
    TokenResponse,
    ValidateRequest,
    ValidationResponse,
)
from auth.authenticator import Authenticator
from auth.dependencies import get_token_payload
from core.models import TokenPayload
from core.permissions import Permissions

# Auth policy:
# - POST /api/v1/auth/sign-in:   public -- registration
# - POST /api/v1/auth/sign-out:  credentials in body (check_access)
# - POST /api/v1/auth/log-in:    credentials in body (check_access)
# - POST /api/v1/auth/log-out:   token in body; a revoked token is useless anyway
# - POST /api/v1/auth/validate:  public -- called by other services to gate actions
# - GET  /api/v1/auth/me:        requires bearer token (get_token_payload)
router = APIRouter()


def _authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


@router.post("/auth/sign-in", response_model=ValidationResponse, status_code=201)
def sign_in(request: Request, body: CredentialsRequest) -> ValidationResponse:
    """Register a new credential after proving the email is live and permitted."""
    _authenticator(request).sign_in(body.basic.email, body.basic.password, body.kind)
    return ValidationResponse(valid=True)


@router.post("/auth/sign-out", response_model=ValidationResponse)
def sign_out(request: Request, body: CredentialsRequest) -> ValidationResponse:
    """Delete the caller's credential. Outstanding tokens stay valid until revoked or expired."""
    _authenticator(request).sign_out(body.basic.email, body.basic.password, body.kind)
    return ValidationResponse(valid=True)


@router.post("/auth/log-in", response_model=TokenResponse)
def log_in(request: Request, body: LogInRequest) -> JSONResponse:
    """Prove access and return a bearer token carrying the requested permissions."""
    authenticator = _authenticator(request)
    permissions = Permissions(body.permissions)
    token = authenticator.grant_token(body.basic.email, body.basic.password, permissions, body.kind)
    resp = JSONResponse(
        content=TokenResponse(
            token=token,
            permissions=int(permissions),
            expires_in=request.app.state.issuer.expire_seconds,
        ).model_dump()
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/log-out", response_model=ValidationResponse)
def log_out(request: Request, body: TokenRequest) -> ValidationResponse:
    """Revoke a token. Revoking an unknown or already revoked token is a 401."""
    _authenticator(request).revoke_token(body.token)
    return ValidationResponse(valid=True)


@router.post("/auth/validate", response_model=ValidationResponse)
def validate(request: Request, body: ValidateRequest) -> ValidationResponse:
    """Return whether the token is live and carries every requested bit."""
    return ValidationResponse(valid=_authenticator(request).validate(body.token, body.permissions))


@router.get("/auth/me", response_model=MeResponse)
def me(payload: TokenPayload = Depends(get_token_payload)) -> MeResponse:
    """Return the identity and permissions embedded in the caller's token."""
    return MeResponse(client=payload.client, permissions=int(payload.permissions))
