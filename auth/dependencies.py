"""
auth/dependencies.py -- FastAPI Depends() helpers for bearer-token auth.

Tokens arrive in the Authorization: Bearer <token> header only. There is no
cookie path.

try_get_token_payload() is the soft variant (returns None on failure).
get_token_payload() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from verify/ or db/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from core.models import TokenPayload


def bearer_token(request: Request) -> str | None:
    """Return the raw token from the Authorization header, or None."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_token_payload(request: Request) -> TokenPayload | None:
    """Decode the bearer token via the app's issuer. Never raises."""
    token = bearer_token(request)
    if not token:
        return None
    return request.app.state.issuer.payload(token)


def get_token_payload(request: Request) -> TokenPayload:
    """Require a live bearer token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(payload: TokenPayload = Depends(get_token_payload)): ...
    """
    payload = try_get_token_payload(request)
    if payload is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "A valid bearer token is required."},
        )
    return payload

