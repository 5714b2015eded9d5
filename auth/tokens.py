"""
auth/tokens.py -- Password hashing and the bearer token issuer.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). bcrypt's cost factor makes
       brute-force expensive for low-entropy secrets. bcrypt only reads the
       first 72 bytes of input, so sign-in rejects longer passwords instead
       of silently truncating them (see core.models.MAX_PASSWORD_BYTES).
       checkpw is a constant-time comparison. _DUMMY_HASH lets the
       authenticator run a full bcrypt check for unknown identifiers so
       response time does not reveal whether an identifier exists [C1].

  Tokens: TokenIssuer is the contract the authenticator consumes. The core
       hands it a TokenPayload and gets back an opaque string; it never
       inspects token internals. JWTTokenIssuer is the shipped
       implementation: python-jose, HS256, claims sub / permissions / jti /
       iat / exp. Revocation is a deny-list of jti values in the
       revoked_tokens table, written through the generic row store.
       Revocation rows are kept until the token would have expired anyway;
       purge_expired() drops them after that.

Layer rule: no imports from api/ or verify/.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Protocol

import bcrypt
from jose import JWTError, jwt

from core.errors import DuplicateRow, TokenFault
from core.models import TokenPayload
from core.permissions import Permissions, has_permissions
from db.rows import RowStore

logger = logging.getLogger("credgate.auth.tokens")

_ALGORITHM = "HS256"
_REVOKED = "revoked_tokens"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> bytes:
    """Return a salted bcrypt hash of plain. Callers enforce the 72-byte limit."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt())


def verify_password(plain: str, hashed: bytes) -> bool:
    """Return True if plain matches hashed. Any malformed input is a mismatch."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed)
    except (ValueError, TypeError):
        # bcrypt raises ValueError for >72-byte input or an invalid salt.
        return False


# Computed once at module load so the first unknown-identifier check costs
# the same as every later one [C1].
_DUMMY_HASH: bytes = hash_password("credgate_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a bcrypt comparison whose result is discarded (timing equalization)."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Token issuer contract
# ---------------------------------------------------------------------------


class TokenIssuer(Protocol):
    def gen_token(self, payload: TokenPayload) -> str: ...

    def revoke_token(self, token: str) -> None: ...

    def validate(self, token: str, required: int) -> bool: ...


# ---------------------------------------------------------------------------
# JWT implementation
# ---------------------------------------------------------------------------


class JWTTokenIssuer:
    """HS256 bearer tokens with a persisted revocation list.

    Usage:
        issuer = JWTTokenIssuer(rows, secret_key=settings.secret_key)
        token = issuer.gen_token(TokenPayload("user@example.org", Permissions.CREATE_BLOQ))
        issuer.validate(token, Permissions.CREATE_BLOQ)   # True
        issuer.revoke_token(token)
        issuer.validate(token, Permissions.CREATE_BLOQ)   # False
    """

    def __init__(self, rows: RowStore, secret_key: str, expire_seconds: int = 3600) -> None:
        if len(secret_key) < 32:
            raise ValueError("secret_key must be at least 32 characters.")
        self.rows = rows
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def gen_token(self, payload: TokenPayload) -> str:
        """Encode a signed JWT for payload. Raises TokenFault if signing fails."""
        now = datetime.now(timezone.utc)
        claims = {
            "sub": payload.client,
            "permissions": int(payload.permissions),
            "jti": secrets.token_hex(16),
            "iat": now,
            "exp": now + timedelta(seconds=self.expire_seconds),
        }
        try:
            return jwt.encode(claims, self._secret_key, algorithm=_ALGORITHM)
        except JWTError as exc:
            raise TokenFault("Could not sign token.") from exc

    def decode(self, token: str) -> dict | None:
        """Return verified claims, or None for any invalid, expired, or revoked token.

        Returning None (rather than raising) keeps callers simple: any bad
        token is treated as unauthenticated.
        """
        claims = self._decode(token)
        if claims is None or self.is_revoked(claims["jti"]):
            return None
        return claims

    def payload(self, token: str) -> TokenPayload | None:
        claims = self.decode(token)
        if claims is None:
            return None
        return TokenPayload(client=claims["sub"], permissions=Permissions(claims["permissions"]))

    def validate(self, token: str, required: int) -> bool:
        """Return True if token is live and carries every bit in required."""
        claims = self.decode(token)
        if claims is None:
            return False
        return has_permissions(claims["permissions"], required)

    def revoke_token(self, token: str) -> None:
        """Add token to the revocation list.

        Raises TokenFault if token does not decode (forged, malformed, or
        expired) or was already revoked.
        """
        claims = self._decode(token)
        if claims is None:
            raise TokenFault("Unknown token.")
        row = {
            "jti": claims["jti"],
            "client": claims["sub"],
            "expires_at": datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            "revoked_at": datetime.now(timezone.utc),
        }
        try:
            self.rows.insert(_REVOKED, [row])
        except DuplicateRow as exc:
            raise TokenFault("Token already revoked.") from exc
        logger.info("Revoked token %s for %s", claims["jti"], claims["sub"])

    def is_revoked(self, jti: str) -> bool:
        return self.rows.count(_REVOKED, {"jti": jti}) > 0

    def purge_expired(self) -> int:
        """Drop revocation rows for tokens past their expiry. Returns rows removed."""
        return self.rows.delete_older_than(_REVOKED, "expires_at", datetime.now(timezone.utc))

    def _decode(self, token: str) -> dict | None:
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        if not {"sub", "permissions", "jti", "exp"} <= claims.keys():
            return None
        return claims
