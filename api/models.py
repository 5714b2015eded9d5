"""
API request and response models for Credgate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two.

Credentials on the wire are a one-of envelope keyed by scheme:

    {"basic": {"email": "user@example.org", "password": "..."}}

Exactly one scheme must be present. An absent scheme, or any key that is not
a known scheme, fails validation (422) rather than being ignored.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from auth.models import CredentialKind

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class BasicCredentials(BaseModel):
    """Email + password scheme. Email syntax is checked by the verifier, not here."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=3, max_length=320)
    # Length in bytes is enforced at sign-in (72); this only bounds the payload.
    password: str = Field(max_length=1024)


class CredentialsRequest(BaseModel):
    """Request body for sign-in and sign-out: exactly one credential scheme."""

    model_config = ConfigDict(extra="forbid")

    basic: Optional[BasicCredentials] = None

    @model_validator(mode="after")
    def require_scheme(self) -> "CredentialsRequest":
        if self.basic is None:
            raise ValueError("Exactly one credential scheme is required (supported: basic).")
        return self

    @property
    def kind(self) -> CredentialKind:
        return CredentialKind.BASIC_EMAIL


class LogInRequest(CredentialsRequest):
    """Request body for POST /api/v1/auth/log-in."""

    permissions: int = Field(default=0, ge=0, description="Permission bitmask to embed in the token.")


class TokenRequest(BaseModel):
    """Request body for POST /api/v1/auth/log-out."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    token: str = Field(min_length=1)


class ValidateRequest(TokenRequest):
    """Request body for POST /api/v1/auth/validate."""

    permissions: int = Field(ge=0, description="Bits the token must carry.")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ValidationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    message: Optional[str] = None


class TokenResponse(BaseModel):
    """Response for POST /api/v1/auth/log-in."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    permissions: int
    expires_in: int


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    client: str
    permissions: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
