"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
authenticator do the work; these only own the shape.

Layer rule: no imports from api/ or verify/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class CredentialKind(str, Enum):
    """Authentication scheme a credential row belongs to.

    The same identifier may hold one credential per kind. Only basic
    email + password exists today; new schemes add a member here.
    """

    BASIC_EMAIL = "basic_email"


@dataclass
class Credential:
    """A stored proof of identity.

    secret_hash is the full bcrypt output (salt and cost embedded). The
    plaintext secret is never persisted or returned.
    """

    identifier: str
    kind: CredentialKind
    secret_hash: bytes
    id: int | None = None
    is_super: bool = False
    created_at: datetime | None = None
    modified_at: datetime | None = None
    last_login: datetime | None = None  # None until the first token grant


@dataclass
class FailedAttempt:
    """One failed access proof. Append-only; retention is handled outside Credgate."""

    credential_id: int
    attempted_at: datetime
    id: int | None = None
