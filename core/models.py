from dataclasses import dataclass, field
from typing import Optional

from core.permissions import Permissions

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# bcrypt only reads the first 72 bytes of its input. Longer passwords are
# rejected at sign-in rather than silently truncated.
MAX_PASSWORD_BYTES = 72

SMTP_PORT = 25


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MXHost:
    host: str
    preference: int


@dataclass
class ProbeVerdict:
    host: str
    accepted: bool
    reason: Optional[Exception] = None  # None when accepted


@dataclass
class RaceOutcome:
    """Aggregated result of probing every candidate host for one email.

    verdicts is in arrival order. On failure it always holds one verdict per
    probed host; on success it stops at the winner.
    """

    accepted: bool
    winner: Optional[ProbeVerdict] = None
    verdicts: list[ProbeVerdict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenPayload:
    client: str  # credential identifier (the email for basic credentials)
    permissions: Permissions = Permissions.NO_PERMISSIONS
