"""
core/errors.py -- Closed error taxonomy shared by every layer.

Callers branch on the exception class (or its stable `code` string), never on
message text. The API layer maps each class to an HTTP status in one place
(api/main.py); the CLI prints the message and exits non-zero.

Propagation policy:
  Validation and policy errors (MalformedInput, PolicyViolation, Conflict,
  Unauthorized) are terminal and user-presentable.
  ResolutionFailure and StorageFault are passed through unmodified; nothing
  in this codebase retries them.

Layer rule: core/ is the kernel. No imports from api/, auth/, verify/, or db/.
"""

from __future__ import annotations


class CredgateError(Exception):
    """Base class for every error raised deliberately by Credgate."""

    code = "error"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class MalformedInput(CredgateError):
    code = "malformed_input"


class MalformedEmail(MalformedInput):
    code = "malformed_email"

    def __init__(self, email: str) -> None:
        super().__init__(f"The email {email!r} has an invalid format.")
        self.email = email


class PasswordTooLong(MalformedInput):
    code = "password_too_long"

    def __init__(self, limit: int) -> None:
        super().__init__(f"Password must not exceed {limit} bytes.")
        self.limit = limit


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


class PolicyViolation(CredgateError):
    """The email domain (or one of its MX hosts) is rejected by the domain policy.

    reason is one of "blacklisted", "not_whitelisted", "blacklisted_mx".
    """

    code = "policy_violation"

    def __init__(self, domain: str, reason: str) -> None:
        super().__init__(f"The domain {domain!r} is not permitted ({reason}).")
        self.domain = domain
        self.reason = reason


class ResolutionFailure(CredgateError):
    code = "resolution_failure"


class Unreachable(CredgateError):
    """No probed mail host accepted the recipient."""

    code = "unreachable"


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class Conflict(CredgateError):
    code = "conflict"


class NotFound(CredgateError):
    code = "not_found"


class Unauthorized(CredgateError):
    code = "unauthorized"


# ---------------------------------------------------------------------------
# Collaborator faults
# ---------------------------------------------------------------------------


class StorageFault(CredgateError):
    """Row store I/O failure. The original SQLAlchemy error is chained as __cause__."""

    code = "storage_fault"


class DuplicateRow(StorageFault):
    """A write violated a UNIQUE constraint."""

    code = "duplicate_row"


class TokenFault(CredgateError):
    code = "token_fault"
