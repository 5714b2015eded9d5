"""
auth/store.py -- Credential table adapter over the generic row store.

Pattern: Repository + Data Mapper. CredentialStore translates credential
operations into RowStore calls against the `credentials` and
`failed_attempts` tables; _row_to_credential is the mapper. It owns no
connection state -- the RowStore passed in does.

Uniqueness of (identifier, kind):
  insert() checks exists() first so the common duplicate case gets a plain
  Conflict, then relies on the UNIQUE constraint in db/schema.py for the
  concurrent case. Both paths raise Conflict; the check-then-insert pair is
  never assumed to be transactional.

Storage faults from the row store (StorageFault) are not caught here. They
reach the caller unchanged.

Layer rule: no imports from api/ or verify/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from auth.models import Credential, CredentialKind, FailedAttempt
from core.errors import Conflict, DuplicateRow, NotFound
from db.rows import RowStore

logger = logging.getLogger("credgate.auth.store")

_CREDENTIALS = "credentials"
_FAILED_ATTEMPTS = "failed_attempts"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _key(identifier: str, kind: CredentialKind) -> dict:
    return {"identifier": identifier, "kind": CredentialKind(kind).value}


class CredentialStore:
    """Typed facade for the credential relation.

    Usage:
        store = CredentialStore(RowStore(db_url))
        store.insert("user@example.org", CredentialKind.BASIC_EMAIL, hash_password("secret"))
        secret = store.fetch_secret("user@example.org", CredentialKind.BASIC_EMAIL)
    """

    def __init__(self, rows: RowStore) -> None:
        self.rows = rows

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def exists(self, identifier: str, kind: CredentialKind) -> bool:
        return self.rows.count(_CREDENTIALS, _key(identifier, kind)) > 0

    def insert(self, identifier: str, kind: CredentialKind, secret_hash: bytes, *, is_super: bool = False) -> int:
        """Create the credential row and return its ID.

        Raises Conflict if (identifier, kind) is already registered.
        """
        if self.exists(identifier, kind):
            raise Conflict(f"{identifier} is already registered.")
        now = _now()
        row = {
            **_key(identifier, kind),
            "secret_hash": secret_hash,
            "is_super": is_super,
            "created_at": now,
            "modified_at": now,
            "last_login": None,
        }
        try:
            return self.rows.insert(_CREDENTIALS, [row])
        except DuplicateRow as exc:
            # Lost a race with a concurrent insert between exists() and here.
            raise Conflict(f"{identifier} is already registered.") from exc

    def get(self, identifier: str, kind: CredentialKind) -> Credential:
        """Return the full credential. Raises NotFound if absent."""
        rows = self.rows.select(_CREDENTIALS, [], _key(identifier, kind))
        if not rows:
            raise NotFound(f"No {CredentialKind(kind).value} credential for {identifier}.")
        return _row_to_credential(rows[0])

    def fetch_secret(self, identifier: str, kind: CredentialKind) -> bytes:
        """Return the stored hash only. Raises NotFound if absent.

        Authenticator.check_access uses get(), which also needs the row id to
        record failed attempts. This is the hash-only read for callers that
        verify a password and need nothing else.
        """
        rows = self.rows.select(_CREDENTIALS, ["secret_hash"], _key(identifier, kind))
        if not rows:
            raise NotFound(f"No {CredentialKind(kind).value} credential for {identifier}.")
        return bytes(rows[0]["secret_hash"])

    def delete(self, identifier: str, kind: CredentialKind) -> None:
        """Remove the credential. Raises NotFound if no row matched."""
        if self.rows.delete(_CREDENTIALS, _key(identifier, kind)) == 0:
            raise NotFound(f"No {CredentialKind(kind).value} credential for {identifier}.")

    def touch_last_login(self, identifier: str, kind: CredentialKind) -> None:
        """Stamp last_login with the current UTC time."""
        self.rows.update(_CREDENTIALS, {"last_login": _now()}, _key(identifier, kind))

    # ------------------------------------------------------------------
    # Failed attempts (append-only audit log)
    # ------------------------------------------------------------------

    def record_failed_attempt(self, credential_id: int) -> FailedAttempt:
        attempt = FailedAttempt(credential_id=credential_id, attempted_at=_now())
        attempt.id = self.rows.insert(
            _FAILED_ATTEMPTS,
            [{"credential_id": attempt.credential_id, "attempted_at": attempt.attempted_at}],
        )
        return attempt

    def count_failed_attempts(self, credential_id: int) -> int:
        return self.rows.count(_FAILED_ATTEMPTS, {"credential_id": credential_id})


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_credential(row: dict) -> Credential:
    return Credential(
        id=row["id"],
        identifier=row["identifier"],
        kind=CredentialKind(row["kind"]),
        secret_hash=bytes(row["secret_hash"]),
        is_super=bool(row["is_super"]),
        created_at=row["created_at"],
        modified_at=row["modified_at"],
        last_login=row["last_login"],
    )
