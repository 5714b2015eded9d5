"""
auth/authenticator.py -- Credential lifecycle and token grants.

Per (identifier, kind) the lifecycle is:

    Unregistered --sign_in--> Registered --sign_out--> Unregistered

Registered admits any number of check_access / grant_token calls. A failed
check never changes state; it only appends a FailedAttempt row.

Enumeration resistance [C1]: check_access raises the same Unauthorized, with
the same message, for an unknown identifier and for a wrong password, and
runs a full bcrypt comparison in both cases.

Failure semantics: MalformedInput, PolicyViolation, Conflict and Unauthorized
are terminal. ResolutionFailure, StorageFault and TokenFault propagate
unchanged. Nothing is retried here; sign_in in particular must not be
blindly retried by a caller without re-checking state.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from auth.models import Credential, CredentialKind
from auth.store import CredentialStore
from auth.tokens import TokenIssuer, burn_password_check, hash_password, verify_password
from core.errors import Conflict, MalformedEmail, NotFound, PasswordTooLong, Unauthorized
from core.models import MAX_PASSWORD_BYTES, TokenPayload
from core.permissions import Permissions
from verify.verifier import EmailVerifier, normalize_email

logger = logging.getLogger("credgate.auth")

_BAD_CREDENTIALS = "Invalid email or password."


class Authenticator:
    """Orchestrates the email verifier, the credential store and the token issuer.

    Holds no per-credential or per-token state of its own.
    """

    def __init__(self, store: CredentialStore, verifier: EmailVerifier, issuer: TokenIssuer) -> None:
        self.store = store
        self.verifier = verifier
        self.issuer = issuer

    def sign_in(self, email: str, password: str, kind: CredentialKind = CredentialKind.BASIC_EMAIL) -> int:
        """Register a new credential and return its ID.

        Raises MalformedEmail, PolicyViolation, ResolutionFailure, Unreachable,
        PasswordTooLong or Conflict. On success exactly one row is written.
        """
        identifier = normalize_email(email)
        self.verifier.verify(identifier)

        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise PasswordTooLong(MAX_PASSWORD_BYTES)

        if self.store.exists(identifier, kind):
            raise Conflict(f"{identifier} is already registered.")

        # insert() re-checks and maps a lost concurrent race to Conflict too.
        credential_id = self.store.insert(identifier, kind, hash_password(password))
        logger.info("Registered %s credential for %s", CredentialKind(kind).value, identifier)
        return credential_id

    def check_access(
        self, email: str, password: str, kind: CredentialKind = CredentialKind.BASIC_EMAIL
    ) -> Credential:
        """Prove the caller knows the secret for email. Returns the credential.

        Raises Unauthorized for an unknown identifier, a malformed email, or
        a wrong password -- never anything more specific.
        """
        try:
            identifier = normalize_email(email)
            credential = self.store.get(identifier, kind)
        except (NotFound, MalformedEmail) as exc:
            burn_password_check(password)
            raise Unauthorized(_BAD_CREDENTIALS) from exc

        if not verify_password(password, credential.secret_hash):
            self.store.record_failed_attempt(credential.id)
            logger.warning("Failed access attempt for %s", identifier)
            raise Unauthorized(_BAD_CREDENTIALS)
        return credential

    def grant_token(
        self,
        email: str,
        password: str,
        permissions: Permissions = Permissions.NO_PERMISSIONS,
        kind: CredentialKind = CredentialKind.BASIC_EMAIL,
    ) -> str:
        """Issue a bearer token carrying permissions. Always gated by check_access."""
        credential = self.check_access(email, password, kind)
        self.store.touch_last_login(credential.identifier, kind)
        token = self.issuer.gen_token(TokenPayload(client=credential.identifier, permissions=Permissions(permissions)))
        logger.info("Granted token to %s (permissions=%d)", credential.identifier, int(permissions))
        return token

    def sign_out(self, email: str, password: str, kind: CredentialKind = CredentialKind.BASIC_EMAIL) -> None:
        """Delete the credential after proving access to it."""
        credential = self.check_access(email, password, kind)
        self.store.delete(credential.identifier, kind)
        logger.info("Removed %s credential for %s", CredentialKind(kind).value, credential.identifier)

    def revoke_token(self, token: str) -> None:
        self.issuer.revoke_token(token)

    def validate(self, token: str, required: int) -> bool:
        return self.issuer.validate(token, required)
