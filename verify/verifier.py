"""
verify/verifier.py -- Prove an email address is well-formed, permitted, and live.

EmailVerifier composes the three leaves of the verify/ package:

    syntax check -> DomainPolicy.classify -> MXResolver.resolve
        -> DomainPolicy.blocks_mx_host -> ProbeEngine.race

Each step fails with a distinct CredgateError subclass so the caller can
branch on kind. No DNS or SMTP traffic happens before the syntax check and
the domain-level policy check have passed.

Layer rule: no imports from api/, auth/, or db/.
"""

from __future__ import annotations

import logging
import re

from core.config import Settings
from core.errors import MalformedEmail, PolicyViolation, Unreachable
from core.models import ProbeVerdict
from verify.mx import MXResolver, is_ip_literal
from verify.policy import DomainPolicy, PolicyKind, normalize_domain
from verify.smtp import ProbeEngine, describe_failures

logger = logging.getLogger("credgate.verify")

# RFC 5322 addr-spec, restricted to the forms deliverable over SMTP:
#   local part:  dot-atom, or a quoted string with backslash escapes
#   domain:      LDH hostname labels, or a bracketed IPv4 / tagged literal
_EMAIL_RE = re.compile(
    r"(?:[a-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[a-z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r'|"(?:[\x01-\x08\x0b\x0c\x0e-\x1f\x21\x23-\x5b\x5d-\x7f]|\\[\x01-\x09\x0b\x0c\x0e-\x7f])*")'
    r"@"
    r"(?:(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z0-9](?:[a-z0-9-]*[a-z0-9])?"
    r"|\[(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}"
    r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?"
    r"|[a-z0-9-]*[a-z0-9]:(?:[\x01-\x08\x0b\x0c\x0e-\x1f\x21-\x5a\x53-\x7f]|\\[\x01-\x09\x0b\x0c\x0e-\x7f])+)\])",
    # ASCII: Unicode case folding would let [a-z] match U+017F and U+212A.
    re.IGNORECASE | re.ASCII,
)


def split_email(email: str) -> tuple[str, str]:
    """Validate email and return (local_part, domain) with the domain lowercased.

    Raises MalformedEmail if the whole string does not match the grammar.
    The split is on the last "@" because a quoted local part may contain one.
    """
    if not isinstance(email, str) or not _EMAIL_RE.fullmatch(email):
        raise MalformedEmail(str(email))
    local, domain = email.rsplit("@", 1)
    return local, normalize_domain(domain)


def normalize_email(email: str) -> str:
    """Canonical identifier form: local part untouched, domain lowercased."""
    local, domain = split_email(email.strip())
    return f"{local}@{domain}"


def _probe_target(domain: str) -> str:
    """Host to dial for the bare domain; address literals lose their brackets."""
    if is_ip_literal(domain):
        literal = domain[1:-1]
        return literal.split(":", 1)[1] if ":" in literal else literal
    return domain


class EmailVerifier:
    """Verify mailbox liveness without sending mail.

    Usage:
        verifier = EmailVerifier.from_settings(get_settings())
        verdict = verifier.verify("user@example.org")   # raises on any rejection
    """

    def __init__(self, policy: DomainPolicy, resolver: MXResolver, engine: ProbeEngine) -> None:
        self.policy = policy
        self.resolver = resolver
        self.engine = engine

    @classmethod
    def from_settings(cls, settings: Settings) -> EmailVerifier:
        engine = ProbeEngine(
            helo_hostname=settings.helo_hostname,
            mail_from=settings.probe_sender,
            timeout=settings.probe_timeout,
            deadline=settings.probe_deadline,
        )
        return cls(DomainPolicy.from_settings(settings), MXResolver(lifetime=settings.dns_lifetime), engine)

    def verify(self, email: str) -> ProbeVerdict:
        """Return the accepting probe's verdict, or raise.

        Raises:
            MalformedEmail:    email does not match the grammar.
            PolicyViolation:   blacklisted domain, non-whitelisted domain, or
                               a blacklisted MX host.
            ResolutionFailure: the MX lookup itself failed.
            Unreachable:       no host accepted the recipient.
        """
        _, domain = split_email(email)
        self.check_policy(domain)

        mx_hosts = self.resolver.resolve(domain)
        for mx in mx_hosts:
            if self.policy.blocks_mx_host(mx.host):
                logger.info("Rejecting %s: MX host %s is blacklisted", email, mx.host)
                raise PolicyViolation(mx.host, "blacklisted_mx")

        # Every MX host in preference order, then the bare domain as the
        # implicit fallback exchanger.
        targets = [mx.host for mx in mx_hosts] + [_probe_target(domain)]
        outcome = self.engine.race(email, targets)
        if not outcome.accepted:
            detail = describe_failures(outcome.verdicts)
            raise Unreachable(f"The mailbox {email!r} is unreachable ({detail}).")
        return outcome.winner

    def check_policy(self, domain: str) -> None:
        """Apply the domain-level policy rule. A whitelist match falls through."""
        decision = self.policy.classify(domain)
        if decision.kind is PolicyKind.BLACKLIST and decision.matched:
            logger.info("Rejecting domain %s: blacklisted", domain)
            raise PolicyViolation(domain, "blacklisted")
        if decision.kind is PolicyKind.WHITELIST and not decision.matched:
            logger.info("Rejecting domain %s: not whitelisted", domain)
            raise PolicyViolation(domain, "not_whitelisted")
