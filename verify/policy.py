"""
verify/policy.py -- Organizational allow/deny policy for email domains.

A DomainPolicy is an immutable snapshot built once from Settings at startup
and passed into EmailVerifier. It never reloads; restart the process to pick
up a new list.

Two independent rules live here:
  classify(domain)       -- the email's own domain against the configured list.
  blocks_mx_host(host)   -- a resolved MX hostname against the blacklist. A
                            domain can be clean while its mail is relayed by a
                            blacklisted provider. Disabled with
                            POLICY_CHECK_MX_HOSTS=false.

Layer rule: no imports from api/, auth/, or db/.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from core.config import Settings


class PolicyKind(str, Enum):
    NONE = "none"
    BLACKLIST = "blacklist"
    WHITELIST = "whitelist"


@dataclass(frozen=True)
class Classification:
    kind: PolicyKind
    matched: bool = False


def normalize_domain(domain: str) -> str:
    """Lowercase and strip surrounding whitespace and any trailing root dot."""
    return domain.strip().lower().rstrip(".")


class DomainPolicy:
    """Read-only domain list with O(1) membership checks.

    Usage:
        policy = DomainPolicy.blacklist(["spam.example"])
        policy.classify("spam.example")   # Classification(BLACKLIST, matched=True)
    """

    def __init__(
        self,
        kind: PolicyKind = PolicyKind.NONE,
        domains: Iterable[str] = (),
        *,
        check_mx_hosts: bool = True,
    ) -> None:
        self.kind = kind
        self.domains = frozenset(normalize_domain(d) for d in domains if d.strip())
        self.check_mx_hosts = check_mx_hosts

    @classmethod
    def none(cls) -> DomainPolicy:
        return cls(PolicyKind.NONE)

    @classmethod
    def blacklist(cls, domains: Iterable[str], *, check_mx_hosts: bool = True) -> DomainPolicy:
        return cls(PolicyKind.BLACKLIST, domains, check_mx_hosts=check_mx_hosts)

    @classmethod
    def whitelist(cls, domains: Iterable[str]) -> DomainPolicy:
        return cls(PolicyKind.WHITELIST, domains)

    @classmethod
    def from_settings(cls, settings: Settings) -> DomainPolicy:
        """Build the process-wide snapshot.

        Settings already rejects both lists being set, so at most one branch
        applies. An empty list means no policy.
        """
        if settings.domain_blacklist:
            return cls.blacklist(settings.domain_blacklist, check_mx_hosts=settings.policy_check_mx_hosts)
        if settings.domain_whitelist:
            return cls.whitelist(settings.domain_whitelist)
        return cls.none()

    def classify(self, domain: str) -> Classification:
        if self.kind is PolicyKind.NONE:
            return Classification(PolicyKind.NONE)
        return Classification(self.kind, normalize_domain(domain) in self.domains)

    def blocks_mx_host(self, host: str) -> bool:
        """Return True if host is a blacklisted domain or a subdomain of one.

        Always False for whitelist and no-policy snapshots: a whitelist
        constrains the email domain only, not where its mail is delivered.
        """
        if self.kind is not PolicyKind.BLACKLIST or not self.check_mx_hosts:
            return False
        host = normalize_domain(host)
        if host in self.domains:
            return True
        # Walk parent domains: mx1.relay.example -> relay.example -> example
        labels = host.split(".")
        return any(".".join(labels[i:]) in self.domains for i in range(1, len(labels)))

    def __repr__(self) -> str:
        return f"DomainPolicy(kind={self.kind.value}, domains={len(self.domains)})"
