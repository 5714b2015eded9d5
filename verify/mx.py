"""
verify/mx.py -- Mail-exchanger lookup ranked by preference.

Wraps a dnspython Resolver. The resolver is injected so tests can substitute
a fake without monkeypatching dns.resolver globally.

Result contract:
  - Ascending preference; equal preferences keep resolver order (stable sort).
  - An empty list is a valid answer: a domain without MX records may still
    accept mail on its A record, so the caller probes the bare domain anyway.
  - Any DNS failure other than "no MX records" raises ResolutionFailure. A
    failed lookup must never look like an empty answer.

Layer rule: no imports from api/, auth/, or db/.
"""

from __future__ import annotations

import logging
from typing import Optional

import dns.exception
import dns.name
import dns.resolver

from core.errors import ResolutionFailure
from core.models import MXHost

logger = logging.getLogger("credgate.mx")


def is_ip_literal(domain: str) -> bool:
    """True for bracketed address literals such as [192.0.2.1]."""
    return domain.startswith("[") and domain.endswith("]")


class MXResolver:
    def __init__(self, resolver: Optional[dns.resolver.Resolver] = None, lifetime: float = 5.0) -> None:
        self._resolver = resolver if resolver is not None else dns.resolver.Resolver()
        self.lifetime = lifetime

    def resolve(self, domain: str) -> list[MXHost]:
        """Return the MX hosts for domain, most preferred first.

        Raises ResolutionFailure on NXDOMAIN, timeouts, or unreachable
        nameservers.
        """
        if is_ip_literal(domain):
            # Address literals bypass DNS; the caller probes the literal itself.
            return []

        try:
            answers = self._resolver.resolve(domain, "MX", lifetime=self.lifetime)
        except dns.resolver.NoAnswer:
            logger.debug("No MX records for %s", domain)
            return []
        except dns.resolver.NXDOMAIN as exc:
            raise ResolutionFailure(f"Domain {domain!r} does not exist.") from exc
        except dns.exception.DNSException as exc:
            raise ResolutionFailure(f"MX lookup failed for {domain!r}: {exc}") from exc

        hosts = []
        for rdata in answers:
            # Null MX (RFC 7505): "." means the domain accepts no mail at all.
            if rdata.exchange == dns.name.root:
                continue
            host = rdata.exchange.to_text(omit_final_dot=True)
            hosts.append(MXHost(host=host, preference=int(rdata.preference)))

        hosts.sort(key=lambda mx: mx.preference)
        logger.debug("MX for %s: %s", domain, [(h.host, h.preference) for h in hosts])
        return hosts
