"""
verify/smtp.py -- Non-delivering SMTP handshake probes raced across MX hosts.

SMTPProbe runs one handshake against one host:

    connect            -> 220 greeting
    HELO <hostname>    -> 250
    MAIL FROM:<sender> -> 250
    RCPT TO:<email>    -> 250   (the acceptance signal)
    RSET               -> 250   (abort the transaction, nothing is queued)
    QUIT               -> 221 or 250

Reply codes are checked in the order the server sends them, so 220 belongs
to the greeting and HELO expects 250.

Any other reply or any network failure produces accepted=False. So does an
address smtplib cannot encode, since UnicodeEncodeError is a ValueError. The
condition is kept as the verdict reason. The
connection is closed exactly once on every path, whether the probe finishes
on its own or is cancelled from the aggregating thread.

ProbeEngine.race() starts one probe per host on a thread pool and consumes
verdicts in arrival order. The first accepted verdict wins and every other
probe is cancelled: its socket is shut down so a blocked read returns
immediately. Overall failure is declared only once every host has reported.
Two bounds keep a race finite: probe_timeout on each socket operation and
probe_deadline on the race as a whole.

smtp_factory defaults to smtplib.SMTP. Tests inject a fake with the same
connect/helo/mail/rcpt/rset/docmd/close surface.

Layer rule: no imports from api/, auth/, or db/.
"""

from __future__ import annotations

import logging
import smtplib
import socket
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Optional

from core.models import SMTP_PORT, ProbeVerdict, RaceOutcome

logger = logging.getLogger("credgate.smtp")

SMTPFactory = Callable[..., Any]


# ---------------------------------------------------------------------------
# Probe failure reasons
# ---------------------------------------------------------------------------


class ProbeRejected(Exception):
    """The server answered a handshake step with an unexpected reply code."""

    def __init__(self, stage: str, code: int, message: bytes | str = b"") -> None:
        if isinstance(message, bytes):
            message = message.decode("latin-1", errors="replace")
        super().__init__(f"{stage} rejected with {code}: {message.strip()}")
        self.stage = stage
        self.code = code


class ProbeCancelled(Exception):
    """The race was decided before this probe finished."""


class ProbeTimeout(Exception):
    """The race deadline passed before this probe reported."""


# ---------------------------------------------------------------------------
# Single probe
# ---------------------------------------------------------------------------


class SMTPProbe:
    """One recipient-acceptance handshake against one host.

    run() never raises for network or protocol conditions; it returns a
    ProbeVerdict. cancel() may be called from any thread at any time.
    """

    def __init__(
        self,
        email: str,
        host: str,
        *,
        helo_hostname: str,
        mail_from: str,
        timeout: float = 10.0,
        port: int = SMTP_PORT,
        smtp_factory: SMTPFactory = smtplib.SMTP,
    ) -> None:
        self.email = email
        self.host = host
        self.helo_hostname = helo_hostname
        self.mail_from = mail_from
        self.timeout = timeout
        self.port = port
        self._smtp_factory = smtp_factory
        self._smtp: Any = None
        self._lock = threading.Lock()
        self._cancelled = threading.Event()

    def run(self) -> ProbeVerdict:
        started = time.monotonic()
        try:
            self._handshake()
        except (ProbeRejected, ProbeCancelled, smtplib.SMTPException, OSError, ValueError) as exc:
            if self._cancelled.is_set() and not isinstance(exc, ProbeRejected):
                exc = ProbeCancelled(f"probe of {self.host} cancelled")
            verdict = ProbeVerdict(host=self.host, accepted=False, reason=exc)
        else:
            verdict = ProbeVerdict(host=self.host, accepted=True)
        finally:
            self._close()

        logger.debug(
            "probe %s via %s: accepted=%s in %.0fms (%s)",
            self.email,
            self.host,
            verdict.accepted,
            (time.monotonic() - started) * 1000,
            verdict.reason,
        )
        return verdict

    def cancel(self) -> None:
        """Abort the probe from another thread.

        Shutting the socket down unblocks a worker stuck in recv(); the worker
        then fails its current step, closes the connection in run(), and
        reports a ProbeCancelled verdict. A probe that already finished is
        unaffected.
        """
        self._cancelled.set()
        with self._lock:
            smtp = self._smtp
        sock = getattr(smtp, "sock", None)
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # already disconnected

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _handshake(self) -> None:
        smtp = self._smtp_factory(local_hostname=self.helo_hostname, timeout=self.timeout)
        with self._lock:
            self._smtp = smtp
        self._check_cancelled()

        code, msg = smtp.connect(self.host, self.port)
        self._expect("greeting", code, msg, (220,))

        code, msg = smtp.helo(self.helo_hostname)
        self._expect("HELO", code, msg, (250,))

        code, msg = smtp.mail(self.mail_from)
        self._expect("MAIL FROM", code, msg, (250,))

        code, msg = smtp.rcpt(self.email)
        self._expect("RCPT TO", code, msg, (250,))

        code, msg = smtp.rset()
        self._expect("RSET", code, msg, (250,))

        code, msg = smtp.docmd("QUIT")
        self._expect("QUIT", code, msg, (221, 250))

    def _expect(self, stage: str, code: int, msg: bytes | str, accepted: tuple[int, ...]) -> None:
        self._check_cancelled()
        if code not in accepted:
            raise ProbeRejected(stage, code, msg)

    def _check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise ProbeCancelled(f"probe of {self.host} cancelled")

    def _close(self) -> None:
        # Only run() calls this, from its finally block, so it runs once per probe.
        with self._lock:
            smtp, self._smtp = self._smtp, None
        if smtp is not None:
            smtp.close()


# ---------------------------------------------------------------------------
# Race
# ---------------------------------------------------------------------------


class ProbeEngine:
    """Fan one email out to many hosts and return the first acceptance.

    Usage:
        engine = ProbeEngine(helo_hostname="mail.example.net", mail_from="verify@example.net")
        outcome = engine.race("user@example.org", ["mx1.example.org", "example.org"])
    """

    def __init__(
        self,
        *,
        helo_hostname: str,
        mail_from: str,
        timeout: float = 10.0,
        deadline: float = 30.0,
        port: int = SMTP_PORT,
        smtp_factory: SMTPFactory = smtplib.SMTP,
    ) -> None:
        self.helo_hostname = helo_hostname
        self.mail_from = mail_from
        self.timeout = timeout
        self.deadline = deadline
        self.port = port
        self._smtp_factory = smtp_factory

    def make_probe(self, email: str, host: str) -> SMTPProbe:
        return SMTPProbe(
            email,
            host,
            helo_hostname=self.helo_hostname,
            mail_from=self.mail_from,
            timeout=self.timeout,
            port=self.port,
            smtp_factory=self._smtp_factory,
        )

    def race(self, email: str, hosts: Sequence[str]) -> RaceOutcome:
        """Probe every host concurrently; succeed on the first acceptance.

        hosts is probed as given, duplicates included, so a failed race
        reports exactly len(hosts) verdicts.
        """
        if not hosts:
            return RaceOutcome(accepted=False)

        probes = [self.make_probe(email, host) for host in hosts]
        executor = ThreadPoolExecutor(max_workers=len(probes), thread_name_prefix="smtp-probe")
        futures = {executor.submit(probe.run): probe for probe in probes}
        verdicts: list[ProbeVerdict] = []
        reported = set()
        try:
            for future in as_completed(futures, timeout=self.deadline):
                reported.add(future)
                verdict = future.result()
                verdicts.append(verdict)
                if verdict.accepted:
                    logger.info("%s accepted by %s (%d/%d reported)", email, verdict.host, len(verdicts), len(probes))
                    return RaceOutcome(accepted=True, winner=verdict, verdicts=verdicts)
        except FuturesTimeoutError:
            # One verdict per host: a probe that lands between the timeout and
            # this loop still counts as a failure, even if it accepted.
            for future, probe in futures.items():
                if future in reported:
                    continue
                reason = ProbeTimeout(f"no verdict from {probe.host} within {self.deadline:.1f}s")
                verdicts.append(ProbeVerdict(host=probe.host, accepted=False, reason=reason))
        finally:
            for probe in probes:
                probe.cancel()
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info("%s rejected by all %d hosts", email, len(probes))
        return RaceOutcome(accepted=False, verdicts=verdicts)


def describe_failures(verdicts: Sequence[ProbeVerdict]) -> Optional[str]:
    """Summarize failed verdicts as "host: reason" pairs for error messages."""
    failures = [f"{v.host}: {v.reason}" for v in verdicts if not v.accepted]
    return "; ".join(failures) if failures else None
