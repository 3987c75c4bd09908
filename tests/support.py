"""Shared fakes for resolver, TLS configuration, sessions and sockets."""

from __future__ import annotations

from typing import Any, Iterable

from dane_check.dns_resolver import DnsEvidence
from dane_check.models import Address, DaneMatch, DnssecEvidence, TlsaRecord, TlsaRecordSet
from dane_check.tls import TlsConfigError, TlsHandshakeError, verify_error_string

TLSA_3_1_1 = TlsaRecord(3, 1, 1, bytes(range(32)))


def secure_evidence(**overrides: bool) -> DnssecEvidence:
    """Build fully authenticated DNSSEC evidence with optional overrides."""
    values = {
        "address_authenticated_v4": True,
        "address_authenticated_v6": True,
        "tlsa_authenticated": True,
        "bogus_or_indeterminate": False,
    }
    values.update(overrides)
    return DnssecEvidence(**values)


class FakeResolver:
    """Resolver double returning canned DNS evidence.

    Attributes:
        calls (list[tuple[str, int, object]]): Recorded gather_evidence calls.
    """

    def __init__(
        self,
        addresses: Iterable[Address] = (),
        tlsa: TlsaRecordSet | None = None,
        evidence: DnssecEvidence | None = None,
    ) -> None:
        """Store canned answers."""
        self.addresses = tuple(addresses)
        self.tlsa = tlsa or TlsaRecordSet()
        self.evidence = evidence or secure_evidence()
        self.calls: list[tuple[str, int, object]] = []

    def gather_evidence(self, hostname: str, port: int, mode: object) -> DnsEvidence:
        """Return the canned evidence and record the call."""
        self.calls.append((hostname, port, mode))
        return DnsEvidence(self.addresses, self.tlsa, self.evidence)


class FakeSocket:
    """Plaintext socket double with scripted replies.

    Attributes:
        sent (list[bytes]): Bytes passed to sendall.
        closed (bool): Whether close was called.
    """

    def __init__(self, replies: Iterable[bytes] = ()) -> None:
        """Queue reply chunks returned by recv."""
        self.replies = list(replies)
        self.sent: list[bytes] = []
        self.closed = False

    def recv(self, _size: int) -> bytes:
        """Return the next scripted chunk, or EOF."""
        if not self.replies:
            return b""
        return self.replies.pop(0)

    def sendall(self, data: bytes) -> None:
        """Record sent bytes."""
        self.sent.append(data)

    def close(self) -> None:
        """Mark the socket closed."""
        self.closed = True


class FakeSession:
    """TLS session double recording every call.

    Attributes:
        calls (list[tuple[str, Any]]): Method calls in order.
        released (bool): Whether release was called.
        shut_down (bool): Whether shutdown was called.
    """

    def __init__(
        self,
        *,
        tlsa_rc: int | list[int] = 1,
        handshake_error: str | None = None,
        verify_code: int = 0,
        dane_match: DaneMatch | None = None,
        peername: str | None = None,
        enable_dane_error: Exception | None = None,
    ) -> None:
        """Configure scripted behaviour."""
        self.tlsa_rc = tlsa_rc
        self.handshake_error = handshake_error
        self.verify_code = verify_code
        self._dane_match = dane_match
        self._peername = peername
        self.enable_dane_error = enable_dane_error
        self.calls: list[tuple[str, Any]] = []
        self.released = False
        self.shut_down = False
        self.handshake_done = False
        self.sni: str | None = None
        self.hostname: str | None = None
        self.host_flags = 0

    def enable_dane(self, hostname: str) -> None:
        """Record DANE enablement; DANE also sets SNI."""
        self.calls.append(("enable_dane", hostname))
        if self.enable_dane_error is not None:
            raise self.enable_dane_error
        self.hostname = hostname
        self.sni = hostname

    def add_tlsa(self, record: TlsaRecord) -> int:
        """Return the next scripted usability code."""
        self.calls.append(("add_tlsa", record))
        if isinstance(self.tlsa_rc, list):
            return self.tlsa_rc.pop(0)
        return self.tlsa_rc

    def set_host(self, hostname: str) -> None:
        """Record the reference host name."""
        self.calls.append(("set_host", hostname))
        self.hostname = hostname

    def set_host_flags(self, flags: int) -> None:
        """Record host name flags."""
        self.calls.append(("set_host_flags", flags))
        self.host_flags = flags

    def set_sni(self, hostname: str) -> None:
        """Record explicit SNI."""
        self.calls.append(("set_sni", hostname))
        self.sni = hostname

    def handshake(self) -> None:
        """Complete or fail the handshake as scripted."""
        self.calls.append(("handshake", None))
        if self.handshake_error is not None:
            raise TlsHandshakeError(self.handshake_error)
        self.handshake_done = True

    @property
    def protocol_version(self) -> str:
        """Return a fixed protocol name."""
        return "TLSv1.3"

    @property
    def cipher(self) -> str:
        """Return a fixed cipher description."""
        return "TLSv1.3 TLS_AES_256_GCM_SHA384"

    @property
    def peername(self) -> str | None:
        """Return the scripted peer name."""
        return self._peername

    def peer_chain(self) -> list:
        """Return an empty presented chain."""
        return []

    def verified_chain(self) -> list:
        """Return an empty verified chain."""
        return []

    def verify_result(self) -> tuple[int, str]:
        """Return the scripted verification code."""
        return self.verify_code, verify_error_string(self.verify_code)

    def dane_authority(self) -> DaneMatch | None:
        """Return the scripted DANE match."""
        return self._dane_match

    def shutdown(self) -> None:
        """Record the shutdown exchange."""
        self.calls.append(("shutdown", None))
        self.shut_down = True

    def release(self) -> None:
        """Record the release."""
        self.calls.append(("release", None))
        self.released = True


class FakeTlsConfig:
    """TLS configuration double handing out scripted sessions.

    Attributes:
        sessions (list[FakeSession]): Sessions handed out, in order.
        sockets (list[object]): Sockets passed to new_session.
    """

    def __init__(
        self,
        sessions: Iterable[FakeSession] = (),
        *,
        trust_store_error: str | None = None,
        dane_error: str | None = None,
    ) -> None:
        """Queue sessions and configuration failures."""
        self._queue = list(sessions)
        self.trust_store_error = trust_store_error
        self.dane_error = dane_error
        self.sessions: list[FakeSession] = []
        self.sockets: list[object] = []
        self.cafile: str | None = None
        self.dane_enabled = False

    def load_trust_store(self) -> None:
        """Fail when a trust store error is scripted."""
        if self.trust_store_error:
            raise TlsConfigError(self.trust_store_error)

    def enable_dane(self) -> None:
        """Fail when a DANE error is scripted."""
        if self.dane_error:
            raise TlsConfigError(self.dane_error)
        self.dane_enabled = True

    def new_session(self, sock: object) -> FakeSession:
        """Return the next queued session (or a default one)."""
        session = self._queue.pop(0) if self._queue else FakeSession()
        self.sessions.append(session)
        self.sockets.append(sock)
        return session


class Lines:
    """Reporter double collecting progress lines.

    Attributes:
        lines (list[str]): Reported lines.
    """

    def __init__(self) -> None:
        """Start with no lines."""
        self.lines: list[str] = []

    def __call__(self, line: str) -> None:
        """Collect a line."""
        self.lines.append(line)


__all__ = [
    "FakeResolver",
    "FakeSession",
    "FakeSocket",
    "FakeTlsConfig",
    "Lines",
    "TLSA_3_1_1",
    "secure_evidence",
]
