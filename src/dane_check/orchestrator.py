"""Per-address connection loop: connect, bind policy, STARTTLS, handshake, verify."""

from __future__ import annotations

import logging
import socket
from typing import Callable, List, Optional, Sequence

from .chain import describe_chain
from .models import (
    Address,
    AttemptOutcome,
    AuthMode,
    BindFailed,
    ConnectFailed,
    HandshakeFailed,
    RunTotals,
    StartTlsFailed,
    TlsaRecordSet,
    VerifyFailed,
    VerifySucceeded,
)
from .session import BindError, bind
from .starttls import StartTlsError, StartTlsSpec
from .tls import X509_V_OK, TlsHandshakeError, TlsSessionError

LOGGER = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0

Connector = Callable[[Address], socket.socket]
Reporter = Callable[[str], None]


def tcp_connect(address: Address, timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT) -> socket.socket:
    """Open a TCP connection to one address.

    The returned socket is in blocking mode so pyOpenSSL can drive it.

    Args:
        address (Address): Endpoint to connect to.
        timeout (Optional[float]): Connect timeout in seconds.

    Returns:
        socket.socket: Connected socket.

    Raises:
        OSError: If the connection cannot be established.
    """
    family = socket.AF_INET6 if address.family == 6 else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.settimeout(timeout)
        sock.connect((address.ip, address.port))
        sock.settimeout(None)
    except OSError:
        sock.close()
        raise
    return sock


def print_reporter(line: str) -> None:
    """Write one progress line to stdout.

    Args:
        line (str): Line to print.
    """
    print(line, flush=True)


def silent_reporter(_line: str) -> None:
    """Discard a progress line."""


class Orchestrator:
    """Attempt an authenticated TLS connection to each address in turn.

    Attributes:
        totals (RunTotals): Counters tallied by :meth:`run`.
        outcomes (List[AttemptOutcome]): Outcomes in address order.
    """

    def __init__(
        self,
        tls_config: object,
        hostname: str,
        mode: AuthMode,
        attempt_dane: bool,
        tlsa_set: TlsaRecordSet,
        negotiator: Optional[StartTlsSpec] = None,
        service_name: Optional[str] = None,
        connector: Connector = tcp_connect,
        reporter: Reporter = print_reporter,
        debug: bool = False,
    ) -> None:
        """Prepare the connection loop.

        Args:
            tls_config (object): Shared TLS configuration providing ``new_session``.
            hostname (str): Target host name.
            mode (AuthMode): Configured authentication mode.
            attempt_dane (bool): Whether sessions use DANE.
            tlsa_set (TlsaRecordSet): TLSA records for the service.
            negotiator (Optional[StartTlsSpec]): STARTTLS protocol, if any.
            service_name (Optional[str]): Application service name for STARTTLS.
            connector (Connector): Opens a TCP connection to an address.
            reporter (Reporter): Receives progress lines.
            debug (bool): Dump peer and validated chains.
        """
        self._tls_config = tls_config
        self._hostname = hostname
        self._mode = mode
        self._attempt_dane = attempt_dane
        self._tlsa_set = tlsa_set
        self._negotiator = negotiator
        self._service_name = service_name
        self._connector = connector
        self._report = reporter
        self._debug = debug
        self.totals = RunTotals()
        self.outcomes: List[AttemptOutcome] = []

    def run(self, addresses: Sequence[Address]) -> RunTotals:
        """Attempt every address in order and tally the outcomes.

        Args:
            addresses (Sequence[Address]): Addresses in resolution order.

        Returns:
            RunTotals: Success and failure counters.
        """
        for address in addresses:
            outcome = self.attempt(address)
            self.outcomes.append(outcome)
            self.totals.record(outcome)
            self._report("")
        return self.totals

    def attempt(self, address: Address) -> AttemptOutcome:
        """Run one connection attempt.

        The socket and session are released on every path once created; the
        TLS shutdown exchange only happens after a completed handshake.

        Args:
            address (Address): Address to connect to.

        Returns:
            AttemptOutcome: Tagged outcome of the attempt.
        """
        self._report(f"Connecting to {address.label}")
        try:
            sock = self._connector(address)
        except OSError as err:
            LOGGER.error("Failed to connect to %s: %s", address.label, err)
            return ConnectFailed(address, str(err))

        session = None
        handshake_done = False
        try:
            try:
                session = self._tls_config.new_session(sock)
            except TlsSessionError as err:
                LOGGER.error("%s", err)
                return BindFailed(address, str(err))

            try:
                bound = bind(
                    session,
                    address,
                    self._hostname,
                    self._attempt_dane,
                    self._tlsa_set,
                    self._mode,
                )
            except BindError as err:
                LOGGER.error("%s", err)
                return BindFailed(address, str(err))
            self.totals.usable_tlsa_count += bound.usable_tlsa

            if self._negotiator is not None:
                error = self._starttls(sock)
                if error is not None:
                    LOGGER.error("STARTTLS failed: %s", error)
                    return StartTlsFailed(address, error)

            try:
                session.handshake()
            except TlsHandshakeError as err:
                LOGGER.error("%s", err)
                return HandshakeFailed(address, str(err))
            handshake_done = True
            return self._classify(address, session)
        finally:
            if session is not None:
                if handshake_done:
                    try:
                        session.shutdown()
                    except TlsSessionError as err:
                        LOGGER.warning("%s", err)
                session.release()
            sock.close()

    def _starttls(self, sock: socket.socket) -> Optional[str]:
        """Run the configured STARTTLS negotiation.

        Args:
            sock (socket.socket): Connected plaintext socket.

        Returns:
            Optional[str]: Error description, or None on success.
        """
        try:
            agreed = self._negotiator.negotiate(sock, self._service_name, self._hostname)
        except (StartTlsError, OSError) as err:
            return str(err)
        if not agreed:
            return f"{self._negotiator.name} server did not agree to start TLS"
        return None

    def _dump_chain(self, title: str, chain: Sequence[object]) -> None:
        """Report a certificate chain when debugging.

        Args:
            title (str): Heading line.
            chain (Sequence[object]): Chain, leaf first.
        """
        if not self._debug:
            return
        self._report(title)
        for line in describe_chain(chain):
            self._report(line)

    def _classify(self, address: Address, session: object) -> AttemptOutcome:
        """Turn a completed handshake into a verification outcome.

        Args:
            address (Address): Address of the session.
            session (object): Session whose handshake completed.

        Returns:
            AttemptOutcome: VerifySucceeded or VerifyFailed.
        """
        protocol = session.protocol_version
        cipher = session.cipher
        self._report(f"{protocol} handshake succeeded.")
        self._report(f"Cipher: {cipher}")
        self._dump_chain("Peer Certificate chain:", session.peer_chain())

        code, reason = session.verify_result()
        if code != X509_V_OK:
            LOGGER.error("Error: peer authentication failed. rc=%d (%s)", code, reason)
            return VerifyFailed(address, code, reason)

        match = session.dane_authority()
        if match is not None:
            self._report(
                f"DANE TLSA {match.record.describe(6)} {match.description} at depth {match.depth}"
            )
        peername = session.peername
        if peername is not None:
            self._report(f"Verified peername: {peername}")
        self._dump_chain("Validated Certificate chain:", session.verified_chain())
        return VerifySucceeded(address, peername, match, protocol, cipher)


__all__ = [
    "DEFAULT_CONNECT_TIMEOUT",
    "Orchestrator",
    "print_reporter",
    "silent_reporter",
    "tcp_connect",
]
