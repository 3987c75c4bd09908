"""TLS client configuration and per-address sessions with DANE support.

pyOpenSSL performs the handshake and PKIX chain building. The handshake never
aborts on a verification error; errors reported by the library callback are
recorded and combined with host name checks and TLSA matching once the
handshake completes, so callers query a single verification result the way
they would with ``SSL_get_verify_result``.
"""

from __future__ import annotations

import hashlib
import logging
import socket
from typing import List, Optional, Sequence, Tuple

from cryptography import x509
from OpenSSL import SSL
from OpenSSL import crypto as OpenSSL_crypto

from . import dane
from .hostname import NO_PARTIAL_WILDCARDS, certificate_names, match_hostname
from .models import DaneMatch, TlsaRecord

LOGGER = logging.getLogger(__name__)

VERIFY_DEPTH = 10
SSL_MODE_AUTO_RETRY = 0x00000004

X509_V_OK = 0
X509_V_ERR_APPLICATION_VERIFICATION = 50
X509_V_ERR_HOSTNAME_MISMATCH = 62
X509_V_ERR_DANE_NO_MATCH = 65

_VERIFY_ERROR_STRINGS = {
    0: "ok",
    2: "unable to get issuer certificate",
    4: "unable to decrypt certificate's signature",
    7: "certificate signature failure",
    9: "certificate is not yet valid",
    10: "certificate has expired",
    18: "self-signed certificate",
    19: "self-signed certificate in certificate chain",
    20: "unable to get local issuer certificate",
    21: "unable to verify the first certificate",
    22: "certificate chain too long",
    23: "certificate revoked",
    24: "invalid CA certificate",
    25: "path length constraint exceeded",
    26: "unsupported certificate purpose",
    27: "certificate not trusted",
    28: "certificate rejected",
    50: "application verification failure",
    62: "hostname mismatch",
    65: "no matching DANE TLSA records",
}


def verify_error_string(code: int) -> str:
    """Return the human-readable reason for an X.509 verification code.

    Args:
        code (int): X.509 verification result code.

    Returns:
        str: Reason text.
    """
    return _VERIFY_ERROR_STRINGS.get(code, f"certificate verify error {code}")


class TlsConfigError(RuntimeError):
    """Raised when the shared TLS configuration cannot be prepared."""


class TrustStoreError(TlsConfigError):
    """Raised when certificate authorities cannot be loaded."""


class TlsSessionError(RuntimeError):
    """Raised when a session cannot be created or configured."""


class TlsHandshakeError(RuntimeError):
    """Raised when the TLS handshake fails."""


def _verify_callback(
    connection: SSL.Connection,
    _certificate: OpenSSL_crypto.X509,
    errno: int,
    depth: int,
    preverify_ok: int,
) -> bool:
    """Record PKIX verification errors without aborting the handshake.

    Args:
        connection (SSL.Connection): Connection under verification.
        _certificate (OpenSSL_crypto.X509): Certificate being checked.
        errno (int): Verification error code.
        depth (int): Chain depth of the certificate.
        preverify_ok (int): Library verdict for this certificate.

    Returns:
        bool: Always True so the handshake can complete.
    """
    if not preverify_ok:
        session = connection.get_app_data()
        if isinstance(session, TlsSession):
            session._record_pkix_error(errno, depth)
    return True


class TlsConfig:
    """Shared TLS client configuration for one run.

    Attributes:
        cafile (Optional[str]): Alternate trust store file, or None for defaults.
        dane_enabled (bool): Whether DANE was enabled on the configuration.
    """

    def __init__(self, cafile: Optional[str] = None) -> None:
        """Create a TLS client context.

        Args:
            cafile (Optional[str]): Alternate trust store file.
        """
        self.cafile = cafile
        self.dane_enabled = False
        self._context = SSL.Context(SSL.TLS_CLIENT_METHOD)
        self._context.set_options(SSL.OP_NO_SSLv2 | SSL.OP_NO_SSLv3)
        self._context.set_verify(SSL.VERIFY_PEER, _verify_callback)
        self._context.set_verify_depth(VERIFY_DEPTH)
        self._context.set_mode(SSL_MODE_AUTO_RETRY)

    def load_trust_store(self) -> None:
        """Load default certificate authorities or the configured file.

        Raises:
            TrustStoreError: If the trust store cannot be loaded.
        """
        if not self.cafile:
            try:
                self._context.set_default_verify_paths()
            except SSL.Error as err:
                raise TrustStoreError(
                    f"Failed to load default certificate authorities: {err}"
                ) from err
            return
        try:
            self._context.load_verify_locations(self.cafile)
        except SSL.Error as err:
            raise TrustStoreError(
                f"Failed to load certificate authority store: {self.cafile}: {err}"
            ) from err

    def enable_dane(self) -> None:
        """Enable DANE on the shared configuration.

        Raises:
            TlsConfigError: If the SHA-2 digests TLSA matching needs are missing.
        """
        for digest in ("sha256", "sha512"):
            if digest not in hashlib.algorithms_available:
                raise TlsConfigError(
                    f"Unable to enable DANE on SSL context: {digest} is unavailable"
                )
        self.dane_enabled = True

    def new_session(self, sock: socket.socket) -> "TlsSession":
        """Create a client session bound to a connected socket.

        Args:
            sock (socket.socket): Connected TCP socket. The session never closes it.

        Returns:
            TlsSession: New session in client role.

        Raises:
            TlsSessionError: If the session cannot be created.
        """
        try:
            connection = SSL.Connection(self._context, sock)
        except SSL.Error as err:
            raise TlsSessionError(f"SSL session creation failed: {err}") from err
        return TlsSession(connection, dane_allowed=self.dane_enabled)


class TlsSession:
    """One TLS client session for one address.

    Attributes:
        hostname (Optional[str]): Reference identifier for name checks.
        host_flags (int): Host name check flags.
        sni (Optional[str]): Server name sent in the handshake.
    """

    def __init__(self, connection: SSL.Connection, dane_allowed: bool = False) -> None:
        """Wrap a pyOpenSSL connection.

        Args:
            connection (SSL.Connection): Unconnected pyOpenSSL connection.
            dane_allowed (bool): Whether the shared configuration enabled DANE.
        """
        self._connection: Optional[SSL.Connection] = connection
        self._connection.set_app_data(self)
        self._connection.set_connect_state()
        self._dane_allowed = dane_allowed
        self._dane_enabled = False
        self._tlsa: List[TlsaRecord] = []
        self._pkix_error: Optional[Tuple[int, int]] = None
        self._handshake_done = False
        self._result: Optional[Tuple[int, str]] = None
        self._dane_match: Optional[DaneMatch] = None
        self._pkix_chain: List[x509.Certificate] = []
        self._peername: Optional[str] = None
        self.hostname: Optional[str] = None
        self.host_flags = 0
        self.sni: Optional[str] = None

    def _record_pkix_error(self, errno: int, depth: int) -> None:
        """Keep the first PKIX error reported during the handshake.

        Args:
            errno (int): Verification error code.
            depth (int): Chain depth at which it occurred.
        """
        LOGGER.debug("PKIX verification error %d at depth %d", errno, depth)
        if self._pkix_error is None:
            self._pkix_error = (errno, depth)

    def _require_connection(self) -> SSL.Connection:
        """Return the live connection.

        Returns:
            SSL.Connection: Underlying connection.

        Raises:
            TlsSessionError: If the session was already released.
        """
        if self._connection is None:
            raise TlsSessionError("TLS session already released")
        return self._connection

    def enable_dane(self, hostname: str) -> None:
        """Enable DANE for this session.

        Also requests SNI for ``hostname`` and makes it the reference identifier
        for the name checks DANE-TA and PKIX usages need.

        Args:
            hostname (str): Target host name.

        Raises:
            TlsSessionError: If DANE is not enabled on the configuration or the
                host name is empty.
        """
        if not self._dane_allowed:
            raise TlsSessionError("DANE is not enabled on the TLS configuration")
        if not hostname:
            raise TlsSessionError("DANE requires a target host name")
        self._dane_enabled = True
        self.hostname = hostname
        self.set_sni(hostname)

    def add_tlsa(self, record: TlsaRecord) -> int:
        """Add one TLSA record to the session.

        Args:
            record (TlsaRecord): Record to add.

        Returns:
            int: 1 when usable, 0 when unusable, -1 when DANE is not enabled.
        """
        if not self._dane_enabled:
            return -1
        usable = dane.tlsa_usable(record)
        if usable:
            self._tlsa.append(record)
        return usable

    def set_host(self, hostname: str) -> None:
        """Set the reference identifier for standard host name verification.

        Args:
            hostname (str): Expected peer host name.

        Raises:
            TlsSessionError: If the host name is empty.
        """
        if not hostname:
            raise TlsSessionError("Host name for verification must not be empty")
        self.hostname = hostname

    def set_host_flags(self, flags: int) -> None:
        """Set host name check flags.

        Args:
            flags (int): Bitmask such as ``NO_PARTIAL_WILDCARDS``.
        """
        self.host_flags = flags

    def set_sni(self, hostname: str) -> None:
        """Set the Server Name Indication extension value.

        Args:
            hostname (str): Server name to send.

        Raises:
            TlsSessionError: If the name cannot be encoded.
        """
        try:
            self._require_connection().set_tlsext_host_name(hostname.encode("idna"))
        except UnicodeError as err:
            raise TlsSessionError(f"Invalid server name {hostname!r}: {err}") from err
        self.sni = hostname

    def handshake(self) -> None:
        """Perform the TLS handshake in client role.

        Raises:
            TlsHandshakeError: If the handshake fails.
        """
        connection = self._require_connection()
        try:
            connection.do_handshake()
        except SSL.Error as err:
            raise TlsHandshakeError(f"TLS connection failed: {err}") from err
        self._handshake_done = True

    @property
    def protocol_version(self) -> Optional[str]:
        """Return the negotiated protocol version name."""
        if self._connection is None:
            return None
        return self._connection.get_protocol_version_name()

    @property
    def cipher(self) -> Optional[str]:
        """Return the negotiated cipher as ``version name``."""
        if self._connection is None:
            return None
        name = self._connection.get_cipher_name()
        if name is None:
            return None
        return f"{self._connection.get_cipher_version()} {name}"

    def peer_chain(self) -> List[x509.Certificate]:
        """Return the chain presented by the server.

        Returns:
            List[x509.Certificate]: Certificates in wire order, leaf first.
        """
        connection = self._require_connection()
        chain = connection.get_peer_cert_chain() or []
        if not chain:
            peer = connection.get_peer_certificate()
            if peer is not None:
                chain = [peer]
        return [certificate.to_cryptography() for certificate in chain]

    def verified_chain(self) -> List[x509.Certificate]:
        """Return the chain that authenticated the peer.

        Returns:
            List[x509.Certificate]: Verified chain, leaf first; empty on failure.
        """
        code, _reason = self.verify_result()
        if code != X509_V_OK:
            return []
        match = self._dane_match
        if match is None or match.record.usage == dane.USAGE_PKIX_TA:
            return list(self._pkix_chain)
        if match.anchor is not None:
            return self.peer_chain() + [match.anchor]
        return self.peer_chain()[: match.depth + 1]

    def verify_result(self) -> Tuple[int, str]:
        """Return the peer verification result.

        Returns:
            Tuple[int, str]: X.509 result code (0 for success) and reason.

        Raises:
            TlsSessionError: If called before the handshake completed.
        """
        if not self._handshake_done:
            raise TlsSessionError("Verification result requested before handshake")
        if self._result is None:
            self._result = self._verify()
        return self._result

    def dane_authority(self) -> Optional[DaneMatch]:
        """Return the TLSA record that served as trust anchor, if any.

        Returns:
            Optional[DaneMatch]: Matched record with depth, or None.
        """
        self.verify_result()
        return self._dane_match

    @property
    def peername(self) -> Optional[str]:
        """Return the verified peer name when name checks were in scope."""
        if not self._handshake_done:
            return None
        self.verify_result()
        return self._peername

    def _chain_verifies_to(self, chain: Sequence[x509.Certificate], depth: int) -> bool:
        """Check that the path from the leaf verifies up to a trust anchor.

        The anchor need not be self-signed; the store accepts partial chains.

        Args:
            chain (Sequence[x509.Certificate]): Presented chain, leaf first.
            depth (int): Depth of the certificate treated as trust anchor.

        Returns:
            bool: True when the leaf chains to ``chain[depth]``.
        """
        if depth == 0:
            return True
        store = OpenSSL_crypto.X509Store()
        store.set_flags(OpenSSL_crypto.X509StoreFlags.PARTIAL_CHAIN)
        store.add_cert(OpenSSL_crypto.X509.from_cryptography(chain[depth]))
        intermediates = [OpenSSL_crypto.X509.from_cryptography(cert) for cert in chain[1:depth]]
        context = OpenSSL_crypto.X509StoreContext(
            store,
            OpenSSL_crypto.X509.from_cryptography(chain[0]),
            chain=intermediates,
        )
        try:
            context.verify_certificate()
        except OpenSSL_crypto.X509StoreContextError as err:
            LOGGER.debug("Path to trust anchor at depth %d failed: %s", depth, err)
            return False
        return True

    def _check_name(self, chain: Sequence[x509.Certificate]) -> bool:
        """Run host name checks against the leaf certificate.

        Args:
            chain (Sequence[x509.Certificate]): Presented chain, leaf first.

        Returns:
            bool: True when no reference name is set or the leaf matches it.
        """
        if not self.hostname:
            return True
        matched = match_hostname(
            certificate_names(chain[0]),
            self.hostname,
            no_partial_wildcards=bool(self.host_flags & NO_PARTIAL_WILDCARDS),
        )
        if matched is None:
            return False
        self._peername = matched
        return True

    def _failure(self, code: int) -> Tuple[int, str]:
        """Build a failure result tuple.

        Args:
            code (int): X.509 result code.

        Returns:
            Tuple[int, str]: Code and reason.
        """
        return code, verify_error_string(code)

    def _verify(self) -> Tuple[int, str]:
        """Combine PKIX results, TLSA matching and name checks.

        Returns:
            Tuple[int, str]: X.509 result code and reason.
        """
        chain = self.peer_chain()
        if not chain:
            return self._failure(X509_V_ERR_APPLICATION_VERIFICATION)
        pkix_ok = self._pkix_error is None
        if pkix_ok:
            verified = self._require_connection().get_verified_chain() or []
            self._pkix_chain = [certificate.to_cryptography() for certificate in verified]

        if self._dane_enabled and self._tlsa:
            match = dane.find_dane_match(
                self._tlsa,
                chain,
                pkix_ok=pkix_ok,
                chain_verifies_to=lambda depth: self._chain_verifies_to(chain, depth),
                verified_chain=self._pkix_chain,
            )
            if match is None:
                return self._failure(X509_V_ERR_DANE_NO_MATCH)
            if match.record.usage != dane.USAGE_DANE_EE and not self._check_name(chain):
                return self._failure(X509_V_ERR_HOSTNAME_MISMATCH)
            self._dane_match = match
            return X509_V_OK, verify_error_string(X509_V_OK)

        if not pkix_ok:
            return self._failure(self._pkix_error[0])
        if not self._check_name(chain):
            return self._failure(X509_V_ERR_HOSTNAME_MISMATCH)
        return X509_V_OK, verify_error_string(X509_V_OK)

    def shutdown(self) -> None:
        """Send close_notify and wait for the peer's, retrying once.

        Raises:
            TlsSessionError: If the shutdown exchange fails.
        """
        connection = self._require_connection()
        try:
            if not connection.shutdown():
                connection.shutdown()
        except SSL.Error as err:
            raise TlsSessionError(f"TLS shutdown failed: {err}") from err

    def release(self) -> None:
        """Release the session. The underlying socket is left open."""
        if self._connection is not None:
            self._connection.set_app_data(None)
        self._connection = None


__all__ = [
    "NO_PARTIAL_WILDCARDS",
    "SSL_MODE_AUTO_RETRY",
    "VERIFY_DEPTH",
    "X509_V_ERR_DANE_NO_MATCH",
    "X509_V_ERR_HOSTNAME_MISMATCH",
    "X509_V_OK",
    "TlsConfig",
    "TlsConfigError",
    "TlsHandshakeError",
    "TlsSession",
    "TlsSessionError",
    "TrustStoreError",
    "verify_error_string",
]
