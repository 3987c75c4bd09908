"""STARTTLS negotiators for upgrading plaintext application sessions."""

from __future__ import annotations

import logging
import re
import socket
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

LOGGER = logging.getLogger(__name__)

EHLO_NAME = "localhost"
XMPP_TLS_NAMESPACE = "urn:ietf:params:xml:ns:xmpp-tls"

_RECV_SIZE = 4096
_MAX_REPLY_BYTES = 65536

Negotiate = Callable[[socket.socket, Optional[str], str], bool]


class StartTlsError(RuntimeError):
    """Raised when a STARTTLS exchange breaks down."""


class _Reader:
    """Buffered reader over a plaintext socket.

    Attributes:
        buffer (bytes): Bytes received but not yet consumed.
    """

    def __init__(self, sock: socket.socket) -> None:
        """Wrap a connected socket.

        Args:
            sock (socket.socket): Plaintext socket.
        """
        self._sock = sock
        self.buffer = b""

    def _fill(self) -> None:
        """Receive more bytes into the buffer.

        Raises:
            StartTlsError: If the peer closed the connection or sent too much.
        """
        chunk = self._sock.recv(_RECV_SIZE)
        if not chunk:
            raise StartTlsError("Connection closed during STARTTLS negotiation")
        self.buffer += chunk
        if len(self.buffer) > _MAX_REPLY_BYTES:
            raise StartTlsError("STARTTLS reply too long")

    def read_line(self) -> str:
        """Return the next CRLF or LF terminated line without its terminator."""
        while b"\n" not in self.buffer:
            self._fill()
        line, self.buffer = self.buffer.split(b"\n", 1)
        return line.rstrip(b"\r").decode("utf-8", errors="replace")

    def read_until(self, pattern: "re.Pattern[str]") -> str:
        """Read until the accumulated text matches a pattern.

        Args:
            pattern (re.Pattern[str]): Pattern to look for.

        Returns:
            str: Text consumed up to and including the match.
        """
        while True:
            text = self.buffer.decode("utf-8", errors="replace")
            match = pattern.search(text)
            if match:
                consumed = text[: match.end()]
                self.buffer = text[match.end() :].encode("utf-8")
                return consumed
            self._fill()


def _send(sock: socket.socket, text: str) -> None:
    """Send a protocol line.

    Args:
        sock (socket.socket): Plaintext socket.
        text (str): Text to send.
    """
    LOGGER.debug("STARTTLS send: %s", text.rstrip())
    sock.sendall(text.encode("utf-8"))


def _smtp_reply(reader: _Reader) -> Tuple[int, List[str]]:
    """Read one possibly multi-line SMTP reply.

    Args:
        reader (_Reader): Socket reader.

    Returns:
        Tuple[int, List[str]]: Reply code and the text of each line.

    Raises:
        StartTlsError: If a line is not a valid SMTP reply line.
    """
    lines: List[str] = []
    while True:
        line = reader.read_line()
        LOGGER.debug("STARTTLS recv: %s", line)
        if len(line) < 3 or not line[:3].isdigit() or (len(line) > 3 and line[3] not in " -"):
            raise StartTlsError(f"Malformed SMTP reply: {line!r}")
        lines.append(line[4:])
        if len(line) == 3 or line[3] == " ":
            return int(line[:3]), lines


def smtp_negotiate(sock: socket.socket, service_name: Optional[str], hostname: str) -> bool:
    """Upgrade an SMTP session with STARTTLS.

    Args:
        sock (socket.socket): Connected plaintext socket.
        service_name (Optional[str]): Unused for SMTP.
        hostname (str): Target host name.

    Returns:
        bool: True when the server agreed to start TLS.

    Raises:
        StartTlsError: If the server sent a malformed reply or closed early.
    """
    reader = _Reader(sock)
    code, _lines = _smtp_reply(reader)
    if code != 220:
        LOGGER.warning("SMTP greeting from %s was %d", hostname, code)
        return False
    _send(sock, f"EHLO {EHLO_NAME}\r\n")
    code, lines = _smtp_reply(reader)
    if code != 250:
        LOGGER.warning("SMTP EHLO rejected by %s with %d", hostname, code)
        return False
    if not any(line.split(" ", 1)[0].upper() == "STARTTLS" for line in lines):
        LOGGER.warning("SMTP server %s does not offer STARTTLS", hostname)
        return False
    _send(sock, "STARTTLS\r\n")
    code, _lines = _smtp_reply(reader)
    if code != 220:
        LOGGER.warning("SMTP STARTTLS rejected by %s with %d", hostname, code)
        return False
    if reader.buffer:
        raise StartTlsError("Unexpected plaintext after STARTTLS reply")
    return True


_XMPP_FEATURES_END = re.compile(r"</stream:features>|<stream:features[^>]*/>")
_XMPP_STARTTLS = re.compile(r"<starttls\b[^>]*xmlns=['\"]" + re.escape(XMPP_TLS_NAMESPACE))
_XMPP_TLS_REPLY = re.compile(r"<(proceed|failure)\b[^>]*>")


def _xmpp_negotiate(
    sock: socket.socket,
    service_name: Optional[str],
    hostname: str,
    namespace: str,
) -> bool:
    """Upgrade an XMPP stream with STARTTLS.

    Args:
        sock (socket.socket): Connected plaintext socket.
        service_name (Optional[str]): XMPP domain, defaulting to the host name.
        hostname (str): Target host name.
        namespace (str): Default stream namespace.

    Returns:
        bool: True when the server answered ``<proceed/>``.
    """
    domain = service_name or hostname
    reader = _Reader(sock)
    _send(
        sock,
        "<?xml version='1.0'?><stream:stream "
        f"to='{domain}' version='1.0' xml:lang='en' xmlns='{namespace}' "
        "xmlns:stream='http://etherx.jabber.org/streams'>",
    )
    features = reader.read_until(_XMPP_FEATURES_END)
    LOGGER.debug("STARTTLS recv: %s", features)
    if not _XMPP_STARTTLS.search(features):
        LOGGER.warning("XMPP server for %s does not offer STARTTLS", domain)
        return False
    _send(sock, f"<starttls xmlns='{XMPP_TLS_NAMESPACE}'/>")
    reply = reader.read_until(_XMPP_TLS_REPLY)
    LOGGER.debug("STARTTLS recv: %s", reply)
    if _XMPP_TLS_REPLY.search(reply).group(1) != "proceed":
        LOGGER.warning("XMPP STARTTLS refused for %s", domain)
        return False
    return True


def xmpp_client_negotiate(sock: socket.socket, service_name: Optional[str], hostname: str) -> bool:
    """Upgrade a client-to-server XMPP stream."""
    return _xmpp_negotiate(sock, service_name, hostname, "jabber:client")


def xmpp_server_negotiate(sock: socket.socket, service_name: Optional[str], hostname: str) -> bool:
    """Upgrade a server-to-server XMPP stream."""
    return _xmpp_negotiate(sock, service_name, hostname, "jabber:server")


@dataclass(frozen=True)
class StartTlsSpec:
    """Describe one STARTTLS application protocol.

    Attributes:
        name (str): Protocol name accepted on the command line.
        negotiate (Negotiate): Negotiation function.
    """

    name: str
    negotiate: Negotiate


STARTTLS_SPECS: Tuple[StartTlsSpec, ...] = (
    StartTlsSpec("smtp", smtp_negotiate),
    StartTlsSpec("xmpp-client", xmpp_client_negotiate),
    StartTlsSpec("xmpp-server", xmpp_server_negotiate),
)

_BY_NAME: Dict[str, StartTlsSpec] = {spec.name: spec for spec in STARTTLS_SPECS}


def starttls_names() -> List[str]:
    """Return the supported STARTTLS protocol names.

    Returns:
        List[str]: Names in registry order.
    """
    return [spec.name for spec in STARTTLS_SPECS]


def get_negotiator(name: str) -> StartTlsSpec:
    """Look up a STARTTLS negotiator by protocol name.

    Args:
        name (str): Protocol name.

    Returns:
        StartTlsSpec: Registered negotiator.

    Raises:
        ValueError: If the protocol is not supported.
    """
    spec = _BY_NAME.get(str(name).strip().lower())
    if spec is None:
        raise ValueError(f"Unsupported STARTTLS application '{name}'")
    return spec


__all__ = [
    "EHLO_NAME",
    "STARTTLS_SPECS",
    "StartTlsError",
    "StartTlsSpec",
    "get_negotiator",
    "smtp_negotiate",
    "starttls_names",
    "xmpp_client_negotiate",
    "xmpp_server_negotiate",
]
