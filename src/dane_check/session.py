"""Bind DANE or PKIX authentication policy to a TLS session."""

from __future__ import annotations

import dataclasses
import logging
from typing import Protocol

from .hostname import NO_PARTIAL_WILDCARDS
from .models import Address, AuthMode, TlsaRecord, TlsaRecordSet

LOGGER = logging.getLogger(__name__)


class BindError(RuntimeError):
    """Raised when session policy cannot be bound for one address."""


class PolicySession(Protocol):
    """Session capabilities the binder configures."""

    def enable_dane(self, hostname: str) -> None:
        """Enable DANE and SNI for ``hostname``."""

    def add_tlsa(self, record: TlsaRecord) -> int:
        """Add a TLSA record, returning 1 usable, 0 unusable, -1 error."""

    def set_host(self, hostname: str) -> None:
        """Set the reference identifier for host name checks."""

    def set_host_flags(self, flags: int) -> None:
        """Set host name check flags."""

    def set_sni(self, hostname: str) -> None:
        """Set the Server Name Indication value."""


@dataclasses.dataclass(frozen=True)
class BindResult:
    """Outcome of binding policy to one session.

    Attributes:
        usable_tlsa (int): Number of TLSA records the session accepted.
    """

    usable_tlsa: int = 0


def bind(
    session: PolicySession,
    address: Address,
    hostname: str,
    attempt_dane: bool,
    tlsa_set: TlsaRecordSet,
    mode: AuthMode = AuthMode.DANE_WITH_FALLBACK,
) -> BindResult:
    """Configure one session for DANE or PKIX authentication.

    Under DANE, enabling the capability also requests SNI. Under PKIX the SNI
    value must be set explicitly; the two paths are kept separate.

    Args:
        session (PolicySession): Session to configure.
        address (Address): Address the session will talk to.
        hostname (str): Target host name.
        attempt_dane (bool): Whether the run may attempt DANE.
        tlsa_set (TlsaRecordSet): TLSA records for the service.
        mode (AuthMode): Configured authentication mode.

    Returns:
        BindResult: Number of usable TLSA records added.

    Raises:
        BindError: If any binding step fails or DANE-only mode ends up with no
            usable TLSA record.
    """
    usable = 0
    try:
        if attempt_dane:
            session.enable_dane(hostname)
        else:
            session.set_host(hostname)
            session.set_sni(hostname)
        session.set_host_flags(NO_PARTIAL_WILDCARDS)
    except Exception as err:
        raise BindError(f"Failed to bind session policy for {address.ip}: {err}") from err

    if attempt_dane:
        for record in tlsa_set:
            rc = session.add_tlsa(record)
            if rc < 0:
                raise BindError(f"Failed to add TLSA record {record.describe()}")
            if rc == 0:
                LOGGER.warning("Unusable TLSA record: %s", record.describe())
                continue
            usable += 1

    if mode is AuthMode.DANE and usable == 0:
        raise BindError("No usable TLSA records present.")
    LOGGER.debug(
        "Bound %s policy for %s (%d usable TLSA)",
        "DANE" if attempt_dane else "PKIX",
        address.ip,
        usable,
    )
    return BindResult(usable_tlsa=usable)


__all__ = ["BindError", "BindResult", "PolicySession", "bind"]
