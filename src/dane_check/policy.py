"""Decide whether DANE authentication may be attempted for a run."""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from .models import AuthMode, DnssecEvidence, TlsaRecordSet

LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class DaneDecision:
    """Outcome of the authentication mode decision.

    Attributes:
        attempt_dane (bool): Whether sessions should be bound for DANE.
        fatal (bool): Whether the run must stop before contacting any address.
        reason (Optional[str]): Why DANE is not attempted, when it is not.
    """

    attempt_dane: bool
    fatal: bool
    reason: Optional[str] = None


def decide(mode: AuthMode, tlsa_set: TlsaRecordSet, evidence: DnssecEvidence) -> DaneDecision:
    """Decide from DNSSEC evidence whether DANE may be attempted.

    The verdict is computed once per run and shared by every address of the
    host. Bogus or indeterminate DNS answers abort the run in every mode so an
    attacker cannot force a silent downgrade to PKIX.

    Args:
        mode (AuthMode): Configured authentication mode.
        tlsa_set (TlsaRecordSet): TLSA records for the service.
        evidence (DnssecEvidence): DNSSEC authentication signals.

    Returns:
        DaneDecision: Whether to attempt DANE and whether the run is fatal.
    """
    if evidence.bogus_or_indeterminate:
        LOGGER.error("DNS responses were bogus or indeterminate.")
        return DaneDecision(False, True, "DNS responses bogus or indeterminate")

    if mode is AuthMode.PKIX:
        return DaneDecision(False, False, "PKIX mode selected")

    dane_only = mode is AuthMode.DANE
    if not tlsa_set:
        if dane_only:
            LOGGER.error("No TLSA records found.")
        return DaneDecision(False, dane_only, "No TLSA records found")
    if not evidence.tlsa_authenticated:
        LOGGER.warning("Insecure TLSA records.")
        return DaneDecision(False, dane_only, "Insecure TLSA records")
    if not (evidence.address_authenticated_v4 and evidence.address_authenticated_v6):
        LOGGER.warning("Insecure Address records.")
        return DaneDecision(False, dane_only, "Insecure Address records")
    return DaneDecision(True, False)


__all__ = ["DaneDecision", "decide"]
