"""Data model shared by the resolver, decision engine and orchestrator."""

from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Dict, Iterator, Optional, Tuple

from cryptography import x509


class AuthMode(Enum):
    """Authentication mode selected for a run."""

    PKIX = "pkix"
    DANE = "dane"
    DANE_WITH_FALLBACK = "dane+pkix"

    @classmethod
    def from_option(cls, value: Optional[str]) -> "AuthMode":
        """Build a mode from a command-line or config value.

        Args:
            value (Optional[str]): ``dane``, ``pkix`` or None for the default.

        Returns:
            AuthMode: Selected authentication mode.

        Raises:
            ValueError: If the value is not a known mode.
        """
        if value is None:
            return cls.DANE_WITH_FALLBACK
        normalized = str(value).strip().lower()
        for mode in cls:
            if mode.value == normalized:
                return mode
        raise ValueError(f"Unknown authentication mode '{value}' (choose dane or pkix)")


@dataclasses.dataclass(frozen=True)
class Address:
    """One resolved network endpoint.

    Attributes:
        family (int): IP version, 4 or 6.
        ip (str): Textual IP address.
        port (int): TCP port.
    """

    family: int
    ip: str
    port: int

    @property
    def label(self) -> str:
        """Return a human-readable description of the endpoint."""
        return f"IPv{self.family} address: {self.ip} port {self.port}"

    def to_dict(self) -> Dict[str, object]:
        """Serialize the address for JSON output.

        Returns:
            Dict[str, object]: Address fields.
        """
        return {"family": self.family, "ip": self.ip, "port": self.port}


@dataclasses.dataclass(frozen=True)
class TlsaRecord:
    """A DANE certificate association record.

    Attributes:
        usage (int): Certificate usage (0-3).
        selector (int): Selector (0 full certificate, 1 SubjectPublicKeyInfo).
        matching_type (int): Matching type (0 exact, 1 SHA-256, 2 SHA-512).
        data (bytes): Certificate association data.
    """

    usage: int
    selector: int
    matching_type: int
    data: bytes

    @property
    def hex(self) -> str:
        """Return the association data as lowercase hex."""
        return self.data.hex()

    def describe(self, prefix_bytes: Optional[int] = None) -> str:
        """Render the record in presentation format.

        Args:
            prefix_bytes (Optional[int]): Only render this many leading data bytes.

        Returns:
            str: ``usage selector matching_type hex`` text.
        """
        if prefix_bytes is None:
            data = self.hex
        else:
            data = f"[{self.data[:prefix_bytes].hex()}...]"
        return f"{self.usage} {self.selector} {self.matching_type} {data}"

    def to_dict(self) -> Dict[str, object]:
        """Serialize the record for JSON output.

        Returns:
            Dict[str, object]: Record fields with hex association data.
        """
        return {
            "usage": self.usage,
            "selector": self.selector,
            "matching_type": self.matching_type,
            "data": self.hex,
        }


@dataclasses.dataclass(frozen=True)
class TlsaRecordSet:
    """Ordered TLSA records answered as one DNSSEC response.

    Attributes:
        records (Tuple[TlsaRecord, ...]): Records in answer order.
        authenticated (bool): Whether the answer carried the AD bit.
    """

    records: Tuple[TlsaRecord, ...] = ()
    authenticated: bool = False

    @property
    def count(self) -> int:
        """Return the number of records in the set."""
        return len(self.records)

    def __len__(self) -> int:
        """Return the number of records in the set."""
        return len(self.records)

    def __iter__(self) -> Iterator[TlsaRecord]:
        """Iterate records in answer order."""
        return iter(self.records)

    def __bool__(self) -> bool:
        """Return whether the set holds any record."""
        return bool(self.records)


@dataclasses.dataclass(frozen=True)
class DnssecEvidence:
    """DNSSEC authentication signals gathered during resolution.

    Attributes:
        address_authenticated_v4 (bool): A answer was authenticated.
        address_authenticated_v6 (bool): AAAA answer was authenticated.
        tlsa_authenticated (bool): TLSA answer was authenticated.
        bogus_or_indeterminate (bool): Validation failed or could not complete.
    """

    address_authenticated_v4: bool = False
    address_authenticated_v6: bool = False
    tlsa_authenticated: bool = False
    bogus_or_indeterminate: bool = False

    def to_dict(self) -> Dict[str, bool]:
        """Serialize the evidence flags for JSON output.

        Returns:
            Dict[str, bool]: Evidence flags.
        """
        return dataclasses.asdict(self)


@dataclasses.dataclass(frozen=True)
class DaneMatch:
    """TLSA record that served as the trust anchor of a verified session.

    Attributes:
        record (TlsaRecord): Matching record.
        depth (int): Chain depth of the matched certificate (0 is the leaf).
        public_key_only (bool): The match was a bare trust-anchor public key.
        anchor (Optional[x509.Certificate]): Trust-anchor certificate taken
            from the record when the server did not send it.
    """

    record: TlsaRecord
    depth: int
    public_key_only: bool = False
    anchor: Optional[x509.Certificate] = None

    @property
    def description(self) -> str:
        """Describe what kind of certificate the record matched."""
        if self.public_key_only:
            return "TA public key verified certificate"
        if self.anchor is not None:
            return "TA certificate verified certificate"
        if self.depth:
            return "matched TA certificate"
        return "matched EE certificate"


@dataclasses.dataclass(frozen=True)
class AttemptOutcome:
    """Result of one address attempt.

    Attributes:
        address (Address): Address the attempt targeted.
    """

    address: Address

    kind = "unknown"
    succeeded = False

    def to_dict(self) -> Dict[str, object]:
        """Serialize the outcome for JSON output.

        Returns:
            Dict[str, object]: Outcome fields keyed by name.
        """
        payload: Dict[str, object] = {"address": self.address.to_dict(), "outcome": self.kind}
        for field in dataclasses.fields(self):
            if field.name == "address":
                continue
            value = getattr(self, field.name)
            if isinstance(value, DaneMatch):
                value = {
                    "record": value.record.to_dict(),
                    "depth": value.depth,
                    "public_key_only": value.public_key_only,
                }
            payload[field.name] = value
        return payload


@dataclasses.dataclass(frozen=True)
class ConnectFailed(AttemptOutcome):
    """TCP connection could not be established."""

    error: str = ""

    kind = "connect-failed"


@dataclasses.dataclass(frozen=True)
class BindFailed(AttemptOutcome):
    """Session policy could not be bound to the TLS session."""

    error: str = ""

    kind = "bind-failed"


@dataclasses.dataclass(frozen=True)
class StartTlsFailed(AttemptOutcome):
    """Plaintext STARTTLS upgrade was refused or broke down."""

    error: str = ""

    kind = "starttls-failed"


@dataclasses.dataclass(frozen=True)
class HandshakeFailed(AttemptOutcome):
    """TLS handshake failed."""

    error: str = ""

    kind = "handshake-failed"


@dataclasses.dataclass(frozen=True)
class VerifyFailed(AttemptOutcome):
    """Handshake completed but peer authentication failed."""

    code: int = 0
    reason: str = ""

    kind = "verify-failed"


@dataclasses.dataclass(frozen=True)
class VerifySucceeded(AttemptOutcome):
    """Peer was authenticated."""

    peername: Optional[str] = None
    dane_match: Optional[DaneMatch] = None
    protocol: Optional[str] = None
    cipher: Optional[str] = None

    kind = "verify-succeeded"
    succeeded = True


@dataclasses.dataclass
class RunTotals:
    """Counters tallied across the address loop.

    Attributes:
        succeeded (int): Addresses that authenticated.
        failed (int): Addresses that failed at any stage.
        usable_tlsa_count (int): Usable TLSA records added across sessions.
    """

    succeeded: int = 0
    failed: int = 0
    usable_tlsa_count: int = 0

    def record(self, outcome: AttemptOutcome) -> None:
        """Tally one attempt outcome.

        Args:
            outcome (AttemptOutcome): Outcome to count.
        """
        if outcome.succeeded:
            self.succeeded += 1
        else:
            self.failed += 1


__all__ = [
    "Address",
    "AttemptOutcome",
    "AuthMode",
    "BindFailed",
    "ConnectFailed",
    "DaneMatch",
    "DnssecEvidence",
    "HandshakeFailed",
    "RunTotals",
    "StartTlsFailed",
    "TlsaRecord",
    "TlsaRecordSet",
    "VerifyFailed",
    "VerifySucceeded",
]
