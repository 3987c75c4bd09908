"""DNS resolver wrapper that gathers addresses, TLSA records and DNSSEC evidence.

Queries set the AD and DO bits and trust the AD bit in responses, so a
validating resolver must be reachable over a trusted path. The resolver is
intentionally thin so it can be replaced in tests.
"""

from __future__ import annotations

import dataclasses
import ipaddress
import logging
from typing import Iterable, List, Optional, Tuple

try:
    import dns.exception
    import dns.flags
    import dns.resolver
except ImportError as exc:  # pragma: no cover - handled at runtime
    raise SystemExit("dnspython is required. Install with `pip install dnspython`.") from exc

from .models import Address, AuthMode, DnssecEvidence, TlsaRecord, TlsaRecordSet

LOGGER = logging.getLogger(__name__)

_EDNS_PAYLOAD = 1232


def _is_ip_address(value: str) -> bool:
    """Check whether a string is a valid IP address.

    Args:
        value (str): Input string to validate.

    Returns:
        bool: True if the value is a valid IPv4 or IPv6 address.
    """
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _append_unique(items: List[str], value: str) -> None:
    """Append a value to a list if it is not already present.

    Args:
        items (List[str]): Target list to mutate.
        value (str): Value to append when missing.
    """
    if value in items:
        return
    items.append(value)


def tlsa_owner_name(hostname: str, port: int) -> str:
    """Build the TLSA owner name for a TCP service.

    Args:
        hostname (str): Service host name.
        port (int): Service port.

    Returns:
        str: ``_port._tcp.hostname`` owner name.
    """
    return f"_{port}._tcp.{hostname.rstrip('.')}"


class DnsLookupError(RuntimeError):
    """Raised when a DNS lookup fails or cannot be completed."""

    def __init__(self, record_type: str, name: str, error: Exception) -> None:
        """Initialize a DNS lookup error.

        Args:
            record_type (str): DNS record type being queried.
            name (str): DNS name that failed to resolve.
            error (Exception): Underlying exception.
        """
        super().__init__(f"{record_type} lookup failed for {name}: {error}")
        self.record_type = record_type
        self.name = name
        self.error = error


@dataclasses.dataclass(frozen=True)
class DnsEvidence:
    """Everything the DNS phase of a run produced.

    Attributes:
        addresses (Tuple[Address, ...]): Addresses in connection order.
        tlsa (TlsaRecordSet): TLSA records for the service.
        evidence (DnssecEvidence): DNSSEC authentication signals.
    """

    addresses: Tuple[Address, ...]
    tlsa: TlsaRecordSet
    evidence: DnssecEvidence


class DnsResolver:
    """Perform DNSSEC-aware lookups using dnspython."""

    def __init__(
        self,
        nameservers: Optional[Iterable[str]] = None,
        timeout: Optional[float] = None,
        lifetime: Optional[float] = None,
        use_tcp: bool = False,
    ) -> None:
        """Initialize the DNS resolver.

        Args:
            nameservers (Optional[Iterable[str]]): Optional nameserver IPs or hostnames.
            timeout (Optional[float]): Per-query timeout in seconds.
            lifetime (Optional[float]): Total timeout across retries in seconds.
            use_tcp (bool): Whether to force TCP for DNS lookups.

        Raises:
            ValueError: If a nameserver is invalid or cannot be resolved.
        """
        self._resolver = dns.resolver.Resolver()
        if timeout is not None:
            if timeout <= 0:
                raise ValueError("DNS timeout must be a positive number")
            self._resolver.timeout = timeout
        if lifetime is not None:
            if lifetime <= 0:
                raise ValueError("DNS lifetime must be a positive number")
            self._resolver.lifetime = lifetime
        self._resolver.use_tcp = bool(use_tcp)
        if nameservers:
            self._resolver.nameservers = self._resolve_nameservers(nameservers)
        self._resolver.use_edns(0, dns.flags.DO, _EDNS_PAYLOAD)
        self._resolver.flags = dns.flags.RD | dns.flags.AD

    def _resolve_nameservers(self, nameservers: Iterable[str]) -> List[str]:
        """Resolve nameserver hostnames into IP addresses.

        Args:
            nameservers (Iterable[str]): Nameserver IPs or hostnames.

        Returns:
            List[str]: Resolved IP addresses in input order.

        Raises:
            ValueError: If a nameserver is invalid or cannot be resolved.
        """
        resolved: List[str] = []
        for server in nameservers:
            server_text = str(server).strip()
            if not server_text:
                raise ValueError("DNS server entries cannot be empty")
            if _is_ip_address(server_text):
                _append_unique(resolved, server_text)
                continue
            addresses = self._resolve_nameserver_hostname(server_text)
            if not addresses:
                raise ValueError(f"DNS server '{server_text}' did not resolve to any IP addresses")
            for address in addresses:
                _append_unique(resolved, address)
        if not resolved:
            raise ValueError("At least one DNS server must be provided")
        return resolved

    def _resolve_nameserver_hostname(self, hostname: str) -> List[str]:
        """Resolve a nameserver hostname into A/AAAA records.

        Args:
            hostname (str): Hostname to resolve.

        Returns:
            List[str]: Resolved IP addresses.

        Raises:
            ValueError: If the hostname cannot be resolved due to DNS errors.
        """
        addresses: List[str] = []
        for record_type in ("A", "AAAA"):
            try:
                answers = self._resolver.resolve(hostname, record_type)
            except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
                continue
            except dns.exception.DNSException as err:
                raise ValueError(f"DNS server '{hostname}' could not be resolved: {err}") from err
            for rdata in answers:
                addresses.append(str(rdata.address))
        if addresses:
            LOGGER.debug("Resolved DNS server %s to %s", hostname, addresses)
        return addresses

    def _query(self, name: str, record_type: str) -> Tuple[List[object], bool]:
        """Run one query and report whether the response was authenticated.

        NXDOMAIN and NODATA answers are empty results; their AD bit still
        counts as authenticated denial.

        Args:
            name (str): DNS name to query.
            record_type (str): DNS record type.

        Returns:
            Tuple[List[object], bool]: Answer rdata and the AD bit.

        Raises:
            DnsLookupError: If the lookup failed or could not complete.
        """
        try:
            answer = self._resolver.resolve(name, record_type, raise_on_no_answer=False)
        except dns.resolver.NXDOMAIN as err:
            responses = err.kwargs.get("responses") or {}
            authenticated = any(
                bool(response.flags & dns.flags.AD) for response in responses.values()
            )
            return [], authenticated
        except dns.exception.DNSException as err:
            LOGGER.warning("%s lookup failed for %s: %s", record_type, name, err)
            raise DnsLookupError(record_type, name, err) from err
        response = getattr(answer, "response", None)
        authenticated = bool(response.flags & dns.flags.AD) if response is not None else False
        rrset = getattr(answer, "rrset", None)
        records = list(rrset) if rrset is not None else []
        return records, authenticated

    def resolve_addresses(self, hostname: str, port: int) -> Tuple[List[Address], bool, bool]:
        """Resolve AAAA then A records for a host.

        Args:
            hostname (str): Host name to resolve.
            port (int): Port to attach to each address.

        Returns:
            Tuple[List[Address], bool, bool]: Addresses, IPv4 authenticated, and
                IPv6 authenticated flags.

        Raises:
            DnsLookupError: If either lookup failed.
        """
        v6_records, v6_authenticated = self._query(hostname, "AAAA")
        v4_records, v4_authenticated = self._query(hostname, "A")
        addresses = [Address(6, str(rdata.address), port) for rdata in v6_records]
        addresses.extend(Address(4, str(rdata.address), port) for rdata in v4_records)
        LOGGER.debug(
            "Resolved %s to %d addresses (AD v4=%s v6=%s)",
            hostname,
            len(addresses),
            v4_authenticated,
            v6_authenticated,
        )
        return addresses, v4_authenticated, v6_authenticated

    @staticmethod
    def _parse_tlsa_record(rdata: object) -> TlsaRecord:
        """Convert one dnspython TLSA rdata into a record.

        Args:
            rdata (object): dnspython TLSA rdata.

        Returns:
            TlsaRecord: Parsed record.
        """
        matching_type = rdata.matching_type if hasattr(rdata, "matching_type") else rdata.mtype
        association = (
            rdata.certificate_association
            if hasattr(rdata, "certificate_association")
            else rdata.cert
        )
        if isinstance(association, str):
            association = bytes.fromhex("".join(association.split()))
        return TlsaRecord(
            usage=int(rdata.usage),
            selector=int(rdata.selector),
            matching_type=int(matching_type),
            data=bytes(association),
        )

    def resolve_tlsa(self, hostname: str, port: int) -> TlsaRecordSet:
        """Resolve the TLSA record set for a TCP service.

        Args:
            hostname (str): Service host name.
            port (int): Service port.

        Returns:
            TlsaRecordSet: Records and the AD bit of the answer.

        Raises:
            DnsLookupError: If the lookup failed.
        """
        name = tlsa_owner_name(hostname, port)
        records, authenticated = self._query(name, "TLSA")
        parsed = tuple(self._parse_tlsa_record(rdata) for rdata in records)
        LOGGER.debug("Found %d TLSA records at %s (AD=%s)", len(parsed), name, authenticated)
        return TlsaRecordSet(parsed, authenticated)

    def gather_evidence(self, hostname: str, port: int, mode: AuthMode) -> DnsEvidence:
        """Resolve addresses and TLSA records and collect DNSSEC evidence.

        The TLSA set is not queried in PKIX mode. Any lookup that fails or
        cannot complete marks the evidence bogus or indeterminate.

        Args:
            hostname (str): Target host name.
            port (int): Target port.
            mode (AuthMode): Configured authentication mode.

        Returns:
            DnsEvidence: Addresses, TLSA set and evidence.
        """
        addresses: List[Address] = []
        v4_authenticated = v6_authenticated = False
        tlsa = TlsaRecordSet()
        bogus = False
        try:
            addresses, v4_authenticated, v6_authenticated = self.resolve_addresses(hostname, port)
            if mode is not AuthMode.PKIX:
                tlsa = self.resolve_tlsa(hostname, port)
        except DnsLookupError as err:
            LOGGER.error("DNS response bogus or indeterminate: %s", err)
            bogus = True
        if not addresses and not bogus:
            LOGGER.warning("No address records found for %s", hostname)
        evidence = DnssecEvidence(
            address_authenticated_v4=v4_authenticated,
            address_authenticated_v6=v6_authenticated,
            tlsa_authenticated=tlsa.authenticated,
            bogus_or_indeterminate=bogus,
        )
        return DnsEvidence(tuple(addresses), tlsa, evidence)


__all__ = ["DnsLookupError", "DnsResolver", "DnsEvidence", "tlsa_owner_name"]
