"""Certificate host name extraction and matching."""

from __future__ import annotations

from typing import Iterable, List, Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

NO_PARTIAL_WILDCARDS = 0x4


def _normalize(name: str) -> str:
    """Lowercase a DNS name and drop a trailing root dot.

    Args:
        name (str): DNS name.

    Returns:
        str: Normalized name.
    """
    return name.strip().lower().rstrip(".")


def certificate_dns_names(certificate: x509.Certificate) -> List[str]:
    """Return the dNSName entries of a certificate subjectAltName.

    Args:
        certificate (x509.Certificate): Parsed certificate.

    Returns:
        List[str]: DNS names in extension order (empty when absent).
    """
    try:
        extension = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return list(extension.value.get_values_for_type(x509.DNSName))


def common_name(name: x509.Name) -> Optional[str]:
    """Return the first commonName attribute of a distinguished name.

    Args:
        name (x509.Name): Subject or issuer name.

    Returns:
        Optional[str]: Common name, or None when absent.
    """
    attributes = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return None
    value = attributes[0].value
    return value.decode("utf-8", errors="replace") if isinstance(value, bytes) else str(value)


def certificate_names(certificate: x509.Certificate) -> List[str]:
    """Return the names a certificate is valid for.

    The subject common name is only consulted when the certificate carries no
    dNSName subjectAltName entries.

    Args:
        certificate (x509.Certificate): Parsed certificate.

    Returns:
        List[str]: Candidate presented identifiers.
    """
    names = certificate_dns_names(certificate)
    if names:
        return names
    cn = common_name(certificate.subject)
    return [cn] if cn else []


def _wildcard_matches(pattern: str, hostname: str, no_partial_wildcards: bool) -> bool:
    """Match one wildcard pattern against a host name.

    Args:
        pattern (str): Normalized presented identifier containing ``*``.
        hostname (str): Normalized reference identifier.
        no_partial_wildcards (bool): Only allow ``*`` as a whole label.

    Returns:
        bool: True when the pattern covers the host name.
    """
    pattern_labels = pattern.split(".")
    host_labels = hostname.split(".")
    left = pattern_labels[0]
    if "*" in ".".join(pattern_labels[1:]) or left.count("*") != 1:
        return False
    if len(pattern_labels) < 3 or len(pattern_labels) != len(host_labels):
        return False
    if pattern_labels[1:] != host_labels[1:]:
        return False
    if left == "*":
        return bool(host_labels[0])
    if no_partial_wildcards or left.startswith("xn--"):
        return False
    prefix, suffix = left.split("*")
    host_left = host_labels[0]
    if host_left.startswith("xn--"):
        return False
    return (
        len(host_left) >= len(prefix) + len(suffix)
        and host_left.startswith(prefix)
        and host_left.endswith(suffix)
    )


def match_hostname(
    names: Iterable[str],
    hostname: str,
    no_partial_wildcards: bool = True,
) -> Optional[str]:
    """Match a reference host name against presented identifiers.

    Args:
        names (Iterable[str]): Presented identifiers from the peer certificate.
        hostname (str): Reference identifier the client asked for.
        no_partial_wildcards (bool): Reject wildcards that cover part of a label,
            such as ``f*.example.com``.

    Returns:
        Optional[str]: Presented identifier that matched, or None.
    """
    reference = _normalize(hostname)
    if not reference:
        return None
    for name in names:
        candidate = _normalize(name)
        if not candidate:
            continue
        if "*" not in candidate:
            if candidate == reference:
                return name
            continue
        if _wildcard_matches(candidate, reference, no_partial_wildcards):
            return name
    return None


__all__ = [
    "NO_PARTIAL_WILDCARDS",
    "certificate_dns_names",
    "certificate_names",
    "common_name",
    "match_hostname",
]
