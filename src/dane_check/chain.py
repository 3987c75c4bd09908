"""Human-readable certificate chain dumps for debug output."""

from __future__ import annotations

from typing import List, Optional, Sequence

from cryptography import x509

from .hostname import certificate_dns_names, common_name


def describe_chain(chain: Optional[Sequence[x509.Certificate]]) -> List[str]:
    """Render subject and issuer names for each certificate in a chain.

    The leaf certificate's dNSName subjectAltName entries follow the list.

    Args:
        chain (Optional[Sequence[x509.Certificate]]): Chain, leaf first.

    Returns:
        List[str]: Output lines.
    """
    if not chain:
        return ["No Certificate Chain."]
    lines: List[str] = []
    for index, certificate in enumerate(chain):
        subject = common_name(certificate.subject) or "(None)"
        issuer = common_name(certificate.issuer) or "(None)"
        lines.append(f"{index:2d} Subject CN: {subject}")
        lines.append(f"   Issuer  CN: {issuer}")
    for name in certificate_dns_names(chain[0]):
        lines.append(f" SAN dNSName: {name}")
    return lines


__all__ = ["describe_chain"]
