"""TLSA record usability and certificate association matching."""

from __future__ import annotations

import hashlib
import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, padding, rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_der_public_key,
)

from .models import DaneMatch, TlsaRecord

LOGGER = logging.getLogger(__name__)

USAGE_PKIX_TA = 0
USAGE_PKIX_EE = 1
USAGE_DANE_TA = 2
USAGE_DANE_EE = 3

SELECTOR_CERT = 0
SELECTOR_SPKI = 1

MATCHING_FULL = 0
MATCHING_SHA256 = 1
MATCHING_SHA512 = 2

_DIGEST_LENGTHS = {MATCHING_SHA256: 32, MATCHING_SHA512: 64}


def tlsa_usable(record: TlsaRecord) -> int:
    """Report whether a TLSA record can take part in DANE matching.

    Mirrors the OpenSSL ``SSL_dane_tlsa_add`` rules: out-of-range fields,
    digests of the wrong length and full-data records that do not parse as a
    certificate or public key are unusable.

    Args:
        record (TlsaRecord): Record to inspect.

    Returns:
        int: 1 when usable, 0 when unusable.
    """
    if record.usage not in (USAGE_PKIX_TA, USAGE_PKIX_EE, USAGE_DANE_TA, USAGE_DANE_EE):
        return 0
    if record.selector not in (SELECTOR_CERT, SELECTOR_SPKI):
        return 0
    if record.matching_type not in (MATCHING_FULL, MATCHING_SHA256, MATCHING_SHA512):
        return 0
    if not record.data:
        return 0
    expected_length = _DIGEST_LENGTHS.get(record.matching_type)
    if expected_length is not None:
        return 1 if len(record.data) == expected_length else 0
    try:
        if record.selector == SELECTOR_CERT:
            x509.load_der_x509_certificate(record.data)
        else:
            load_der_public_key(record.data)
    except (ValueError, UnsupportedAlgorithm):
        return 0
    return 1


def spki_der(certificate: x509.Certificate) -> bytes:
    """Extract DER-encoded SubjectPublicKeyInfo from a certificate.

    Args:
        certificate (x509.Certificate): Parsed certificate.

    Returns:
        bytes: DER SubjectPublicKeyInfo bytes.
    """
    return certificate.public_key().public_bytes(
        encoding=Encoding.DER,
        format=PublicFormat.SubjectPublicKeyInfo,
    )


def selector_bytes(
    certificate: x509.Certificate,
    selector: int,
    spki_cache: Optional[Dict[bytes, bytes]] = None,
) -> bytes:
    """Build TLSA selector bytes for one certificate.

    Args:
        certificate (x509.Certificate): Parsed certificate.
        selector (int): TLSA selector value.
        spki_cache (Optional[Dict[bytes, bytes]]): Cache for extracted SPKI bytes.

    Returns:
        bytes: Selector bytes for digest/exact comparison.

    Raises:
        ValueError: If the selector is unsupported.
    """
    certificate_der = certificate.public_bytes(Encoding.DER)
    if selector == SELECTOR_CERT:
        return certificate_der
    if selector == SELECTOR_SPKI:
        if spki_cache is None:
            return spki_der(certificate)
        if certificate_der not in spki_cache:
            spki_cache[certificate_der] = spki_der(certificate)
        return spki_cache[certificate_der]
    raise ValueError(f"Unsupported TLSA selector {selector}")


def record_matches_certificate(
    record: TlsaRecord,
    certificate: x509.Certificate,
    spki_cache: Optional[Dict[bytes, bytes]] = None,
) -> bool:
    """Evaluate whether a TLSA record matches one certificate.

    Args:
        record (TlsaRecord): TLSA record.
        certificate (x509.Certificate): Parsed certificate.
        spki_cache (Optional[Dict[bytes, bytes]]): Cache for extracted SPKI bytes.

    Returns:
        bool: True when the association data matches this certificate.

    Raises:
        ValueError: If the selector or matching type is unsupported.
    """
    selected = selector_bytes(certificate, record.selector, spki_cache)
    if record.matching_type == MATCHING_FULL:
        return selected == record.data
    if record.matching_type == MATCHING_SHA256:
        return hashlib.sha256(selected).digest() == record.data
    if record.matching_type == MATCHING_SHA512:
        return hashlib.sha512(selected).digest() == record.data
    raise ValueError(f"Unsupported TLSA matching_type {record.matching_type}")


def _signed_by_key(certificate: x509.Certificate, public_key: object) -> bool:
    """Check a certificate signature against a bare public key.

    Args:
        certificate (x509.Certificate): Certificate whose signature is checked.
        public_key (object): Candidate issuer public key.

    Returns:
        bool: True when the key produced the certificate signature.
    """
    signature = certificate.signature
    data = certificate.tbs_certificate_bytes
    try:
        if isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(
                signature, data, padding.PKCS1v15(), certificate.signature_hash_algorithm
            )
        elif isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, data, ec.ECDSA(certificate.signature_hash_algorithm))
        elif isinstance(public_key, (ed25519.Ed25519PublicKey, ed448.Ed448PublicKey)):
            public_key.verify(signature, data)
        else:
            return False
    except (InvalidSignature, TypeError, ValueError, UnsupportedAlgorithm):
        return False
    return True


def _usable(records: Iterable[TlsaRecord], usages: Sequence[int]) -> List[TlsaRecord]:
    """Filter usable records by certificate usage.

    Args:
        records (Iterable[TlsaRecord]): Candidate records.
        usages (Sequence[int]): Usages to keep.

    Returns:
        List[TlsaRecord]: Usable records with a wanted usage, in order.
    """
    return [record for record in records if record.usage in usages and tlsa_usable(record)]


def find_dane_match(
    records: Sequence[TlsaRecord],
    chain: Sequence[x509.Certificate],
    *,
    pkix_ok: bool,
    chain_verifies_to: Callable[[int], bool],
    verified_chain: Optional[Sequence[x509.Certificate]] = None,
) -> Optional[DaneMatch]:
    """Find the TLSA record that authenticates a presented chain.

    DANE-EE records are tried first and only look at the leaf. DANE-TA records
    match an issuer certificate whose path from the leaf must verify, or a
    full certificate or public key that signed the top of the chain. PKIX-EE
    and PKIX-TA records additionally require successful PKIX validation;
    PKIX-TA records are matched against the PKIX verified chain, which
    includes trust store roots the server did not send.

    Args:
        records (Sequence[TlsaRecord]): Records added to the session.
        chain (Sequence[x509.Certificate]): Presented chain, leaf first.
        pkix_ok (bool): Whether PKIX validation of the chain succeeded.
        chain_verifies_to (Callable[[int], bool]): Checks that the path from the
            leaf verifies up to the certificate at the given depth.
        verified_chain (Optional[Sequence[x509.Certificate]]): PKIX verified
            chain, leaf first. Defaults to the presented chain.

    Returns:
        Optional[DaneMatch]: Matching record with depth, or None.
    """
    if not chain:
        return None
    spki_cache: Dict[bytes, bytes] = {}
    leaf = chain[0]

    for record in _usable(records, (USAGE_DANE_EE,)):
        if record_matches_certificate(record, leaf, spki_cache):
            return DaneMatch(record, 0)

    for record in _usable(records, (USAGE_DANE_TA,)):
        for depth in range(1, len(chain)):
            if record_matches_certificate(record, chain[depth], spki_cache):
                if chain_verifies_to(depth):
                    return DaneMatch(record, depth)
                LOGGER.debug("TLSA %s matched depth %d but path failed", record.describe(6), depth)

    for record in _usable(records, (USAGE_DANE_TA,)):
        if record.selector != SELECTOR_SPKI or record.matching_type != MATCHING_FULL:
            continue
        top = len(chain) - 1
        if top > 0 and not chain_verifies_to(top):
            continue
        if _signed_by_key(chain[top], load_der_public_key(record.data)):
            return DaneMatch(record, top, public_key_only=True)

    for record in _usable(records, (USAGE_DANE_TA,)):
        if record.selector != SELECTOR_CERT or record.matching_type != MATCHING_FULL:
            continue
        anchor = x509.load_der_x509_certificate(record.data)
        top = len(chain) - 1
        if chain[top] == anchor or chain[top].issuer != anchor.subject:
            continue
        if top > 0 and not chain_verifies_to(top):
            continue
        if _signed_by_key(chain[top], anchor.public_key()):
            return DaneMatch(record, top + 1, anchor=anchor)

    if not pkix_ok:
        return None

    for record in _usable(records, (USAGE_PKIX_EE,)):
        if record_matches_certificate(record, leaf, spki_cache):
            return DaneMatch(record, 0)

    pkix_chain = verified_chain or chain
    for record in _usable(records, (USAGE_PKIX_TA,)):
        for depth in range(1, len(pkix_chain)):
            if record_matches_certificate(record, pkix_chain[depth], spki_cache):
                return DaneMatch(record, depth)
    return None


__all__ = [
    "MATCHING_FULL",
    "MATCHING_SHA256",
    "MATCHING_SHA512",
    "SELECTOR_CERT",
    "SELECTOR_SPKI",
    "USAGE_DANE_EE",
    "USAGE_DANE_TA",
    "USAGE_PKIX_EE",
    "USAGE_PKIX_TA",
    "find_dane_match",
    "record_matches_certificate",
    "selector_bytes",
    "spki_der",
    "tlsa_usable",
]
