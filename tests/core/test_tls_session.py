"""TLS session verification tests with a stubbed pyOpenSSL connection."""

from __future__ import annotations

import pytest

from dane_check.models import TlsaRecord
from dane_check.tls import (
    X509_V_ERR_DANE_NO_MATCH,
    X509_V_ERR_HOSTNAME_MISMATCH,
    X509_V_OK,
    TlsConfig,
    TlsSession,
    TlsSessionError,
    TrustStoreError,
    _verify_callback,
)
from dane_check.hostname import NO_PARTIAL_WILDCARDS

from tests.factories import make_chain, make_tlsa


class _FakeX509:
    """pyOpenSSL certificate stand-in."""

    def __init__(self, certificate):
        self._certificate = certificate

    def to_cryptography(self):
        return self._certificate


class _FakeConnection:
    """pyOpenSSL connection stand-in."""

    def __init__(self, chain, verified=None):
        self.chain = list(chain)
        self.verified = list(chain) if verified is None else list(verified)
        self.app_data = None
        self.sni = None
        self.shutdown_results = [False, True]
        self.shutdown_calls = 0

    def set_app_data(self, data):
        self.app_data = data

    def get_app_data(self):
        return self.app_data

    def set_connect_state(self):
        pass

    def set_tlsext_host_name(self, name):
        self.sni = name

    def do_handshake(self):
        pass

    def get_peer_cert_chain(self):
        return [_FakeX509(cert) for cert in self.chain]

    def get_peer_certificate(self):
        return _FakeX509(self.chain[0]) if self.chain else None

    def get_verified_chain(self):
        return [_FakeX509(cert) for cert in self.verified]

    def get_protocol_version_name(self):
        return "TLSv1.3"

    def get_cipher_name(self):
        return "TLS_AES_128_GCM_SHA256"

    def get_cipher_version(self):
        return "TLSv1.3"

    def shutdown(self):
        self.shutdown_calls += 1
        return self.shutdown_results.pop(0)


def _dane_session(chain, records, hostname="mail.example.com", verified=None):
    connection = _FakeConnection(chain, verified)
    session = TlsSession(connection, dane_allowed=True)
    session.enable_dane(hostname)
    session.set_host_flags(NO_PARTIAL_WILDCARDS)
    for record in records:
        session.add_tlsa(record)
    session.handshake()
    return session, connection


def test_dane_ee_match_skips_name_checks() -> None:
    chain = make_chain(san=["other.example.net"])
    session, connection = _dane_session(chain.presented, [make_tlsa(3, 1, 1, chain.leaf)])

    assert session.verify_result() == (X509_V_OK, "ok")
    match = session.dane_authority()
    assert match.depth == 0
    assert session.peername is None
    assert connection.sni == b"mail.example.com"


def test_dane_without_matching_record_fails() -> None:
    chain = make_chain()
    other = make_chain()
    session, _connection = _dane_session(chain.presented, [make_tlsa(3, 1, 1, other.leaf)])

    assert session.verify_result()[0] == X509_V_ERR_DANE_NO_MATCH
    assert session.dane_authority() is None
    assert session.verified_chain() == []


def test_dane_ta_match_checks_name_and_path() -> None:
    chain = make_chain()
    session, _connection = _dane_session(chain.presented, [make_tlsa(2, 0, 1, chain.intermediate)])

    assert session.verify_result()[0] == X509_V_OK
    assert session.dane_authority().depth == 1
    assert session.peername == "mail.example.com"
    assert session.verified_chain() == chain.presented


def test_pkix_ta_record_matches_trust_store_root() -> None:
    chain = make_chain()
    verified = [chain.leaf, chain.intermediate, chain.root]
    session, _connection = _dane_session(
        chain.presented, [make_tlsa(0, 0, 1, chain.root)], verified=verified
    )

    assert session.verify_result() == (X509_V_OK, "ok")
    assert session.dane_authority().depth == 2
    assert session.peername == "mail.example.com"
    assert session.verified_chain() == verified


def test_dane_ta_certificate_not_sent_by_server_extends_verified_chain() -> None:
    chain = make_chain()
    session, _connection = _dane_session(chain.presented, [make_tlsa(2, 0, 0, chain.root)])

    assert session.verify_result() == (X509_V_OK, "ok")
    assert session.dane_authority().anchor == chain.root
    assert session.verified_chain() == [chain.leaf, chain.intermediate, chain.root]


def test_dane_ta_match_with_wrong_name_fails() -> None:
    chain = make_chain(san=["www.example.com"])
    session, _connection = _dane_session(chain.presented, [make_tlsa(2, 0, 1, chain.intermediate)])

    assert session.verify_result()[0] == X509_V_ERR_HOSTNAME_MISMATCH


def test_dane_ta_rejects_chain_not_issued_by_anchor() -> None:
    chain = make_chain()
    stranger = make_chain()
    presented = [chain.leaf, stranger.intermediate]
    session, _connection = _dane_session(presented, [make_tlsa(2, 0, 1, stranger.intermediate)])

    assert session.verify_result()[0] == X509_V_ERR_DANE_NO_MATCH


def _pkix_session(chain, hostname="mail.example.com"):
    connection = _FakeConnection(chain)
    session = TlsSession(connection)
    session.set_host(hostname)
    session.set_sni(hostname)
    session.set_host_flags(NO_PARTIAL_WILDCARDS)
    return session, connection


def test_pkix_success_reports_peername() -> None:
    chain = make_chain()
    session, connection = _pkix_session(chain.presented)
    session.handshake()

    assert session.verify_result()[0] == X509_V_OK
    assert session.peername == "mail.example.com"
    assert session.dane_authority() is None
    assert connection.sni == b"mail.example.com"


def test_pkix_error_from_callback_is_reported() -> None:
    chain = make_chain()
    session, connection = _pkix_session(chain.presented)
    session.handshake()

    assert _verify_callback(connection, None, 20, 1, 0) is True
    assert _verify_callback(connection, None, 10, 0, 0) is True

    assert session.verify_result() == (20, "unable to get local issuer certificate")


def test_pkix_partial_wildcard_does_not_match() -> None:
    chain = make_chain("foo.example.com", san=["f*.example.com"])
    session, _connection = _pkix_session(chain.presented, hostname="foo.example.com")
    session.handshake()

    assert session.verify_result()[0] == X509_V_ERR_HOSTNAME_MISMATCH


def test_verify_result_requires_handshake() -> None:
    session, _connection = _pkix_session(make_chain().presented)

    with pytest.raises(TlsSessionError):
        session.verify_result()
    assert session.peername is None


def test_add_tlsa_requires_dane() -> None:
    session = TlsSession(_FakeConnection([]), dane_allowed=False)

    assert session.add_tlsa(TlsaRecord(3, 1, 1, bytes(32))) == -1
    with pytest.raises(TlsSessionError):
        session.enable_dane("mail.example.com")


def test_add_tlsa_reports_unusable_records() -> None:
    session = TlsSession(_FakeConnection([]), dane_allowed=True)
    session.enable_dane("mail.example.com")

    assert session.add_tlsa(TlsaRecord(3, 1, 1, bytes(32))) == 1
    assert session.add_tlsa(TlsaRecord(3, 1, 1, bytes(3))) == 0


def test_shutdown_retries_once_and_release_detaches() -> None:
    session, connection = _pkix_session(make_chain().presented)
    session.handshake()

    session.shutdown()
    session.release()

    assert connection.shutdown_calls == 2
    assert connection.app_data is None
    with pytest.raises(TlsSessionError):
        session.shutdown()


def test_cipher_and_protocol() -> None:
    session, _connection = _pkix_session(make_chain().presented)

    assert session.protocol_version == "TLSv1.3"
    assert session.cipher == "TLSv1.3 TLS_AES_128_GCM_SHA256"


def test_config_missing_cafile_raises_trust_store_error(tmp_path) -> None:
    config = TlsConfig(str(tmp_path / "missing.pem"))

    with pytest.raises(TrustStoreError, match="Failed to load certificate authority store"):
        config.load_trust_store()


def test_config_enable_dane_allows_dane_sessions() -> None:
    config = TlsConfig()
    config.enable_dane()

    assert config.dane_enabled
