"""Session policy binder tests."""

from __future__ import annotations

import logging

import pytest

from dane_check.hostname import NO_PARTIAL_WILDCARDS
from dane_check.models import AuthMode, TlsaRecord, TlsaRecordSet
from dane_check.session import BindError, bind
from dane_check.tls import TlsSessionError

from tests.factories import V4_ADDRESS
from tests.support import TLSA_3_1_1, FakeSession

_UNUSABLE = TlsaRecord(3, 1, 1, b"\x01\x02")


def test_pkix_binding_sets_host_and_explicit_sni() -> None:
    session = FakeSession()

    result = bind(session, V4_ADDRESS, "mail.example.com", False, TlsaRecordSet(), AuthMode.PKIX)

    assert result.usable_tlsa == 0
    assert session.calls == [
        ("set_host", "mail.example.com"),
        ("set_sni", "mail.example.com"),
        ("set_host_flags", NO_PARTIAL_WILDCARDS),
    ]


def test_dane_binding_enables_dane_without_explicit_sni() -> None:
    session = FakeSession()
    tlsa = TlsaRecordSet((TLSA_3_1_1,), authenticated=True)

    result = bind(session, V4_ADDRESS, "mail.example.com", True, tlsa)

    assert result.usable_tlsa == 1
    names = [name for name, _value in session.calls]
    assert names == ["enable_dane", "set_host_flags", "add_tlsa"]
    assert "set_sni" not in names
    assert session.sni == "mail.example.com"


def test_unusable_records_are_logged_and_skipped(caplog) -> None:
    caplog.set_level(logging.WARNING)
    session = FakeSession(tlsa_rc=[0, 1])
    tlsa = TlsaRecordSet((_UNUSABLE, TLSA_3_1_1), authenticated=True)

    result = bind(session, V4_ADDRESS, "mail.example.com", True, tlsa)

    assert result.usable_tlsa == 1
    assert "Unusable TLSA record: 3 1 1 0102" in caplog.text


def test_dane_mode_without_usable_records_fails() -> None:
    session = FakeSession(tlsa_rc=0)
    tlsa = TlsaRecordSet((_UNUSABLE,), authenticated=True)

    with pytest.raises(BindError, match="No usable TLSA records present."):
        bind(session, V4_ADDRESS, "mail.example.com", True, tlsa, AuthMode.DANE)


def test_fallback_mode_without_usable_records_binds() -> None:
    session = FakeSession(tlsa_rc=0)
    tlsa = TlsaRecordSet((_UNUSABLE,), authenticated=True)

    result = bind(session, V4_ADDRESS, "mail.example.com", True, tlsa, AuthMode.DANE_WITH_FALLBACK)

    assert result.usable_tlsa == 0


def test_tlsa_add_error_fails_the_binding() -> None:
    session = FakeSession(tlsa_rc=-1)
    tlsa = TlsaRecordSet((TLSA_3_1_1,), authenticated=True)

    with pytest.raises(BindError, match="Failed to add TLSA record"):
        bind(session, V4_ADDRESS, "mail.example.com", True, tlsa)


def test_enable_dane_error_is_wrapped() -> None:
    session = FakeSession(enable_dane_error=TlsSessionError("no dane"))

    with pytest.raises(BindError, match="no dane"):
        bind(session, V4_ADDRESS, "mail.example.com", True, TlsaRecordSet())
