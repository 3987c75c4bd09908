"""Host name matching tests."""

from __future__ import annotations

import pytest

from dane_check.hostname import certificate_names, match_hostname

from tests.factories import make_certificate, make_key


@pytest.mark.parametrize(
    "names,hostname,expected",
    [
        (["mail.example.com"], "MAIL.example.com.", "mail.example.com"),
        (["*.example.com"], "mail.example.com", "*.example.com"),
        (["*.example.com"], "a.b.example.com", None),
        (["*.example.com"], "example.com", None),
        (["*.com"], "example.com", None),
        (["mail.*.com"], "mail.example.com", None),
        (["f*.example.com"], "foo.example.com", None),
        (["other.example.com", "mail.example.com"], "mail.example.com", "mail.example.com"),
        ([], "mail.example.com", None),
    ],
)
def test_match_hostname(names, hostname, expected) -> None:
    assert match_hostname(names, hostname) == expected


def test_partial_wildcards_only_when_allowed() -> None:
    assert match_hostname(["f*.example.com"], "foo.example.com", no_partial_wildcards=False)
    assert match_hostname(["xn--*.example.com"], "xn--bcher-kva.example.com", False) is None


def test_certificate_names_prefers_san_over_cn() -> None:
    key = make_key()
    with_san = make_certificate("cn.example.com", key=key, san=["san.example.com"])
    without_san = make_certificate("cn.example.com", key=key)

    assert certificate_names(with_san) == ["san.example.com"]
    assert certificate_names(without_san) == ["cn.example.com"]
