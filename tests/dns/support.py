"""Shared DNS resolver test support."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import dns.flags
import dns.name
import dns.resolver
import pytest

from dane_check.dns_resolver import DnsResolver


class DummyResolver:
    """Minimal dnspython-compatible resolver test double.

    Attributes:
        answers (dict[tuple[str, str], Any]): Lookup results by (name, record_type).
        queries (list[tuple[str, str]]): Queries issued, in order.
        nameservers (list[str]): Assigned resolver nameservers.
        edns (tuple | None): Arguments passed to use_edns.
    """

    def __init__(self, answers: dict[tuple[str, str], Any]):
        self.answers = answers
        self.queries: list[tuple[str, str]] = []
        self.nameservers: list[str] = []
        self.timeout: float | None = None
        self.lifetime: float | None = None
        self.use_tcp = False
        self.flags: int | None = None
        self.edns: tuple | None = None

    def use_edns(self, *args: Any) -> None:
        self.edns = args

    def resolve(self, name: str, record_type: str, raise_on_no_answer: bool = True) -> Any:
        self.queries.append((name, record_type))
        result = self.answers[(name, record_type)]
        if isinstance(result, Exception):
            raise result
        return result


def answer(rdatas: list[Any], authenticated: bool = True) -> SimpleNamespace:
    """Build a dnspython-style answer with an optional AD bit."""
    flags = dns.flags.QR | (dns.flags.AD if authenticated else 0)
    return SimpleNamespace(rrset=rdatas or None, response=SimpleNamespace(flags=flags))


def nxdomain(name: str, authenticated: bool = True) -> dns.resolver.NXDOMAIN:
    """Build an NXDOMAIN error carrying one response."""
    qname = dns.name.from_text(name)
    flags = dns.flags.QR | (dns.flags.AD if authenticated else 0)
    return dns.resolver.NXDOMAIN(qnames=[qname], responses={qname: SimpleNamespace(flags=flags)})


def make_dummy_resolver(
    monkeypatch: pytest.MonkeyPatch,
    answers: dict[tuple[str, str], Any] | None = None,
) -> DummyResolver:
    """Create and patch a dummy dnspython resolver."""
    dummy = DummyResolver(answers or {})
    monkeypatch.setattr(dns.resolver, "Resolver", lambda: dummy)
    return dummy


def make_dns_resolver(
    monkeypatch: pytest.MonkeyPatch,
    answers: dict[tuple[str, str], Any],
) -> tuple[DnsResolver, DummyResolver]:
    """Create a ``DnsResolver`` backed by a patched dummy resolver."""
    dummy = make_dummy_resolver(monkeypatch, answers)
    return DnsResolver(), dummy


__all__ = ["DummyResolver", "answer", "make_dns_resolver", "make_dummy_resolver", "nxdomain"]
