"""Stable API for running a DANE/PKIX authentication check."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from .dns_resolver import DnsResolver
from .models import (
    Address,
    AttemptOutcome,
    AuthMode,
    DnssecEvidence,
    RunTotals,
    TlsaRecordSet,
)
from .orchestrator import (
    DEFAULT_CONNECT_TIMEOUT,
    Connector,
    Orchestrator,
    Reporter,
    print_reporter,
    silent_reporter,
    tcp_connect,
)
from .output import to_json, to_text
from .policy import decide
from .starttls import get_negotiator
from .status import RunStatus, classify, exit_code_for_status
from .tls import TlsConfig, TlsConfigError

LOGGER = logging.getLogger(__name__)

_OUTPUT_CHOICES = {"text", "json"}


def _default_report_time() -> str:
    """Build a default UTC report timestamp string.

    Returns:
        str: Timestamp in YYYY-MM-DD HH:MM format (UTC).
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M")


def _validate_output_format(output: str) -> None:
    """Validate the output format selection.

    Args:
        output (str): Requested output format.

    Raises:
        ValueError: If the output format is not supported.
    """
    if output not in _OUTPUT_CHOICES:
        raise ValueError(f"Unsupported output format '{output}'. Choose from {_OUTPUT_CHOICES}.")


def _validate_port(port: int) -> None:
    """Validate a TCP port number.

    Args:
        port (int): Port to check.

    Raises:
        ValueError: If the port is outside 1-65535.
    """
    if not 0 < int(port) < 65536:
        raise ValueError(f"Invalid port {port}: must be between 1 and 65535")


@dataclass(frozen=True)
class CheckRequest:
    """Input parameters for one authentication check.

    Attributes:
        hostname (str): Target host name.
        port (int): Target TCP port.
        mode (AuthMode): Authentication mode.
        cafile (Optional[str]): Alternate trust store file.
        starttls (Optional[str]): STARTTLS application protocol.
        service_name (Optional[str]): Application service name for STARTTLS.
        debug (bool): Dump TLSA records and certificate chains.
        output (str): Output format (text or json).
        connect_timeout (Optional[float]): TCP connect timeout in seconds.
        report_time (Optional[str]): Report timestamp (UTC).
        resolver (Optional[DnsResolver]): DNS resolver to use.
        tls_config_factory (Optional[Callable[[Optional[str]], object]]): Builds the
            shared TLS configuration from the CA file.
        connector (Optional[Connector]): Opens TCP connections.
        reporter (Optional[Reporter]): Receives progress lines.
    """

    hostname: str
    port: int
    mode: AuthMode = AuthMode.DANE_WITH_FALLBACK
    cafile: Optional[str] = None
    starttls: Optional[str] = None
    service_name: Optional[str] = None
    debug: bool = False
    output: str = "text"
    connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT
    report_time: Optional[str] = None
    resolver: Optional[DnsResolver] = None
    tls_config_factory: Optional[Callable[[Optional[str]], object]] = None
    connector: Optional[Connector] = None
    reporter: Optional[Reporter] = None


@dataclass(frozen=True)
class CheckResult:
    """Outcome of an authentication check.

    Attributes:
        output (str): Rendered summary or JSON document.
        exit_code (int): Exit code derived from the status.
        status (RunStatus): Aggregate status.
        report_time (str): Report timestamp (UTC).
        hostname (str): Target host name.
        port (int): Target port.
        mode (AuthMode): Authentication mode.
        attempt_dane (bool): Whether sessions were bound for DANE.
        evidence (DnssecEvidence): DNSSEC evidence.
        tlsa (TlsaRecordSet): TLSA records found.
        addresses (Tuple[Address, ...]): Resolved addresses.
        outcomes (List[AttemptOutcome]): Per-address outcomes in order.
        totals (RunTotals): Aggregate counters.
        error (Optional[str]): Fatal error that stopped the run early.
    """

    output: str
    exit_code: int
    status: RunStatus
    report_time: str
    hostname: str
    port: int
    mode: AuthMode
    attempt_dane: bool
    evidence: DnssecEvidence
    tlsa: TlsaRecordSet
    addresses: Tuple[Address, ...] = ()
    outcomes: List[AttemptOutcome] = field(default_factory=list)
    totals: RunTotals = field(default_factory=RunTotals)
    error: Optional[str] = None

    @property
    def contacted(self) -> int:
        """Return how many addresses a connection was attempted to."""
        return len(self.outcomes)


def _default_tls_config(cafile: Optional[str]) -> TlsConfig:
    """Build the default pyOpenSSL-backed TLS configuration.

    Args:
        cafile (Optional[str]): Alternate trust store file.

    Returns:
        TlsConfig: New configuration.
    """
    return TlsConfig(cafile)


def _report_tlsa(reporter: Reporter, tlsa: TlsaRecordSet) -> None:
    """Report the TLSA records that DANE will use.

    Args:
        reporter (Reporter): Receives progress lines.
        tlsa (TlsaRecordSet): Records to list.
    """
    reporter(f"TLSA records found: {tlsa.count}")
    for record in tlsa:
        reporter(f"TLSA: {record.describe()}")
    reporter("")


def _finish(
    request: CheckRequest,
    report_time: str,
    status: RunStatus,
    **fields: object,
) -> CheckResult:
    """Build the result and render its output.

    Args:
        request (CheckRequest): Originating request.
        report_time (str): Report timestamp.
        status (RunStatus): Aggregate status.
        **fields (object): Remaining CheckResult fields.

    Returns:
        CheckResult: Completed result.
    """
    result = CheckResult(
        output="",
        exit_code=exit_code_for_status(status),
        status=status,
        report_time=report_time,
        hostname=request.hostname,
        port=request.port,
        mode=request.mode,
        **fields,
    )
    render = to_json if request.output == "json" else to_text
    return replace(result, output=render(result))


def run_check(request: CheckRequest) -> CheckResult:
    """Resolve, decide, connect to every address and classify the run.

    Fatal conditions stop the run before any address is contacted and yield
    FAILURE: bogus or indeterminate DNS, DANE mode without authenticated
    usable TLSA records, and TLS configuration errors.

    Args:
        request (CheckRequest): Request parameters.

    Returns:
        CheckResult: Results including output and exit code.

    Raises:
        ValueError: If the output format, port or STARTTLS protocol is invalid.
    """
    _validate_output_format(request.output)
    _validate_port(request.port)
    negotiator = get_negotiator(request.starttls) if request.starttls else None
    report_time = request.report_time or _default_report_time()
    if request.reporter is not None:
        reporter = request.reporter
    elif request.output == "json":
        reporter = silent_reporter
    else:
        reporter = print_reporter

    LOGGER.info("Checking %s port %d in %s mode", request.hostname, request.port, request.mode.value)
    resolver = request.resolver or DnsResolver()
    dns_evidence = resolver.gather_evidence(request.hostname, request.port, request.mode)
    decision = decide(request.mode, dns_evidence.tlsa, dns_evidence.evidence)
    common = {
        "evidence": dns_evidence.evidence,
        "tlsa": dns_evidence.tlsa,
        "addresses": dns_evidence.addresses,
        "attempt_dane": decision.attempt_dane,
    }
    if decision.fatal:
        return _finish(request, report_time, RunStatus.FAILURE, error=decision.reason, **common)

    if request.debug and decision.attempt_dane:
        _report_tlsa(reporter, dns_evidence.tlsa)

    factory = request.tls_config_factory or _default_tls_config
    try:
        tls_config = factory(request.cafile)
        tls_config.load_trust_store()
        tls_config.enable_dane()
    except TlsConfigError as err:
        LOGGER.error("%s", err)
        return _finish(request, report_time, RunStatus.FAILURE, error=str(err), **common)

    if request.connector is not None:
        connector = request.connector
    else:
        timeout = request.connect_timeout

        def connector(address: Address) -> object:
            """Connect with the requested timeout."""
            return tcp_connect(address, timeout=timeout)

    orchestrator = Orchestrator(
        tls_config,
        request.hostname,
        request.mode,
        decision.attempt_dane,
        dns_evidence.tlsa,
        negotiator=negotiator,
        service_name=request.service_name,
        connector=connector,
        reporter=reporter,
        debug=request.debug,
    )
    totals = orchestrator.run(dns_evidence.addresses)
    status = classify(totals.succeeded, totals.failed)
    LOGGER.info(
        "Finished %s: %d succeeded, %d failed", request.hostname, totals.succeeded, totals.failed
    )
    return _finish(
        request,
        report_time,
        status,
        outcomes=list(orchestrator.outcomes),
        totals=totals,
        **common,
    )


__all__ = ["CheckRequest", "CheckResult", "run_check"]
