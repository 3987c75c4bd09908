"""Shared fixtures for CLI tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from dane_check import config as config_module
from dane_check.models import AuthMode, DnssecEvidence, TlsaRecordSet
from dane_check.runner import CheckRequest, CheckResult
from dane_check.status import RunStatus, exit_code_for_status


@pytest.fixture
def cli_module():
    """Load the CLI module under test.

    Returns:
        module: Imported ``dane_check.cli`` module.
    """
    import dane_check.cli as cli

    return cli


@pytest.fixture(autouse=True)
def isolated_config_dirs(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Any:
    """Keep config file discovery inside a temporary directory.

    Args:
        monkeypatch (pytest.MonkeyPatch): Pytest monkeypatch fixture.
        tmp_path (Path): Temporary directory.

    Returns:
        Path: Directory used as ``XDG_CONFIG_HOME``.
    """
    xdg = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.setattr(config_module, "SYSTEM_CONFIG_DIRS", [])
    return xdg


@pytest.fixture
def captured_run(
    monkeypatch: pytest.MonkeyPatch,
    cli_module: Any,
) -> Callable[[RunStatus], dict[str, Any]]:
    """Replace the resolver and the check run with recording doubles.

    Args:
        monkeypatch (pytest.MonkeyPatch): Pytest monkeypatch fixture.
        cli_module (Any): Imported CLI module.

    Returns:
        Callable[[RunStatus], dict[str, Any]]: Patch function returning the
            dict that receives the resolver kwargs and the request.
    """

    def _patch(status: RunStatus = RunStatus.SUCCESS) -> dict[str, Any]:
        captured: dict[str, Any] = {}

        def _resolver(**kwargs):
            captured["resolver"] = kwargs
            return object()

        def _run_check(request: CheckRequest) -> CheckResult:
            captured["request"] = request
            return CheckResult(
                output=f"{status.value} - {request.hostname}",
                exit_code=exit_code_for_status(status),
                status=status,
                report_time="2026-01-10 12:00",
                hostname=request.hostname,
                port=request.port,
                mode=request.mode,
                attempt_dane=request.mode is not AuthMode.PKIX,
                evidence=DnssecEvidence(),
                tlsa=TlsaRecordSet(),
            )

        monkeypatch.setattr(cli_module, "DnsResolver", _resolver)
        monkeypatch.setattr(cli_module, "run_check", _run_check)
        return captured

    return _patch
