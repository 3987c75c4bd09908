"""Summary rendering for check results (text template or JSON)."""

from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from jinja2.sandbox import SandboxedEnvironment

from .config import TEMPLATE_DIR_NAME, external_config_dirs
from .models import (
    AttemptOutcome,
    BindFailed,
    ConnectFailed,
    HandshakeFailed,
    StartTlsFailed,
    VerifyFailed,
    VerifySucceeded,
)

if TYPE_CHECKING:  # pragma: no cover
    from .runner import CheckResult

_TEMPLATE_PACKAGE = "dane_check.resources.templates"
SUMMARY_TEMPLATE = "summary.txt.j2"

_ENV = SandboxedEnvironment(autoescape=False, trim_blocks=True, lstrip_blocks=True)


def _find_template_path(template_name: str) -> Optional[Path]:
    """Find an external template override path.

    Args:
        template_name (str): Template filename to locate.

    Returns:
        Optional[Path]: Path to override template if found.
    """
    for base_dir in external_config_dirs():
        candidate = base_dir / TEMPLATE_DIR_NAME / template_name
        if candidate.is_file():
            return candidate
    return None


def _render_template(template_name: str, context: dict) -> str:
    """Render a template with the provided context.

    Args:
        template_name (str): Template filename to render.
        context (dict): Render context.

    Returns:
        str: Rendered template output.
    """
    override_path = _find_template_path(template_name)
    if override_path:
        source = override_path.read_text(encoding="utf-8")
    else:
        source = (
            resources.files(_TEMPLATE_PACKAGE).joinpath(template_name).read_text(encoding="utf-8")
        )
    return _ENV.from_string(source).render(**context)


def describe_outcome(outcome: AttemptOutcome) -> str:
    """Summarize one attempt outcome in a short phrase.

    Args:
        outcome (AttemptOutcome): Outcome to describe.

    Returns:
        str: Human-readable summary.
    """
    if isinstance(outcome, VerifySucceeded):
        if outcome.dane_match is not None:
            return f"authenticated by DANE ({outcome.dane_match.description})"
        return "authenticated by PKIX"
    if isinstance(outcome, VerifyFailed):
        return f"authentication failed rc={outcome.code} ({outcome.reason})"
    if isinstance(outcome, (ConnectFailed, BindFailed, StartTlsFailed, HandshakeFailed)):
        return f"{outcome.kind}: {outcome.error}"
    return outcome.kind


def build_json_payload(result: "CheckResult") -> dict:
    """Build a JSON-serializable payload for a check result.

    Args:
        result (CheckResult): Completed check.

    Returns:
        dict: JSON-serializable payload.
    """
    return {
        "hostname": result.hostname,
        "port": result.port,
        "mode": result.mode.value,
        "report_time_utc": result.report_time,
        "attempt_dane": result.attempt_dane,
        "evidence": result.evidence.to_dict(),
        "tlsa": [record.to_dict() for record in result.tlsa],
        "addresses": [address.to_dict() for address in result.addresses],
        "outcomes": [outcome.to_dict() for outcome in result.outcomes],
        "totals": {
            "succeeded": result.totals.succeeded,
            "failed": result.totals.failed,
            "usable_tlsa": result.totals.usable_tlsa_count,
        },
        "status": result.status.value,
        "exit_code": result.exit_code,
        "error": result.error,
    }


def to_json(result: "CheckResult") -> str:
    """Render a check result as formatted JSON.

    Args:
        result (CheckResult): Completed check.

    Returns:
        str: JSON string.
    """
    return json.dumps(build_json_payload(result), indent=2)


def to_text(result: "CheckResult") -> str:
    """Render the text summary of a check result.

    Args:
        result (CheckResult): Completed check.

    Returns:
        str: Rendered summary.
    """
    context = {
        "status": result.status.value,
        "hostname": result.hostname,
        "port": result.port,
        "mode": result.mode.value,
        "report_time": result.report_time,
        "error": result.error,
        "attempt_dane": result.attempt_dane,
        "tlsa_count": result.tlsa.count,
        "usable_tlsa_count": result.totals.usable_tlsa_count,
        "evidence": result.evidence,
        "outcomes": [
            {"label": outcome.address.label, "summary": describe_outcome(outcome)}
            for outcome in result.outcomes
        ],
        "succeeded": result.totals.succeeded,
        "failed": result.totals.failed,
    }
    return _render_template(SUMMARY_TEMPLATE, context).rstrip("\n")


__all__ = ["SUMMARY_TEMPLATE", "build_json_payload", "describe_outcome", "to_json", "to_text"]
