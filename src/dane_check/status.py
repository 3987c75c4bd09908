"""Run status constants and exit code mapping."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class RunStatus(Enum):
    """Aggregate authentication outcome of a run."""

    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILURE = "FAILURE"
    USAGE = "USAGE"


@dataclass(frozen=True)
class ExitCodes:
    """Exit codes aligned with run status values.

    Attributes:
        SUCCESS (int): Every address authenticated.
        PARTIAL (int): Some but not all addresses authenticated.
        FAILURE (int): No address authenticated, or the run was aborted.
        USAGE (int): Command-line usage error.
    """

    SUCCESS: int = 0
    PARTIAL: int = 1
    FAILURE: int = 2
    USAGE: int = 3


def classify(succeeded: int, failed: int) -> RunStatus:
    """Map aggregate success/failure counts to a run status.

    Args:
        succeeded (int): Number of addresses that authenticated.
        failed (int): Number of addresses that failed.

    Returns:
        RunStatus: SUCCESS, PARTIAL, or FAILURE.
    """
    if succeeded > 0 and failed == 0:
        return RunStatus.SUCCESS
    if succeeded > 0:
        return RunStatus.PARTIAL
    return RunStatus.FAILURE


def coerce_status(status: Union[RunStatus, str]) -> RunStatus:
    """Normalize a status string or enum into a RunStatus value.

    Args:
        status (RunStatus | str): Status enum or string value.

    Returns:
        RunStatus: Normalized status; unknown strings map to FAILURE.
    """
    if isinstance(status, RunStatus):
        return status
    try:
        return RunStatus(status)
    except ValueError:
        return RunStatus.FAILURE


def exit_code_for_status(status: Union[RunStatus, str]) -> int:
    """Map a run status to a process exit code.

    Args:
        status (RunStatus | str): Status enum or string value.

    Returns:
        int: Exit code for the status.
    """
    normalized = coerce_status(status)
    if normalized is RunStatus.SUCCESS:
        return ExitCodes.SUCCESS
    if normalized is RunStatus.PARTIAL:
        return ExitCodes.PARTIAL
    if normalized is RunStatus.USAGE:
        return ExitCodes.USAGE
    return ExitCodes.FAILURE


__all__ = ["ExitCodes", "RunStatus", "classify", "coerce_status", "exit_code_for_status"]
