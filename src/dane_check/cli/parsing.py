"""Parsing helpers for CLI inputs."""

from __future__ import annotations

import argparse


def _parse_port(value: str) -> int:
    """Parse a TCP port number from CLI input.

    Args:
        value (str): String value to parse.

    Returns:
        int: Port between 1 and 65535.

    Raises:
        argparse.ArgumentTypeError: If the value is invalid or out of range.
    """
    try:
        parsed = int(value, 10)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"port must be an integer between 1 and 65535, got '{value}'"
        ) from exc
    if parsed < 1 or parsed > 65535:
        raise argparse.ArgumentTypeError(f"port must be between 1 and 65535, got {parsed}")
    return parsed


def _parse_positive_float(value: str, *, label: str) -> float:
    """Parse a positive floating point value from CLI input.

    Args:
        value (str): String value to parse.
        label (str): Option label used in error messages.

    Returns:
        float: Parsed value greater than zero.

    Raises:
        argparse.ArgumentTypeError: If the value is not a positive number.
    """
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"{label} must be a positive number") from exc
    if parsed <= 0 or parsed != parsed:
        raise argparse.ArgumentTypeError(f"{label} must be a positive number")
    return parsed


def _parse_hostname(value: str) -> str:
    """Validate the target host name from CLI input.

    Args:
        value (str): Host name to validate.

    Returns:
        str: Host name without surrounding whitespace or a trailing dot.

    Raises:
        argparse.ArgumentTypeError: If the host name is empty or not IDNA encodable.
    """
    hostname = value.strip().rstrip(".")
    if not hostname:
        raise argparse.ArgumentTypeError("hostname must not be empty")
    try:
        hostname.encode("idna")
    except UnicodeError as exc:
        raise argparse.ArgumentTypeError(f"invalid hostname '{value}': {exc}") from exc
    return hostname
