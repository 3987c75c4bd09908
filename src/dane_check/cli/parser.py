"""Argument parser helpers for the CLI."""

from __future__ import annotations

import argparse
import functools
import logging
import sys
import time
from typing import NoReturn

from .. import __version__
from ..starttls import starttls_names
from ..status import ExitCodes
from .parsing import _parse_hostname, _parse_port, _parse_positive_float


def _setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbosity (int): Verbosity count from CLI flags.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    logging.Formatter.converter = time.gmtime  # UTC timestamps
    logging.basicConfig(
        level=level,
        format="%(asctime)sZ [%(levelname)s] %(name)s: %(message)s",
    )


class _UsageArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors with the usage exit code."""

    def error(self, message: str) -> NoReturn:
        """Print usage and exit with the usage exit code.

        Args:
            message (str): Error message.
        """
        self.print_usage(sys.stderr)
        self.exit(ExitCodes.USAGE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        argparse.ArgumentParser: Configured parser instance.
    """
    parser = _UsageArgumentParser(
        prog="dane-check",
        description=(
            "Connect to every address of a TLS service and authenticate it with "
            "DANE TLSA records or PKIX"
        ),
        epilog=(
            "Exit status: 0 all addresses authenticated, 1 some addresses failed, "
            "2 authentication failed, 3 usage error"
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    target_group = parser.add_argument_group("Target")
    auth_group = parser.add_argument_group("Authentication")
    output_group = parser.add_argument_group("Output")
    dns_group = parser.add_argument_group("DNS")
    logging_group = parser.add_argument_group("Logging")
    misc_group = parser.add_argument_group("Misc")

    target_group.add_argument("hostname", type=_parse_hostname, help="Host name to connect to")
    target_group.add_argument("port", type=_parse_port, help="TCP port of the TLS service")
    target_group.add_argument(
        "-s",
        "--starttls",
        choices=starttls_names(),
        default=None,
        help="Use STARTTLS with the given application protocol",
    )
    target_group.add_argument(
        "-n",
        "--service-name",
        dest="service_name",
        default=None,
        help="Application service name (XMPP domain; defaults to the host name)",
    )
    target_group.add_argument(
        "--connect-timeout",
        dest="connect_timeout",
        type=functools.partial(_parse_positive_float, label="Connect timeout"),
        default=None,
        help="TCP connect timeout in seconds (default 10)",
    )
    auth_group.add_argument(
        "-m",
        "--mode",
        choices=["dane", "pkix"],
        default=None,
        help="Authenticate with DANE only or PKIX only (default: DANE with PKIX fallback)",
    )
    auth_group.add_argument(
        "-c",
        "--cafile",
        default=None,
        help="CA certificate file for PKIX (default: system trust store)",
    )
    output_group.add_argument(
        "--output",
        choices=["text", "json"],
        default=None,
        help="Output format (default: text)",
    )
    output_group.add_argument(
        "-d",
        "--debug",
        action="store_true",
        default=None,
        help="Print TLSA records and peer and validated certificate chains",
    )
    dns_group.add_argument(
        "--dns-server",
        dest="dns_servers",
        action="append",
        default=None,
        help="DNS server to use for lookups (repeatable; IP or hostname)",
    )
    dns_group.add_argument(
        "--dns-timeout",
        dest="dns_timeout",
        type=functools.partial(_parse_positive_float, label="DNS timeout"),
        default=None,
        help="Per-query DNS timeout in seconds",
    )
    dns_group.add_argument(
        "--dns-lifetime",
        dest="dns_lifetime",
        type=functools.partial(_parse_positive_float, label="DNS lifetime"),
        default=None,
        help="Total DNS query lifetime in seconds",
    )
    dns_group.add_argument(
        "--dns-tcp",
        dest="dns_tcp",
        action="store_true",
        default=None,
        help="Use TCP for DNS lookups",
    )
    misc_group.add_argument(
        "--config",
        default=None,
        help="YAML config file (default: search the user and system config dirs)",
    )
    misc_group.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show version and exit",
    )
    logging_group.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (use -vv for debug)",
    )
    return parser
