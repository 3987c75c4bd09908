"""Command-line interface for the DANE/PKIX checker."""

from __future__ import annotations

import argparse
import logging
from typing import List

from ..config import ConfigError, FileConfig, load_config
from ..dns_resolver import DnsResolver
from ..models import AuthMode
from ..orchestrator import DEFAULT_CONNECT_TIMEOUT
from ..runner import CheckRequest, run_check
from .parser import _setup_logging, build_parser
from .parsing import _parse_hostname, _parse_port, _parse_positive_float

LOGGER = logging.getLogger(__name__)

__all__ = [
    "_merge_options",
    "_parse_hostname",
    "_parse_port",
    "_parse_positive_float",
    "_setup_logging",
    "build_parser",
    "main",
]


def _pick(cli_value: object, file_value: object, default: object) -> object:
    """Choose a CLI value, then a config file value, then a default.

    Args:
        cli_value (object): Value from the command line, None when absent.
        file_value (object): Value from the config file, None when absent.
        default (object): Fallback value.

    Returns:
        object: First value that is not None.
    """
    if cli_value is not None:
        return cli_value
    if file_value is not None:
        return file_value
    return default


def _merge_options(args: argparse.Namespace, file_config: FileConfig) -> dict:
    """Merge parsed arguments over config file settings.

    Args:
        args (argparse.Namespace): Parsed command-line arguments.
        file_config (FileConfig): Settings from the config file.

    Returns:
        dict: Effective options keyed by name.
    """
    dns = file_config.dns
    return {
        "mode": AuthMode.from_option(_pick(args.mode, file_config.mode, None)),
        "cafile": _pick(args.cafile, file_config.cafile, None),
        "starttls": _pick(args.starttls, file_config.starttls, None),
        "service_name": _pick(args.service_name, file_config.service_name, None),
        "debug": bool(_pick(args.debug, file_config.debug, False)),
        "output": _pick(args.output, file_config.output, "text"),
        "connect_timeout": _pick(
            args.connect_timeout, file_config.connect_timeout, DEFAULT_CONNECT_TIMEOUT
        ),
        "dns_servers": list(_pick(args.dns_servers, list(dns.servers) or None, [])),
        "dns_timeout": _pick(args.dns_timeout, dns.timeout, None),
        "dns_lifetime": _pick(args.dns_lifetime, dns.lifetime, None),
        "dns_tcp": bool(_pick(args.dns_tcp, dns.tcp, False)),
    }


def main(argv: List[str] | None = None) -> int:
    """Run the CLI entrypoint.

    Args:
        argv (List[str] | None): Optional argument list for parsing.

    Returns:
        int: Exit code (0=all authenticated, 1=partial, 2=failed, 3=usage error).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)
    LOGGER.debug("Parsed arguments: %s", args)

    try:
        file_config = load_config(args.config)
    except ConfigError as exc:
        parser.error(str(exc))
    if file_config.source is not None:
        LOGGER.info("Using config file %s", file_config.source)

    try:
        options = _merge_options(args, file_config)
    except ValueError as exc:
        parser.error(str(exc))
    LOGGER.debug("Effective options: %s", options)

    try:
        resolver = DnsResolver(
            nameservers=options["dns_servers"],
            timeout=options["dns_timeout"],
            lifetime=options["dns_lifetime"],
            use_tcp=options["dns_tcp"],
        )
    except ValueError as exc:
        parser.error(str(exc))

    request = CheckRequest(
        hostname=args.hostname,
        port=args.port,
        mode=options["mode"],
        cafile=options["cafile"],
        starttls=options["starttls"],
        service_name=options["service_name"],
        debug=options["debug"],
        output=options["output"],
        connect_timeout=options["connect_timeout"],
        resolver=resolver,
    )
    try:
        result = run_check(request)
    except ValueError as exc:
        parser.error(str(exc))

    print(result.output)
    return result.exit_code
