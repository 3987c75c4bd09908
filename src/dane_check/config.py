"""Optional YAML configuration file loading and validation."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import List, Optional, Tuple

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

CONFIG_DIR_NAME = "dane-check"
CONFIG_FILE_NAME = "config.yaml"
TEMPLATE_DIR_NAME = "templates"

_SCHEMA_PACKAGE = "dane_check.resources.schema"
_SCHEMA_FILENAME = "config.schema.json"

LOGGER = logging.getLogger(__name__)

SYSTEM_CONFIG_DIRS = [
    Path("/etc") / CONFIG_DIR_NAME,
    Path("/usr/local/etc") / CONFIG_DIR_NAME,
]


class ConfigError(ValueError):
    """Raised when a configuration file is missing, unreadable or invalid."""


@dataclasses.dataclass(frozen=True)
class DnsSettings:
    """DNS resolver settings from the configuration file.

    Attributes:
        servers (Tuple[str, ...]): Nameserver IPs or hostnames.
        timeout (Optional[float]): Per-query timeout in seconds.
        lifetime (Optional[float]): Total resolution time in seconds.
        tcp (bool): Whether to force TCP.
    """

    servers: Tuple[str, ...] = ()
    timeout: Optional[float] = None
    lifetime: Optional[float] = None
    tcp: bool = False


@dataclasses.dataclass(frozen=True)
class FileConfig:
    """Settings read from a configuration file.

    Values left as None were not present in the file.

    Attributes:
        mode (Optional[str]): Authentication mode.
        cafile (Optional[str]): Alternate trust store file.
        starttls (Optional[str]): STARTTLS application protocol.
        service_name (Optional[str]): Application service name.
        debug (Optional[bool]): Dump certificate chains.
        output (Optional[str]): Output format.
        connect_timeout (Optional[float]): TCP connect timeout in seconds.
        dns (DnsSettings): DNS resolver settings.
        source (Optional[Path]): File the settings came from.
    """

    mode: Optional[str] = None
    cafile: Optional[str] = None
    starttls: Optional[str] = None
    service_name: Optional[str] = None
    debug: Optional[bool] = None
    output: Optional[str] = None
    connect_timeout: Optional[float] = None
    dns: DnsSettings = DnsSettings()
    source: Optional[Path] = None


def external_config_dirs() -> List[Path]:
    """Return directories that may contain a configuration file or templates.

    Returns:
        List[Path]: Ordered list of user and system config directories.
    """
    xdg_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_home:
        user_dir = Path(xdg_home) / CONFIG_DIR_NAME
    else:
        user_dir = Path.home() / ".config" / CONFIG_DIR_NAME
    return [user_dir, *SYSTEM_CONFIG_DIRS]


@lru_cache(maxsize=1)
def _load_schema_validator() -> Draft202012Validator:
    """Load and cache the configuration JSON Schema validator.

    Returns:
        Draft202012Validator: Validator for configuration payloads.
    """
    schema_text = (
        resources.files(_SCHEMA_PACKAGE).joinpath(_SCHEMA_FILENAME).read_text(encoding="utf-8")
    )
    return Draft202012Validator(json.loads(schema_text))


def _schema_error_data(err: ValidationError) -> dict[str, str]:
    """Render one schema validation error as a structured mapping.

    Args:
        err (ValidationError): JSON Schema validation error.

    Returns:
        dict[str, str]: Error location and message fields.
    """
    location = ".".join(str(part) for part in err.absolute_path) or "<root>"
    return {"location": location, "message": str(err.message)}


def collect_config_schema_errors(payload: object) -> list[dict[str, str]]:
    """Collect deterministic configuration schema validation errors.

    Args:
        payload (object): Parsed configuration payload.

    Returns:
        list[dict[str, str]]: Sorted schema validation errors.
    """
    validator = _load_schema_validator()
    errors = [_schema_error_data(err) for err in validator.iter_errors(payload)]
    return sorted(errors, key=lambda item: (item["location"], item["message"]))


def find_config_path(explicit: Optional[str] = None) -> Optional[Path]:
    """Locate the configuration file to load.

    Args:
        explicit (Optional[str]): Path given on the command line.

    Returns:
        Optional[Path]: Configuration file, or None when none exists.

    Raises:
        ConfigError: If an explicit path does not exist.
    """
    if explicit:
        path = Path(explicit).expanduser()
        if not path.is_file():
            raise ConfigError(f"Config file not found: {explicit}")
        return path
    for base_dir in external_config_dirs():
        candidate = base_dir / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _optional_float(value: object) -> Optional[float]:
    """Convert a validated number to float, keeping None.

    Args:
        value (object): Number or None.

    Returns:
        Optional[float]: Float value or None.
    """
    return None if value is None else float(value)


def parse_config(payload: object, source: Optional[Path] = None) -> FileConfig:
    """Validate a configuration payload and build settings from it.

    Args:
        payload (object): Parsed YAML payload. None is an empty file.
        source (Optional[Path]): File the payload came from.

    Returns:
        FileConfig: Parsed settings.

    Raises:
        ConfigError: If the payload does not match the schema.
    """
    if payload is None:
        payload = {}
    errors = collect_config_schema_errors(payload)
    if errors:
        details = "; ".join(f"{item['location']}: {item['message']}" for item in errors)
        raise ConfigError(f"Invalid config {source or '<input>'}: {details}")
    dns_data = payload.get("dns") or {}
    dns = DnsSettings(
        servers=tuple(dns_data.get("servers") or ()),
        timeout=_optional_float(dns_data.get("timeout")),
        lifetime=_optional_float(dns_data.get("lifetime")),
        tcp=bool(dns_data.get("tcp", False)),
    )
    return FileConfig(
        mode=payload.get("mode"),
        cafile=payload.get("cafile"),
        starttls=payload.get("starttls"),
        service_name=payload.get("service_name"),
        debug=payload.get("debug"),
        output=payload.get("output"),
        connect_timeout=_optional_float(payload.get("connect_timeout")),
        dns=dns,
        source=source,
    )


def load_config(explicit: Optional[str] = None) -> FileConfig:
    """Load settings from the configuration file, if one exists.

    Args:
        explicit (Optional[str]): Path given on the command line.

    Returns:
        FileConfig: Parsed settings, empty when no file was found.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    path = find_config_path(explicit)
    if path is None:
        return FileConfig()
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as err:
        raise ConfigError(f"Unable to read config {path}: {err}") from err
    except yaml.YAMLError as err:
        raise ConfigError(f"Invalid YAML in config {path}: {err}") from err
    LOGGER.debug("Loaded config from %s", path)
    return parse_config(payload, source=path)


__all__ = [
    "CONFIG_DIR_NAME",
    "CONFIG_FILE_NAME",
    "ConfigError",
    "DnsSettings",
    "FileConfig",
    "TEMPLATE_DIR_NAME",
    "collect_config_schema_errors",
    "external_config_dirs",
    "find_config_path",
    "load_config",
    "parse_config",
]
