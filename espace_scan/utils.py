"""Utility functions for the eSpace scanner."""

from __future__ import annotations

import ipaddress
import logging
import re
import shlex
import sys
from typing import Any

DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ConfigurationError(ValueError):
    """Invalid input detected before any network activity."""


def format_command(command: list[str]) -> str:
    """Return a shell-safe representation of the command for logging."""
    return shlex.join(command)


def parse_int(value: Any) -> int | None:
    """Safely parse a value to int, returning None on failure."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_ipv4(value: str) -> ipaddress.IPv4Address:
    """Validate a dotted-quad IPv4 address.

    This is the only accepted address format on the command line, so the
    value is also checked for characters that could leak into subprocess
    arguments.

    Args:
        value: Address string (e.g., "10.1.60.15")

    Returns:
        Parsed IPv4Address

    Raises:
        ConfigurationError: If the value is not a valid IPv4 address
    """
    if not value or not isinstance(value, str):
        raise ConfigurationError("IP address must be a non-empty string")

    value = value.strip()
    if not re.match(r"^[0-9.]+$", value):
        raise ConfigurationError(f"Invalid IP address: {value}")

    try:
        return ipaddress.IPv4Address(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid IP address: {value}") from e


def mask_secret(value: str, visible: int = 3) -> str:
    """Mask a credential for log output."""
    if not value:
        return ""
    return value[:visible] + "***"


def configure_logging(level: str) -> logging.Logger:
    """Configure logging with a single stdout handler.

    Args:
        level: Log level string

    Returns:
        Logger instance
    """
    logger = logging.getLogger("espace_scan")
    root = logging.getLogger()
    root.handlers.clear()
    if isinstance(level, str):
        normalized_level = getattr(logging, level.upper(), logging.INFO)
    else:
        normalized_level = logging.INFO
    root.setLevel(normalized_level)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(stream_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logger


def get_version() -> str:
    """Get the installed package version, or 'unknown' from a source checkout."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("espace-scan")
    except PackageNotFoundError:
        return "unknown"
