"""Configuration management for the eSpace scanner."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from espace_scan.accounts import DEFAULT_ACCOUNTS_FILE, accounts_from_credentials, load_accounts
from espace_scan.models import (
    DEFAULT_PASSWORD_ENCODINGS,
    INSECURE,
    SECURE,
    Account,
    AddressRange,
    ConnectionScheme,
    PasswordEncoding,
)
from espace_scan.utils import DEFAULT_LOG_LEVEL, ConfigurationError, parse_int

DEFAULT_EXPORT_FILENAME_TEMPLATE = "Config-eSpace-{serial}.xml"


class ScanSettings(BaseSettings):
    """Defaults for a scan run, overridable from the environment or a .env file."""

    model_config = SettingsConfigDict(
        env_prefix="ESPACE_SCAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    accounts_file: str = str(DEFAULT_ACCOUNTS_FILE)
    ping_timeout: int = 1  # seconds, 0 disables the liveness check
    probe: str = "icmp"
    http_timeout: float = 5.0
    verify_tls: bool = False
    workers: int = 1
    export_dir: str = "."
    export_filename_template: str = DEFAULT_EXPORT_FILENAME_TEMPLATE
    log_level: str = DEFAULT_LOG_LEVEL
    log_secrets: bool = False
    progress_interval: int = 5


def load_settings() -> ScanSettings:
    """Load settings from environment variables.

    Raises:
        ConfigurationError: If an environment or .env value is invalid
    """
    try:
        return ScanSettings()
    except ValidationError as e:
        fields = ", ".join(
            f"ESPACE_SCAN_{str(error['loc'][0]).upper()}" for error in e.errors() if error['loc']
        )
        raise ConfigurationError(f"Invalid settings value: {fields or e}") from e


@dataclass(frozen=True)
class ScanConfig:
    """Fully resolved, read-only configuration shared by every negotiation."""

    address_range: AddressRange
    accounts: tuple[Account, ...]
    schemes: tuple[ConnectionScheme, ...]
    encodings: tuple[PasswordEncoding, ...]
    ping_timeout: int = 1
    probe: str = "icmp"
    http_timeout: float = 5.0
    verify_tls: bool = False
    workers: int = 1
    export_enabled: bool = False
    export_dir: Path = Path(".")
    export_filename_template: str = DEFAULT_EXPORT_FILENAME_TEMPLATE
    report_path: Path | None = None
    log_secrets: bool = False
    progress_interval: int = 5

    def export_path(self, serial_number: str) -> Path:
        """Destination for a device's exported configuration."""
        safe_serial = "".join(c for c in serial_number if c.isalnum() or c in "-_.")
        return self.export_dir / self.export_filename_template.format(serial=safe_serial)


def resolve_schemes(secure: bool = False, insecure: bool = False) -> tuple[ConnectionScheme, ...]:
    """Pick the connection scheme order from the CLI intent."""
    if secure and insecure:
        raise ConfigurationError("--secure and --insecure are mutually exclusive")
    if insecure:
        return (INSECURE,)
    if secure:
        return (SECURE,)
    return (SECURE, INSECURE)


def resolve_encodings(forced: str | None = None) -> tuple[PasswordEncoding, ...]:
    """Pick the password encoding order; a forced mode replaces the default order."""
    if forced is None:
        return DEFAULT_PASSWORD_ENCODINGS
    try:
        return (PasswordEncoding(forced),)
    except ValueError:
        valid = ", ".join(e.value for e in PasswordEncoding)
        raise ConfigurationError(f"Invalid password mode {forced!r} (expected one of {valid})") from None


def resolve_timeout(value: object) -> int:
    """Validate the liveness timeout: a whole number of seconds, 0 disables probing."""
    if isinstance(value, bool):
        raise ConfigurationError("Invalid ping timeout value.")
    timeout = parse_int(value)
    if timeout is None or str(value).strip() != str(timeout) or timeout < 0:
        raise ConfigurationError("Invalid ping timeout value.")
    return timeout


def build_scan_config(
    start_ip: str,
    end_ip: str,
    settings: ScanSettings,
    *,
    secure: bool = False,
    insecure: bool = False,
    hash_password: str | None = None,
    username: str | None = None,
    password: str | None = None,
    accounts_file: str | None = None,
    timeout: object = None,
    probe: str | None = None,
    download: bool = False,
    export_dir: str | None = None,
    write: str | None = None,
    workers: int | None = None,
    http_timeout: float | None = None,
) -> ScanConfig:
    """Validate command line input against the settings and resolve a ScanConfig.

    Raises:
        ConfigurationError: For any invalid address, range, option or accounts file
    """
    address_range = AddressRange.from_strings(start_ip, end_ip)
    schemes = resolve_schemes(secure=secure, insecure=insecure)
    encodings = resolve_encodings(hash_password)
    ping_timeout = resolve_timeout(settings.ping_timeout if timeout is None else timeout)

    probe_name = probe or settings.probe
    if probe_name not in ("icmp", "tcp"):
        raise ConfigurationError(f"Invalid liveness probe: {probe_name}")

    worker_count = settings.workers if workers is None else workers
    if worker_count < 1:
        raise ConfigurationError("Workers must be at least 1")

    request_timeout = settings.http_timeout if http_timeout is None else http_timeout
    if request_timeout <= 0:
        raise ConfigurationError("HTTP timeout must be greater than 0")

    if password is not None and not username:
        raise ConfigurationError("--password requires --username")

    if username:
        accounts = accounts_from_credentials(username, password)
    else:
        accounts = load_accounts(accounts_file or settings.accounts_file)

    return ScanConfig(
        address_range=address_range,
        accounts=tuple(accounts),
        schemes=schemes,
        encodings=encodings,
        ping_timeout=ping_timeout,
        probe=probe_name,
        http_timeout=request_timeout,
        verify_tls=settings.verify_tls,
        workers=worker_count,
        export_enabled=download,
        export_dir=Path(export_dir or settings.export_dir),
        export_filename_template=settings.export_filename_template,
        report_path=Path(write) if write else None,
        log_secrets=settings.log_secrets,
        progress_interval=settings.progress_interval,
    )
