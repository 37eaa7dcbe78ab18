"""Data models for the eSpace scanner."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from espace_scan.utils import ConfigurationError, parse_ipv4


@dataclass(frozen=True)
class AddressRange:
    """Inclusive IPv4 interval, stored as 32-bit integers."""

    start: int
    end: int

    def __post_init__(self) -> None:
        for value in (self.start, self.end):
            if not 0 <= value <= 0xFFFFFFFF:
                raise ConfigurationError(f"IPv4 address out of range: {value}")
        if self.end <= self.start:
            raise ConfigurationError(
                f"Invalid IP range: {ipaddress.IPv4Address(self.start)} -> "
                f"{ipaddress.IPv4Address(self.end)}"
            )

    @classmethod
    def from_strings(cls, start_ip: str, end_ip: str) -> AddressRange:
        """Build a range from two dotted-quad addresses."""
        return cls(start=int(parse_ipv4(start_ip)), end=int(parse_ipv4(end_ip)))

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __iter__(self) -> Iterator[str]:
        for value in range(self.start, self.end + 1):
            yield str(ipaddress.IPv4Address(value))

    def __str__(self) -> str:
        return f"{ipaddress.IPv4Address(self.start)} -> {ipaddress.IPv4Address(self.end)}"


@dataclass(frozen=True)
class Account:
    """One candidate credential pair."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"Account(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class ConnectionScheme:
    """Transport variant to try against a device."""

    name: str  # secure or insecure
    url_scheme: str  # https or http

    def endpoint(self, ip: str) -> str:
        return f"{self.url_scheme}://{ip}"


SECURE = ConnectionScheme(name="secure", url_scheme="https")
INSECURE = ConnectionScheme(name="insecure", url_scheme="http")


class PasswordEncoding(str, Enum):
    """How a plaintext password is transformed before submission."""

    BASE64_ALT = "base64-alt"
    BASE64 = "base64"
    DIGEST = "digest"
    PLAIN = "plain"


DEFAULT_PASSWORD_ENCODINGS = (
    PasswordEncoding.BASE64_ALT,
    PasswordEncoding.BASE64,
    PasswordEncoding.DIGEST,
)


@dataclass(frozen=True)
class NegotiationAttempt:
    """One step of the per-address search.

    A ``session`` step opens a client for (account, scheme) and asks for a
    session handle. A ``credential`` step submits the account's password in
    one encoding to the session opened by the preceding successful step.
    """

    stage: str  # session or credential
    account: Account
    account_index: int  # 1-based position in the account list
    scheme: ConnectionScheme
    encoding: PasswordEncoding | None = None
    success: bool | None = None
    session_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a liveness probe."""

    reachable: bool
    rtt_ms: float | None = None


@dataclass(frozen=True)
class SessionResponse:
    """Result of a session request."""

    success: bool
    session_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class CertificateResponse:
    """Result of a credential submission."""

    success: bool
    error: str | None = None


@dataclass(frozen=True)
class VersionInfoResponse:
    """Result of an identity request."""

    success: bool
    identity: dict[str, Any] | None = None
    error: str | None = None


@dataclass(frozen=True)
class ExportResponse:
    """Result of a configuration export."""

    success: bool
    path: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class DeviceRecord:
    """A confirmed, authenticated device."""

    ip: str
    serial_number: str
    main_software_version: str
    boot_version: str
    hardware_version: str
    build_version: str

    @classmethod
    def from_version_info(cls, ip: str, info: dict[str, Any]) -> DeviceRecord:
        """Build a record from the device's ``stMainVersionInfo`` object.

        Raises:
            KeyError: If the serial number is missing
        """
        return cls(
            ip=ip,
            serial_number=str(info["szSN"]),
            main_software_version=str(info.get("szMainSoftWareVersion", "")),
            boot_version=str(info.get("szBootVersion", "")),
            hardware_version=str(info.get("szHardWareVersion", "")),
            build_version=str(info.get("szBuildVersion", "")),
        )

    def report_fields(self) -> tuple[str, ...]:
        return (
            self.ip,
            self.serial_number,
            self.main_software_version,
            self.boot_version,
            self.hardware_version,
            self.build_version,
        )


class AddressStatus(str, Enum):
    """Final status of one address."""

    FOUND = "found"
    UNREACHABLE = "unreachable"
    NO_SESSION = "no_session"
    AUTH_FAILED = "auth_failed"
    IDENTITY_FAILED = "identity_failed"
    ERROR = "error"


@dataclass(frozen=True)
class AddressOutcome:
    """Everything the negotiation learned about one address."""

    ip: str
    status: AddressStatus
    record: DeviceRecord | None = None
    attempt: NegotiationAttempt | None = None
    export_status: str | None = None  # exported or export_failed
    rtt_ms: float | None = None
    error: str | None = None


@dataclass
class ScanResult:
    """Aggregate of one scan run."""

    records: list[DeviceRecord] = field(default_factory=list)
    addresses_total: int = 0
    addresses_probed: int = 0
    unreachable: int = 0
    export_failures: int = 0
    cancelled: bool = False
    duration_seconds: float = 0.0
