"""Shared fixtures: in-memory devices standing in for the eSpace web protocol."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Callable
from urllib.parse import urlsplit

import pytest

from espace_scan.config import ScanConfig
from espace_scan.models import (
    DEFAULT_PASSWORD_ENCODINGS,
    INSECURE,
    SECURE,
    Account,
    AddressRange,
    CertificateResponse,
    ExportResponse,
    ProbeResult,
    SessionResponse,
    VersionInfoResponse,
)


def version_info(serial: str) -> dict[str, Any]:
    return {
        "szSN": serial,
        "szMainSoftWareVersion": "V200R003C00",
        "szBootVersion": "V100R001",
        "szHardWareVersion": "HW-7910",
        "szBuildVersion": "B012",
    }


@dataclass
class FakeDevice:
    """Behaviour of one simulated phone."""

    session_schemes: frozenset[str] = frozenset({"https", "http"})
    session_users: frozenset[str] | None = None  # None accepts every username
    accepted: frozenset[tuple[str, str]] = frozenset()  # (username, encoded password)
    identity: dict[str, Any] | None = None
    export_ok: bool = True
    export_error: Exception | None = None  # raised by the export call when set
    session_id: str = "abc"
    delay: float = 0.0


class FakeClient:
    """DeviceProtocolClient backed by a FakeDevice."""

    def __init__(self, factory: FakeClientFactory, endpoint_url: str, device: FakeDevice | None) -> None:
        self._factory = factory
        self.endpoint_url = endpoint_url
        self._device = device
        self._session_id: str | None = None
        self._authenticated = False
        self.closed = False

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def request_session(self, username: str) -> SessionResponse:
        self._factory.record("session", self.endpoint_url, username)
        device = self._device
        if device is not None and device.delay:
            time.sleep(device.delay)
        if device is None or urlsplit(self.endpoint_url).scheme not in device.session_schemes:
            return SessionResponse(success=False, error="ConnectError")
        if device.session_users is not None and username not in device.session_users:
            return SessionResponse(success=False, error="retcode 1")
        self._session_id = device.session_id
        return SessionResponse(success=True, session_id=device.session_id)

    def request_certificate(self, username: str, encoded_password: str) -> CertificateResponse:
        self._factory.record("certificate", self.endpoint_url, username, encoded_password)
        assert self._device is not None
        if (username, encoded_password) in self._device.accepted:
            self._authenticated = True
            return CertificateResponse(success=True)
        return CertificateResponse(success=False, error="retcode 2")

    def request_version_info(self) -> VersionInfoResponse:
        self._factory.record("version", self.endpoint_url)
        assert self._device is not None and self._authenticated
        if self._device.identity is None:
            return VersionInfoResponse(success=False, error="HTTP 500")
        return VersionInfoResponse(success=True, identity=dict(self._device.identity))

    def request_export_config(self, destination: str | Path) -> ExportResponse:
        self._factory.record("export", self.endpoint_url, str(destination))
        assert self._device is not None
        if self._device.export_error is not None:
            raise self._device.export_error
        if not self._device.export_ok:
            return ExportResponse(success=False, path=str(destination), error="HTTP 404")
        Path(destination).write_text("<config/>", encoding="utf-8")
        return ExportResponse(success=True, path=str(destination))

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._factory.record("close", self.endpoint_url)
        self._factory.release()


class FakeClientFactory:
    """Client factory recording every protocol call in order."""

    def __init__(self, devices: dict[str, FakeDevice] | None = None) -> None:
        self.devices = devices or {}
        self.calls: list[tuple[Any, ...]] = []
        self.clients: list[FakeClient] = []
        self.open_clients = 0
        self.max_open_clients = 0
        self._lock = Lock()

    def __call__(self, endpoint_url: str) -> FakeClient:
        host = urlsplit(endpoint_url).hostname or ""
        client = FakeClient(self, endpoint_url, self.devices.get(host))
        with self._lock:
            self.clients.append(client)
            self.open_clients += 1
            self.max_open_clients = max(self.max_open_clients, self.open_clients)
        self.record("open", endpoint_url)
        return client

    def record(self, *call: Any) -> None:
        with self._lock:
            self.calls.append(call)

    def release(self) -> None:
        with self._lock:
            self.open_clients -= 1

    def calls_of(self, kind: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == kind]


class FakeProbe:
    """Liveness probe answering from a fixed set of reachable addresses."""

    def __init__(self, reachable: set[str] | None = None) -> None:
        self.reachable = reachable or set()
        self.probed: list[tuple[str, float]] = []

    def probe(self, ip: str, timeout: float) -> ProbeResult:
        self.probed.append((ip, timeout))
        if ip in self.reachable:
            return ProbeResult(reachable=True, rtt_ms=0.42)
        return ProbeResult(reachable=False)


@pytest.fixture()
def logger() -> logging.Logger:
    return logging.getLogger("test")


@pytest.fixture()
def accounts() -> list[Account]:
    return [
        Account(username="admin", password="admin123"),
        Account(username="user", password="user"),
    ]


@pytest.fixture()
def make_config(accounts: list[Account], tmp_path: Path) -> Callable[..., ScanConfig]:
    """Build a ScanConfig with test-friendly defaults (no probe, no progress thread)."""

    def _make(
        start_ip: str = "10.0.0.1",
        end_ip: str = "10.0.0.3",
        **overrides: Any,
    ) -> ScanConfig:
        values: dict[str, Any] = {
            "address_range": AddressRange.from_strings(start_ip, end_ip),
            "accounts": tuple(accounts),
            "schemes": (SECURE, INSECURE),
            "encodings": DEFAULT_PASSWORD_ENCODINGS,
            "ping_timeout": 0,
            "export_dir": tmp_path,
            "progress_interval": 0,
        }
        values.update(overrides)
        return ScanConfig(**values)

    return _make
