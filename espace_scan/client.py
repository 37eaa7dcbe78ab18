"""HTTP client for the eSpace phone web protocol."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Protocol

import httpx

from espace_scan.models import (
    CertificateResponse,
    ExportResponse,
    SessionResponse,
    VersionInfoResponse,
)

# Constants
REQUEST_TIMEOUT_SECONDS = 5.0
ACTION_PATH = "/action.cgi"
ACTION_REQUEST_SESSION = "WEB_RequestSessionIDAPI"
ACTION_REQUEST_CERTIFICATE = "WEB_RequestCertificateAPI"
ACTION_VERSION_INFO = "WEB_GetVersionInfoAPI"
ACTION_EXPORT_CONFIG = "WEB_ExportConfigurationAPI"
SESSION_COOKIE = "SessionID"
RETCODE_OK = 0

logger = logging.getLogger(__name__)


class DeviceProtocolClient(Protocol):
    """One session against one device endpoint.

    Every ``request_*`` call reports failure through its response object;
    a refused session or credential is an expected outcome, not an error.
    """

    @property
    def session_id(self) -> str | None:
        ...

    def request_session(self, username: str) -> SessionResponse:
        ...

    def request_certificate(self, username: str, encoded_password: str) -> CertificateResponse:
        ...

    def request_version_info(self) -> VersionInfoResponse:
        ...

    def request_export_config(self, destination: str | Path) -> ExportResponse:
        ...

    def close(self) -> None:
        ...


ClientFactory = Callable[[str], DeviceProtocolClient]


class EspaceClient:
    """httpx-backed implementation of the eSpace session protocol."""

    def __init__(
        self,
        endpoint_url: str,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        verify_tls: bool = False,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._endpoint_url = endpoint_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self._endpoint_url,
            timeout=timeout,
            verify=verify_tls,
            transport=transport,
        )
        self._session_id: str | None = None

    @property
    def endpoint_url(self) -> str:
        return self._endpoint_url

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def close(self) -> None:
        """Close the HTTP client and drop the session."""
        self._session_id = None
        self._client.close()

    def __enter__(self) -> EspaceClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def request_session(self, username: str) -> SessionResponse:
        """Ask the device for a session handle bound to ``username``."""
        payload, error = self._call(ACTION_REQUEST_SESSION, {"szUserName": username})
        if payload is None:
            return SessionResponse(success=False, error=error)

        session_id = payload.get("szSessionID") or self._client.cookies.get(SESSION_COOKIE)
        if not session_id:
            return SessionResponse(success=False, error="No session id in response")
        self._session_id = str(session_id)
        return SessionResponse(success=True, session_id=self._session_id)

    def request_certificate(self, username: str, encoded_password: str) -> CertificateResponse:
        """Submit an encoded password to the current session."""
        if self._session_id is None:
            return CertificateResponse(success=False, error="No session established")
        payload, error = self._call(
            ACTION_REQUEST_CERTIFICATE,
            {"szUserName": username, "szPassword": encoded_password},
        )
        if payload is None:
            return CertificateResponse(success=False, error=error)
        return CertificateResponse(success=True)

    def request_version_info(self) -> VersionInfoResponse:
        """Read the device identity (``stMainVersionInfo``)."""
        payload, error = self._call(ACTION_VERSION_INFO, {})
        if payload is None:
            return VersionInfoResponse(success=False, error=error)

        info = payload.get("stMainVersionInfo")
        if not isinstance(info, dict) or not info.get("szSN"):
            return VersionInfoResponse(success=False, error="Missing stMainVersionInfo in response")
        return VersionInfoResponse(success=True, identity=info)

    def request_export_config(self, destination: str | Path) -> ExportResponse:
        """Download the XML configuration to ``destination``."""
        path = Path(destination)
        try:
            response = self._post(ACTION_EXPORT_CONFIG, {})
        except httpx.HTTPError as exc:
            return ExportResponse(success=False, path=str(path), error=str(exc))

        if response.status_code != 200:
            return ExportResponse(
                success=False, path=str(path), error=f"HTTP {response.status_code}"
            )
        if "json" in response.headers.get("content-type", ""):
            # The device answers with a JSON error object instead of the file.
            payload, error = self._parse(response)
            return ExportResponse(
                success=False, path=str(path), error=error or f"Unexpected reply: {payload}"
            )
        if not response.content:
            return ExportResponse(success=False, path=str(path), error="Empty configuration")

        try:
            path.write_bytes(response.content)
        except OSError as exc:
            return ExportResponse(success=False, path=str(path), error=str(exc))
        return ExportResponse(success=True, path=str(path))

    def _post(self, action: str, body: dict[str, Any]) -> httpx.Response:
        headers = {}
        if self._session_id:
            headers["X-Session-ID"] = self._session_id
        return self._client.post(
            ACTION_PATH, params={"ActionID": action}, json=body, headers=headers
        )

    def _call(self, action: str, body: dict[str, Any]) -> tuple[dict[str, Any] | None, str | None]:
        """POST an action and return (payload, None) on success or (None, error)."""
        try:
            response = self._post(action, body)
        except httpx.HTTPError as exc:
            logger.debug("%s %s failed: %s", self._endpoint_url, action, exc)
            return None, f"{type(exc).__name__}: {exc}"

        if response.status_code != 200:
            return None, f"HTTP {response.status_code}"
        return self._parse(response)

    @staticmethod
    def _parse(response: httpx.Response) -> tuple[dict[str, Any] | None, str | None]:
        try:
            payload = response.json()
        except ValueError:
            return None, "Invalid JSON response"
        if not isinstance(payload, dict):
            return None, "Unexpected response payload"

        retcode = payload.get("retcode", RETCODE_OK)
        try:
            retcode = int(retcode)
        except (TypeError, ValueError):
            return None, f"Invalid retcode: {retcode!r}"
        if retcode != RETCODE_OK:
            return None, f"retcode {retcode}"
        return payload, None


def open_client(
    endpoint_url: str,
    *,
    timeout: float = REQUEST_TIMEOUT_SECONDS,
    verify_tls: bool = False,
) -> EspaceClient:
    """Bind a client to one scheme and address; no network I/O happens here."""
    return EspaceClient(endpoint_url, timeout=timeout, verify_tls=verify_tls)
