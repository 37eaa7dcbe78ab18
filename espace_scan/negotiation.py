"""Per-address credential negotiation.

For one address the search runs, in order:

1. an optional liveness probe (skipped when the timeout is 0);
2. for each account, each connection scheme until one yields a session;
3. within that session, each password encoding until one is accepted.

The first accepted combination wins and ends the search for the address.
Only one client is open at a time and it is closed before the next session
attempt, whatever the outcome of the previous one.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Generator, Sequence

from espace_scan.client import ClientFactory, DeviceProtocolClient
from espace_scan.config import ScanConfig
from espace_scan.liveness import LivenessProbe
from espace_scan.models import (
    Account,
    AddressOutcome,
    AddressStatus,
    ConnectionScheme,
    DeviceRecord,
    NegotiationAttempt,
    PasswordEncoding,
)
from espace_scan.passwords import encode_password
from espace_scan.utils import mask_secret

STAGE_SESSION = "session"
STAGE_CREDENTIAL = "credential"
EXPORT_OK = "exported"
EXPORT_FAILED = "export_failed"

SearchPlan = Generator[NegotiationAttempt, bool, None]


def search_plan(
    accounts: Sequence[Account],
    schemes: Sequence[ConnectionScheme],
    encodings: Sequence[PasswordEncoding],
) -> SearchPlan:
    """Yield negotiation steps in search order.

    The caller sends back whether each step succeeded. A successful session
    step moves on to the encodings for that account; a successful credential
    step ends the plan.
    """
    for index, account in enumerate(accounts, start=1):
        session_open = False
        for scheme in schemes:
            succeeded = yield NegotiationAttempt(
                stage=STAGE_SESSION,
                account=account,
                account_index=index,
                scheme=scheme,
            )
            if succeeded:
                session_open = True
                break
        if not session_open:
            continue

        for encoding in encodings:
            succeeded = yield NegotiationAttempt(
                stage=STAGE_CREDENTIAL,
                account=account,
                account_index=index,
                scheme=scheme,
                encoding=encoding,
            )
            if succeeded:
                return


class NegotiationEngine:
    """Find a working (account, scheme, encoding) combination for one address."""

    def __init__(
        self,
        config: ScanConfig,
        client_factory: ClientFactory,
        probe: LivenessProbe | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._client_factory = client_factory
        self._probe = probe
        self._logger = logger or logging.getLogger(__name__)
        self._total_accounts = len(config.accounts)

    def negotiate(self, ip: str) -> DeviceRecord | None:
        """Return the device record for ``ip``, or None if nothing was found."""
        return self.negotiate_address(ip).record

    def negotiate_address(self, ip: str) -> AddressOutcome:
        """Run the full search for one address.

        Never raises: anything unexpected is logged and reported as an
        ``error`` outcome for this address only.
        """
        try:
            return self._negotiate(ip)
        except Exception as exc:
            self._logger.exception("Unexpected failure while scanning %s", ip)
            return AddressOutcome(ip=ip, status=AddressStatus.ERROR, error=str(exc))

    def _negotiate(self, ip: str) -> AddressOutcome:
        rtt_ms: float | None = None
        if self._config.ping_timeout > 0:
            if self._probe is None:
                raise RuntimeError("Liveness timeout configured without a probe")
            result = self._probe.probe(ip, self._config.ping_timeout)
            if not result.reachable:
                self._logger.debug('Device "%s" ping timeout.', ip)
                return AddressOutcome(ip=ip, status=AddressStatus.UNREACHABLE)
            rtt_ms = result.rtt_ms
            self._logger.debug('Device "%s" ping reply %s ms', ip, rtt_ms)

        client: DeviceProtocolClient | None = None
        winner: NegotiationAttempt | None = None
        any_session = False
        try:
            plan = search_plan(self._config.accounts, self._config.schemes, self._config.encodings)
            step = next(plan, None)
            while step is not None:
                if step.stage == STAGE_SESSION:
                    if client is not None:
                        client.close()
                        client = None
                    client, succeeded = self._open_session(ip, step)
                    any_session = any_session or succeeded
                else:
                    if client is None:
                        raise RuntimeError("Credential step without an open session")
                    succeeded = self._submit_credential(ip, client, step)
                    if succeeded:
                        winner = replace(step, success=True, session_id=client.session_id)

                try:
                    step = plan.send(succeeded)
                except StopIteration:
                    step = None

            if winner is None or client is None:
                status = AddressStatus.AUTH_FAILED if any_session else AddressStatus.NO_SESSION
                return AddressOutcome(ip=ip, status=status, rtt_ms=rtt_ms)

            return self._collect_identity(ip, client, winner, rtt_ms)
        finally:
            if client is not None:
                client.close()

    def _open_session(
        self, ip: str, step: NegotiationAttempt
    ) -> tuple[DeviceProtocolClient | None, bool]:
        username = step.account.username
        client = self._client_factory(step.scheme.endpoint(ip))
        try:
            response = client.request_session(username)
        except Exception:
            client.close()
            raise
        self._logger.debug("requestSession(%s) = %s", ip, response)

        attempt = f"{step.account_index}/{self._total_accounts}"
        if not response.success:
            client.close()
            self._logger.debug(
                'Failed connection to device "%s" using %s mode with username "%s" at attempt %s.',
                ip,
                step.scheme.name,
                username,
                attempt,
            )
            return None, False

        self._logger.info(
            'SUCCESSFUL connection to device "%s" using %s mode with username "%s" at attempt %s.',
            ip,
            step.scheme.name,
            username,
            attempt,
        )
        return client, True

    def _submit_credential(
        self, ip: str, client: DeviceProtocolClient, step: NegotiationAttempt
    ) -> bool:
        encoding = step.encoding
        if encoding is None:
            raise RuntimeError("Credential step without a password encoding")
        account = step.account
        encoded = encode_password(
            encoding, account.username, account.password, client.session_id
        )
        response = client.request_certificate(account.username, encoded)
        self._logger.debug("requestCertificate(%s) = %s", ip, response)

        shown = encoded if self._config.log_secrets else mask_secret(encoded)
        attempt = f"{step.account_index}/{self._total_accounts}"
        if not response.success:
            self._logger.debug(
                'Failed %s login to "%s" using "%s:%s" at attempt %s',
                encoding.value,
                ip,
                account.username,
                shown,
                attempt,
            )
            return False

        self._logger.info(
            'SUCCESSFUL %s login to "%s" using "%s:%s" at attempt %s',
            encoding.value,
            ip,
            account.username,
            shown,
            attempt,
        )
        return True

    def _collect_identity(
        self,
        ip: str,
        client: DeviceProtocolClient,
        winner: NegotiationAttempt,
        rtt_ms: float | None,
    ) -> AddressOutcome:
        response = client.request_version_info()
        self._logger.debug("requestVersionInfo(%s) = %s", ip, response)

        record: DeviceRecord | None = None
        if response.success and response.identity is not None:
            try:
                record = DeviceRecord.from_version_info(ip, response.identity)
            except KeyError:
                record = None
        if record is None:
            self._logger.error("Cannot get hardware information for %s.", ip)
            return AddressOutcome(
                ip=ip,
                status=AddressStatus.IDENTITY_FAILED,
                attempt=winner,
                rtt_ms=rtt_ms,
                error=response.error,
            )

        self._logger.info("eSpace device found at %s", ip)
        self._logger.info(
            "Hardware Information ="
            "\n\tMain SoftWare Version: %s"
            "\n\tBoot Version:          %s"
            "\n\tHardWare Version:      %s"
            "\n\tSerial Number:         %s"
            "\n\tBuild Version:         %s",
            record.main_software_version,
            record.boot_version,
            record.hardware_version,
            record.serial_number,
            record.build_version,
        )

        export_status: str | None = None
        if self._config.export_enabled:
            export_status = self._export(ip, client, record)

        return AddressOutcome(
            ip=ip,
            status=AddressStatus.FOUND,
            record=record,
            attempt=winner,
            export_status=export_status,
            rtt_ms=rtt_ms,
        )

    def _export(self, ip: str, client: DeviceProtocolClient, record: DeviceRecord) -> str:
        destination = self._config.export_path(record.serial_number)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self._logger.error(
                "Cannot download xml file to %s for %s: %s", destination, ip, exc
            )
            return EXPORT_FAILED

        try:
            response = client.request_export_config(destination)
        except Exception as exc:
            self._logger.error(
                "Cannot download xml file to %s for %s: %s", destination, ip, exc
            )
            return EXPORT_FAILED
        if not response.success:
            self._logger.error(
                "Cannot download xml file to %s for %s: %s",
                destination,
                ip,
                response.error or "unknown error",
            )
            return EXPORT_FAILED

        self._logger.info("Downloaded xml file to %s for %s.", destination, ip)
        return EXPORT_OK
