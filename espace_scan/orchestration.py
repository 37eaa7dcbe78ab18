"""Range scanning and result aggregation."""

from __future__ import annotations

import ipaddress
import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from threading import Lock

from espace_scan.client import ClientFactory, open_client
from espace_scan.config import ScanConfig
from espace_scan.liveness import LivenessProbe, create_probe
from espace_scan.models import AddressOutcome, AddressStatus, ScanResult
from espace_scan.negotiation import EXPORT_FAILED, NegotiationEngine
from espace_scan.report import write_report
from espace_scan.threading_utils import CancellationToken, ProgressReporter

# Futures kept in flight per worker when scanning concurrently
PENDING_PER_WORKER = 2


class ScanOrchestrator:
    """Drive the negotiation engine across an address range."""

    def __init__(
        self,
        config: ScanConfig,
        engine: NegotiationEngine,
        logger: logging.Logger,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self._config = config
        self._engine = engine
        self._logger = logger
        self._cancel_token = cancel_token or CancellationToken()
        self._lock = Lock()
        self._outcomes: dict[int, AddressOutcome] = {}

    def run(self) -> ScanResult:
        """Scan every address in the range and return the aggregated result.

        Addresses are independent; the result lists devices in ascending
        address order whatever the completion order was.
        """
        address_range = self._config.address_range
        self._outcomes = {}
        started = time.monotonic()

        self._logger.info('Scanning IP range "%s" ...', address_range)
        progress_reporter = ProgressReporter(
            self._logger, len(address_range), interval=self._config.progress_interval
        )
        progress_reporter.start()
        try:
            if self._config.workers > 1:
                self._run_concurrent(progress_reporter)
            else:
                self._run_sequential(progress_reporter)
        finally:
            progress_reporter.stop()
            progress_reporter.join()

        result = self._aggregate()
        result.duration_seconds = time.monotonic() - started

        if result.cancelled:
            self._logger.warning(
                "Scan cancelled after %d/%d address(es).",
                result.addresses_probed,
                result.addresses_total,
            )
        self._logger.info(
            "Finished. Scan found %d eSpace device(s) in %.1fs.",
            len(result.records),
            result.duration_seconds,
        )
        if result.export_failures:
            self._logger.warning(
                "Configuration export failed for %d device(s).", result.export_failures
            )

        report_path = self._config.report_path
        if result.records and report_path is not None:
            write_report(result.records, report_path)
            self._logger.info('Scan result written to file "%s"', report_path)

        return result

    def _run_sequential(self, progress_reporter: ProgressReporter) -> None:
        for ip in self._config.address_range:
            if self._cancel_token.cancelled:
                break
            self._scan_address(ip, progress_reporter)

    def _run_concurrent(self, progress_reporter: ProgressReporter) -> None:
        max_pending = self._config.workers * PENDING_PER_WORKER
        pending: set[Future[None]] = set()

        with ThreadPoolExecutor(max_workers=self._config.workers) as executor:
            for ip in self._config.address_range:
                if self._cancel_token.cancelled:
                    break
                if len(pending) >= max_pending:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    self._check_futures(done)
                    if self._cancel_token.cancelled:
                        break
                pending.add(executor.submit(self._scan_address, ip, progress_reporter))

            done, _ = wait(pending)
            self._check_futures(done)

    def _check_futures(self, done: set[Future[None]]) -> None:
        for future in done:
            exc = future.exception()
            if exc is not None:
                self._logger.error("Address worker failed: %s", exc)

    def _scan_address(self, ip: str, progress_reporter: ProgressReporter) -> None:
        # Queued work does not start once the scan is cancelled.
        if self._cancel_token.cancelled:
            return
        outcome = self._engine.negotiate_address(ip)
        with self._lock:
            self._outcomes[int(ipaddress.IPv4Address(ip))] = outcome
        progress_reporter.advance(found=outcome.record is not None)

    def _aggregate(self) -> ScanResult:
        with self._lock:
            outcomes = [self._outcomes[key] for key in sorted(self._outcomes)]

        result = ScanResult(
            addresses_total=len(self._config.address_range),
            addresses_probed=len(outcomes),
            cancelled=self._cancel_token.cancelled,
        )
        for outcome in outcomes:
            if outcome.status is AddressStatus.UNREACHABLE:
                result.unreachable += 1
            if outcome.export_status == EXPORT_FAILED:
                result.export_failures += 1
            if outcome.record is not None:
                result.records.append(outcome.record)
        return result


def create_orchestrator(
    config: ScanConfig,
    logger: logging.Logger,
    cancel_token: CancellationToken | None = None,
    client_factory: ClientFactory | None = None,
    probe: LivenessProbe | None = None,
) -> ScanOrchestrator:
    """Wire the default collaborators (httpx client, configured probe) for a run."""
    if client_factory is None:

        def client_factory(endpoint_url: str):
            return open_client(
                endpoint_url, timeout=config.http_timeout, verify_tls=config.verify_tls
            )

    if probe is None and config.ping_timeout > 0:
        probe = create_probe(config.probe)

    engine = NegotiationEngine(config, client_factory, probe=probe, logger=logger)
    return ScanOrchestrator(config, engine, logger, cancel_token=cancel_token)
