"""Threading utilities for the eSpace scanner."""

from __future__ import annotations

import logging
import signal
from threading import Event, Lock, Thread
from types import FrameType
from typing import Any

# Constants
PROGRESS_REPORT_INTERVAL_SECONDS = 5


class CancellationToken:
    """Cooperative cancellation flag checked between addresses."""

    def __init__(self) -> None:
        self._event = Event()
        self._previous_handler: Any = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def install_signal_handler(self, logger: logging.Logger) -> None:
        """Cancel on the first SIGINT; a second SIGINT interrupts immediately."""

        def handler(signum: int, frame: FrameType | None) -> None:
            if self.cancelled:
                signal.signal(signal.SIGINT, signal.default_int_handler)
                raise KeyboardInterrupt
            logger.warning(
                "Interrupt received; finishing in-flight addresses (press Ctrl+C again to abort)"
            )
            self.cancel()

        self._previous_handler = signal.signal(signal.SIGINT, handler)

    def restore_signal_handler(self) -> None:
        if self._previous_handler is not None:
            signal.signal(signal.SIGINT, self._previous_handler)
            self._previous_handler = None


class ProgressReporter(Thread):
    """Background thread that logs scan progress at a fixed interval."""

    def __init__(
        self,
        logger: logging.Logger,
        total: int,
        interval: int = PROGRESS_REPORT_INTERVAL_SECONDS,
    ) -> None:
        super().__init__(daemon=True)
        self._logger = logger
        self._total = max(total, 1)
        self._interval = interval
        self._stop_event = Event()
        self._lock = Lock()
        self._completed = 0
        self._found = 0
        self._last_reported: tuple[int, int] | None = None

    def stop(self) -> None:
        """Stop the progress reporter thread."""
        self._stop_event.set()

    def advance(self, found: bool = False) -> None:
        """Record one finished address (thread-safe)."""
        with self._lock:
            self._completed += 1
            if found:
                self._found += 1

    def run(self) -> None:
        if self._interval <= 0:
            return
        while not self._stop_event.wait(self._interval):
            self._report()

    def _report(self) -> None:
        with self._lock:
            snapshot = (self._completed, self._found)

        # Only report if progress changed
        if snapshot == self._last_reported:
            return
        self._last_reported = snapshot
        completed, found = snapshot
        self._logger.info(
            "Progress: %d/%d addresses (%.1f%%), %d device(s) found",
            completed,
            self._total,
            (completed / self._total) * 100.0,
            found,
        )
