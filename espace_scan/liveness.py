"""Liveness probes run before any authentication traffic is sent to a host."""

from __future__ import annotations

import logging
import platform
import re
import shutil
import socket
import subprocess
import time
from typing import Protocol, Sequence

from espace_scan.models import ProbeResult
from espace_scan.utils import format_command

# Extra seconds granted to the ping process on top of its own reply wait
PING_PROCESS_GRACE_SECONDS = 2
DEFAULT_TCP_PROBE_PORTS = (443, 80)

PING_LATENCY_PATTERN = re.compile(r"time[=<]\s*([0-9]+(?:\.[0-9]+)?)\s*(ms|s|us)?", re.IGNORECASE)

logger = logging.getLogger(__name__)


class LivenessProbe(Protocol):
    """Reachability check with a bounded timeout."""

    def probe(self, ip: str, timeout: float) -> ProbeResult:
        ...


def build_ping_command(ping_path: str, ip: str, timeout: float, system: str | None = None) -> list[str]:
    """Build a single-echo ping command for the current platform.

    Args:
        ping_path: Path to the ping binary
        ip: Target address
        timeout: Reply wait in seconds
        system: Platform name override (defaults to platform.system())

    Returns:
        Command argument list
    """
    system_name = (system or platform.system()).lower()
    if system_name == "windows":
        return [ping_path, "-n", "1", "-w", str(int(timeout * 1000)), ip]
    if system_name == "darwin":
        return [ping_path, "-n", "-c", "1", "-W", str(int(timeout * 1000)), ip]
    return [ping_path, "-n", "-c", "1", "-W", str(max(1, int(round(timeout)))), ip]


def parse_ping_latency(output: str) -> float | None:
    """Extract the round-trip time in milliseconds from ping output."""
    match = PING_LATENCY_PATTERN.search(output)
    if not match:
        return None
    value = float(match.group(1))
    unit = (match.group(2) or "ms").lower()
    if unit == "s":
        return value * 1000.0
    if unit == "us":
        return value / 1000.0
    return value


class PingProbe:
    """ICMP echo through the system ping binary.

    Uses the setuid/capability-enabled ``ping`` so the scanner itself does
    not need raw socket privileges.
    """

    def __init__(self, ping_path: str | None = None) -> None:
        self._ping_path = ping_path or shutil.which("ping")

    def probe(self, ip: str, timeout: float) -> ProbeResult:
        if not self._ping_path:
            logger.warning("ping command not found; treating %s as unreachable", ip)
            return ProbeResult(reachable=False)

        command = build_ping_command(self._ping_path, ip, timeout)
        logger.debug("Ping command: %s", format_command(command))

        start = time.monotonic()
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout + PING_PROCESS_GRACE_SECONDS,
            )
        except subprocess.TimeoutExpired:
            return ProbeResult(reachable=False)
        except OSError as exc:
            logger.warning("Failed to execute ping for %s: %s", ip, exc)
            return ProbeResult(reachable=False)
        elapsed_ms = (time.monotonic() - start) * 1000.0

        if result.returncode != 0:
            return ProbeResult(reachable=False)

        rtt_ms = parse_ping_latency(result.stdout)
        if rtt_ms is None:
            rtt_ms = elapsed_ms
        return ProbeResult(reachable=True, rtt_ms=round(rtt_ms, 3))


class TcpConnectProbe:
    """Transport-layer probe: a handshake or an active refusal means the host is up."""

    def __init__(self, ports: Sequence[int] = DEFAULT_TCP_PROBE_PORTS) -> None:
        self._ports = tuple(ports)

    def probe(self, ip: str, timeout: float) -> ProbeResult:
        for port in self._ports:
            start = time.monotonic()
            try:
                with socket.create_connection((ip, port), timeout=timeout):
                    pass
            except ConnectionRefusedError:
                pass
            except OSError as exc:
                logger.debug("TCP probe %s:%d failed: %s", ip, port, exc)
                continue
            rtt_ms = (time.monotonic() - start) * 1000.0
            return ProbeResult(reachable=True, rtt_ms=round(rtt_ms, 3))
        return ProbeResult(reachable=False)


PROBES = {
    "icmp": PingProbe,
    "tcp": TcpConnectProbe,
}


def create_probe(name: str) -> LivenessProbe:
    """Instantiate a liveness probe by name."""
    try:
        probe_cls = PROBES[name]
    except KeyError:
        raise ValueError(f"Unknown liveness probe: {name}") from None
    return probe_cls()
