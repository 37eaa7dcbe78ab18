"""Unit tests for liveness probes."""

from __future__ import annotations

import socket
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from espace_scan.liveness import (
    PingProbe,
    TcpConnectProbe,
    build_ping_command,
    create_probe,
    parse_ping_latency,
)

LINUX_PING_OUTPUT = """PING 10.0.0.1 (10.0.0.1) 56(84) bytes of data.
64 bytes from 10.0.0.1: icmp_seq=1 ttl=64 time=0.123 ms

--- 10.0.0.1 ping statistics ---
1 packets transmitted, 1 received, 0% packet loss, time 0ms
"""

WINDOWS_PING_OUTPUT = "Reply from 10.0.0.1: bytes=32 time<1ms TTL=128"


class TestBuildPingCommand:
    def test_linux(self) -> None:
        assert build_ping_command("/bin/ping", "10.0.0.1", 1, system="Linux") == [
            "/bin/ping", "-n", "-c", "1", "-W", "1", "10.0.0.1",
        ]

    def test_linux_minimum_wait_is_one_second(self) -> None:
        command = build_ping_command("/bin/ping", "10.0.0.1", 0.2, system="Linux")
        assert command[5] == "1"

    def test_darwin_uses_milliseconds(self) -> None:
        command = build_ping_command("/sbin/ping", "10.0.0.1", 2, system="Darwin")
        assert command[-3:] == ["-W", "2000", "10.0.0.1"]

    def test_windows(self) -> None:
        assert build_ping_command("ping.exe", "10.0.0.1", 3, system="Windows") == [
            "ping.exe", "-n", "1", "-w", "3000", "10.0.0.1",
        ]


class TestParsePingLatency:
    def test_linux_output(self) -> None:
        assert parse_ping_latency(LINUX_PING_OUTPUT) == pytest.approx(0.123)

    def test_windows_output(self) -> None:
        assert parse_ping_latency(WINDOWS_PING_OUTPUT) == pytest.approx(1.0)

    def test_seconds_unit(self) -> None:
        assert parse_ping_latency("time=1.5 s") == pytest.approx(1500.0)

    def test_no_latency(self) -> None:
        assert parse_ping_latency("Request timed out.") is None


class TestPingProbe:
    @patch("espace_scan.liveness.subprocess.run")
    def test_reachable(self, mock_run: MagicMock) -> None:
        mock_run.return_value = MagicMock(returncode=0, stdout=LINUX_PING_OUTPUT)

        result = PingProbe(ping_path="/bin/ping").probe("10.0.0.1", 1)

        assert result.reachable is True
        assert result.rtt_ms == pytest.approx(0.123)
        kwargs = mock_run.call_args.kwargs
        assert kwargs["timeout"] == 3

    @patch("espace_scan.liveness.subprocess.run")
    def test_no_reply(self, mock_run: MagicMock) -> None:
        mock_run.return_value = MagicMock(returncode=1, stdout="")

        result = PingProbe(ping_path="/bin/ping").probe("10.0.0.1", 1)

        assert result.reachable is False
        assert result.rtt_ms is None

    @patch("espace_scan.liveness.subprocess.run")
    def test_process_timeout(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ping", timeout=3)

        assert PingProbe(ping_path="/bin/ping").probe("10.0.0.1", 1).reachable is False

    @patch("espace_scan.liveness.subprocess.run")
    def test_execution_error(self, mock_run: MagicMock) -> None:
        mock_run.side_effect = PermissionError("denied")

        assert PingProbe(ping_path="/bin/ping").probe("10.0.0.1", 1).reachable is False

    @patch("espace_scan.liveness.subprocess.run")
    def test_missing_latency_falls_back_to_elapsed(self, mock_run: MagicMock) -> None:
        mock_run.return_value = MagicMock(returncode=0, stdout="1 received")

        result = PingProbe(ping_path="/bin/ping").probe("10.0.0.1", 1)

        assert result.reachable is True
        assert result.rtt_ms is not None
        assert result.rtt_ms >= 0

    @patch("espace_scan.liveness.shutil.which", return_value=None)
    @patch("espace_scan.liveness.subprocess.run")
    def test_ping_not_installed(self, mock_run: MagicMock, mock_which: MagicMock) -> None:
        result = PingProbe().probe("10.0.0.1", 1)

        assert result.reachable is False
        mock_run.assert_not_called()


class TestTcpConnectProbe:
    @patch("espace_scan.liveness.socket.create_connection")
    def test_handshake(self, mock_connect: MagicMock) -> None:
        mock_connect.return_value = MagicMock()

        result = TcpConnectProbe(ports=(443,)).probe("10.0.0.1", 1)

        assert result.reachable is True
        mock_connect.assert_called_once_with(("10.0.0.1", 443), timeout=1)

    @patch("espace_scan.liveness.socket.create_connection")
    def test_refusal_means_host_is_up(self, mock_connect: MagicMock) -> None:
        mock_connect.side_effect = ConnectionRefusedError()

        assert TcpConnectProbe(ports=(443,)).probe("10.0.0.1", 1).reachable is True

    @patch("espace_scan.liveness.socket.create_connection")
    def test_tries_next_port_on_timeout(self, mock_connect: MagicMock) -> None:
        mock_connect.side_effect = [socket.timeout("timed out"), MagicMock()]

        result = TcpConnectProbe(ports=(443, 80)).probe("10.0.0.1", 1)

        assert result.reachable is True
        assert mock_connect.call_count == 2

    @patch("espace_scan.liveness.socket.create_connection")
    def test_unreachable(self, mock_connect: MagicMock) -> None:
        mock_connect.side_effect = OSError("No route to host")

        assert TcpConnectProbe().probe("10.0.0.1", 1).reachable is False


class TestCreateProbe:
    def test_known_probes(self) -> None:
        assert isinstance(create_probe("icmp"), PingProbe)
        assert isinstance(create_probe("tcp"), TcpConnectProbe)

    def test_unknown_probe(self) -> None:
        with pytest.raises(ValueError, match="Unknown liveness probe"):
            create_probe("arp")
