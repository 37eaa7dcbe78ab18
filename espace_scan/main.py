"""eSpace Scan - command line entry point.

Sample: espace-scan --debug --write ip-list.txt 10.1.60.15 10.1.60.100
"""

from __future__ import annotations

import argparse
import sys

from espace_scan.config import build_scan_config, load_settings
from espace_scan.models import PasswordEncoding
from espace_scan.orchestration import create_orchestrator
from espace_scan.threading_utils import CancellationToken
from espace_scan.utils import (
    DEFAULT_LOG_LEVEL,
    ConfigurationError,
    configure_logging,
    get_version,
)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="espace-scan",
        description="Scan an IP range for eSpace devices and report the ones detected.",
    )
    parser.add_argument("start_ip", help="Starting IP")
    parser.add_argument("end_ip", help="Ending IP")

    scheme = parser.add_mutually_exclusive_group()
    scheme.add_argument(
        "-i", "--insecure", action="store_true", help="force non-https connection"
    )
    scheme.add_argument("-s", "--secure", action="store_true", help="force https connection")

    parser.add_argument(
        "-w", "--write", metavar="FILE", help="write the detected eSpace devices to FILE"
    )
    parser.add_argument(
        "-m",
        "--hash-password",
        metavar="MODE",
        choices=[e.value for e in PasswordEncoding],
        help="use a specific password mode (base64-alt, base64, digest or plain)",
    )
    parser.add_argument("-u", "--username", help="username to connect to the device")
    parser.add_argument("-p", "--password", help="password for --username")
    parser.add_argument(
        "-a",
        "--accounts-list",
        metavar="FILE",
        help="csv file containing the list of default usernames and passwords",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        metavar="SECONDS",
        help="ping timeout in seconds; 0 disables the ping check before connecting",
    )
    parser.add_argument(
        "--probe", choices=["icmp", "tcp"], help="liveness check used before connecting"
    )
    parser.add_argument(
        "-d",
        "--download",
        action="store_true",
        help="download the xml configuration file from each device",
    )
    parser.add_argument("--export-dir", metavar="DIR", help="directory for downloaded configuration")
    parser.add_argument(
        "--workers", type=int, metavar="N", help="number of addresses scanned concurrently"
    )
    parser.add_argument(
        "--http-timeout", type=float, metavar="SECONDS", help="device request timeout"
    )
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument("--log-level", help="log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    return parser


def run(argv: list[str] | None = None) -> int:
    """Parse arguments, run the scan and return the process exit code."""
    args = build_parser().parse_args(argv)
    level = "DEBUG" if args.debug else args.log_level
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        logger = configure_logging(level or DEFAULT_LOG_LEVEL)
        logger.error("%s", exc)
        return EXIT_FAILURE

    logger = configure_logging(level or settings.log_level)
    if args.debug:
        logger.info("[Debugging is enabled]")

    try:
        config = build_scan_config(
            args.start_ip,
            args.end_ip,
            settings,
            secure=args.secure,
            insecure=args.insecure,
            hash_password=args.hash_password,
            username=args.username,
            password=args.password,
            accounts_file=args.accounts_list,
            timeout=args.timeout,
            probe=args.probe,
            download=args.download,
            export_dir=args.export_dir,
            write=args.write,
            workers=args.workers,
            http_timeout=args.http_timeout,
        )
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE

    logger.debug(
        "Using %d account(s), schemes=%s, password modes=%s, ping timeout=%ss",
        len(config.accounts),
        ",".join(s.name for s in config.schemes),
        ",".join(e.value for e in config.encodings),
        config.ping_timeout,
    )

    cancel_token = CancellationToken()
    cancel_token.install_signal_handler(logger)
    try:
        orchestrator = create_orchestrator(config, logger, cancel_token=cancel_token)
        result = orchestrator.run()
    except OSError as exc:
        logger.error("Cannot write scan result: %s", exc)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        logger.warning("Scan aborted")
        return EXIT_INTERRUPTED
    finally:
        cancel_token.restore_signal_handler()

    return EXIT_INTERRUPTED if result.cancelled else EXIT_OK


def main() -> None:
    """Console script entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
