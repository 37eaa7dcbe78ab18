"""Scan report file output."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from espace_scan.models import DeviceRecord

REPORT_FIELD_SEPARATOR = ","
REPORT_LINE_SEPARATOR = "\n"


def format_report_line(record: DeviceRecord) -> str:
    """Render one device as ``ip,serial,main,boot,hardware,build``."""
    return REPORT_FIELD_SEPARATOR.join(record.report_fields())


def write_report(records: Iterable[DeviceRecord], path: str | Path) -> int:
    """Write one line per device to ``path``.

    Returns:
        Number of lines written

    Raises:
        OSError: If the file cannot be written
    """
    lines = [format_report_line(record) for record in records]
    with open(path, "w", encoding="utf-8", newline="") as handle:
        for line in lines:
            handle.write(line + REPORT_LINE_SEPARATOR)
    return len(lines)
