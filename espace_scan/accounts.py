"""Candidate account loading."""

from __future__ import annotations

import csv
import logging
from pathlib import Path

from espace_scan.models import Account
from espace_scan.utils import ConfigurationError

REQUIRED_COLUMNS = ("username", "password")
DEFAULT_ACCOUNTS_FILE = Path(__file__).resolve().parent / "data" / "default-accounts.csv"

logger = logging.getLogger(__name__)


def load_accounts(path: str | Path) -> list[Account]:
    """Load candidate accounts from a CSV file with a header row.

    The header must name at least ``username`` and ``password``; other
    columns are ignored. Rows are returned in file order.

    Args:
        path: CSV file path

    Returns:
        Ordered list of accounts

    Raises:
        ConfigurationError: If the file is missing, unreadable, malformed or empty
    """
    accounts_file = Path(path)
    if not accounts_file.is_file():
        raise ConfigurationError(f'Accounts list file "{accounts_file}" does not exist.')

    try:
        with open(accounts_file, "r", encoding="utf-8", newline="") as handle:
            reader = csv.reader(handle)
            header = next(reader, None)
            if header is None:
                raise ConfigurationError(f'Accounts list file "{accounts_file}" is empty.')

            columns = [name.strip().lower() for name in header]
            missing = [name for name in REQUIRED_COLUMNS if name not in columns]
            if missing:
                raise ConfigurationError(
                    f'Accounts list file "{accounts_file}" is missing column(s): '
                    f"{', '.join(missing)}"
                )
            username_col = columns.index("username")
            password_col = columns.index("password")

            accounts: list[Account] = []
            for line_number, row in enumerate(reader, start=2):
                if not row or not any(cell.strip() for cell in row):
                    continue
                if len(row) <= max(username_col, password_col):
                    raise ConfigurationError(
                        f'Accounts list file "{accounts_file}" line {line_number} '
                        f"has {len(row)} field(s), expected {len(columns)}"
                    )
                accounts.append(Account(username=row[username_col], password=row[password_col]))
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise ConfigurationError(f'Cannot read accounts list file "{accounts_file}": {e}') from e

    if not accounts:
        raise ConfigurationError(f'Accounts list file "{accounts_file}" contains no accounts.')

    logger.debug(
        'Account list file "%s" has been found with %d record(s).', accounts_file, len(accounts)
    )
    return accounts


def accounts_from_credentials(username: str, password: str | None = None) -> list[Account]:
    """Build a single-account list from explicit credentials."""
    if not username:
        raise ConfigurationError("Username must be a non-empty string")
    return [Account(username=username, password=password or "")]
