import csv
import logging
import os
import sys
from decimal import Decimal
from typing import Iterable, List, Optional, TextIO

from .models import AccountSnapshot
from .payments_engine import PaymentsEngine, InputFormatError, PRECISION

logger = logging.getLogger(__name__)

OUTPUT_HEADER = ["client", "available", "held", "total", "locked"]
LOG_LEVEL_ENV = "PAYMENTS_LOG_LEVEL"


def resolve_log_level() -> int:
    level = logging.getLevelName(os.environ.get(LOG_LEVEL_ENV, "WARNING").upper())
    return level if isinstance(level, int) else logging.WARNING


def configure_logging() -> None:
    logging.basicConfig(
        level=resolve_log_level(),
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def format_decimal(value: Decimal) -> str:
    """Format decimal with exactly 4 decimal places."""
    return f"{value:.{PRECISION}f}"


def write_accounts(accounts: Iterable[AccountSnapshot], out: TextIO) -> None:
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(OUTPUT_HEADER)
    for account in accounts:
        writer.writerow([
            account.client_id,
            format_decimal(account.available),
            format_decimal(account.held),
            format_decimal(account.total),
            str(account.locked).lower(),
        ])


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1:
        print("Usage: python -m payments_ledger.main <input.csv>", file=sys.stderr)
        return 1

    filepath = args[0]
    engine = PaymentsEngine()
    try:
        accounts = engine.process_file(filepath)
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Cannot read {filepath}: {e}")
        return 1
    except InputFormatError as e:
        logger.error(f"Invalid input file {filepath}: {e}")
        return 1

    write_accounts(accounts, sys.stdout)
    return 0


def run() -> None:
    configure_logging()
    sys.exit(main())


if __name__ == "__main__":
    run()
