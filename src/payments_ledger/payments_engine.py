import csv
import logging
import re
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .models import Transaction, TransactionType, AccountSnapshot, ProcessingStats
from .ledger import Ledger

logger = logging.getLogger(__name__)

PRECISION = 4
MAX_ID = 2**32 - 1
# 96-bit mantissa ceiling
MAX_AMOUNT = Decimal(2**96 - 1)
ID_PATTERN = re.compile(r"[0-9]+")
AMOUNT_PATTERN = re.compile(r"-?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)")
REQUIRED_COLUMNS = ("type", "client", "tx", "amount")
AMOUNT_TYPES = (TransactionType.DEPOSIT, TransactionType.WITHDRAWAL)


class InputFormatError(Exception):
    """Input cannot be read as a transaction file at all (bad header, corrupt CSV)."""


class PaymentsEngine:
    """
    Reads transactions from CSV and replays them, in file order, against a Ledger.
    Malformed rows are skipped; structural problems raise.
    """

    def __init__(self, ledger: Optional[Ledger] = None):
        self._ledger = ledger if ledger is not None else Ledger()

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def stats(self) -> ProcessingStats:
        return self._ledger.stats

    def process_file(self, filepath: str) -> List[AccountSnapshot]:
        """Process CSV file and return final account states."""
        logger.info(f"Processing {filepath}")
        with open(filepath, "r", newline="", encoding="utf-8-sig") as f:
            return self.process_rows(f)

    def process_rows(self, lines: Iterable[str]) -> List[AccountSnapshot]:
        """Process CSV lines (header first) and return final account states."""
        reader = csv.DictReader(lines, skipinitialspace=True)
        try:
            self._check_header(reader.fieldnames)
            for row in reader:
                transaction = self.parse_row(row)
                if transaction is None:
                    self.stats.record_malformed()
                    continue
                self._ledger.apply(transaction)
        except csv.Error as e:
            raise InputFormatError(f"line {reader.line_num}: {e}") from e

        logger.info(f"Processing complete. {self.stats}")
        return self._ledger.snapshot()

    @staticmethod
    def _check_header(fieldnames: Optional[List[str]]) -> None:
        if not fieldnames:
            raise InputFormatError("missing header row")

        columns = {name.strip().lower() for name in fieldnames if name}
        missing = [column for column in REQUIRED_COLUMNS if column not in columns]
        if missing:
            raise InputFormatError(f"header is missing columns: {', '.join(missing)}")

    @staticmethod
    def parse_row(row: Dict[Optional[str], Optional[str]]) -> Optional[Transaction]:
        """Parse CSV row into Transaction. Returns None for malformed rows."""
        try:
            # DictReader fills short rows with None and collects extra fields under None
            normalized = {
                k.strip().lower(): (v or "").strip()
                for k, v in row.items()
                if isinstance(k, str)
            }

            transaction_type = TransactionType(normalized["type"].lower())
            client_id = _parse_id(normalized["client"])
            transaction_id = _parse_id(normalized["tx"])

            amount = None
            if transaction_type in AMOUNT_TYPES:
                amount = _parse_amount(normalized.get("amount", ""))

            return Transaction(
                transaction_type=transaction_type,
                client_id=client_id,
                transaction_id=transaction_id,
                amount=amount,
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to parse row {row}: {e}")
            return None


def _parse_id(value: str) -> int:
    if not ID_PATTERN.fullmatch(value):
        raise ValueError(f"invalid id {value!r}")
    parsed = int(value)
    if not 0 <= parsed <= MAX_ID:
        raise ValueError(f"id {parsed} out of range")
    return parsed


def _parse_amount(value: str) -> Decimal:
    if not value:
        raise ValueError("no amount provided")
    if not AMOUNT_PATTERN.fullmatch(value):
        raise ValueError(f"invalid amount {value!r}")
    amount = Decimal(value)
    if amount.copy_abs() > MAX_AMOUNT:
        raise ValueError(f"amount {value} exceeds {MAX_AMOUNT}")
    if -amount.as_tuple().exponent > PRECISION:
        raise ValueError(f"amount {value} exceeds {PRECISION} decimal places")
    return amount
