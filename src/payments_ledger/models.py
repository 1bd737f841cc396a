from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional


class TransactionType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    CHARGEBACK = "chargeback"


class ProcessingResult(Enum):
    SUCCESS = "success"
    ACCOUNT_LOCKED = "account_locked"
    INVALID_AMOUNT = "invalid_amount"
    ALREADY_PROCESSED = "already_processed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    TRANSACTION_NOT_FOUND = "transaction_not_found"
    NOT_DISPUTABLE = "not_disputable"
    ALREADY_DISPUTED = "already_disputed"
    NOT_DISPUTED = "not_disputed"


@dataclass
class Transaction:
    transaction_type: TransactionType
    client_id: int
    transaction_id: int
    amount: Optional[Decimal] = None

    def __repr__(self) -> str:
        return f"Transaction({self.transaction_type.value}, client={self.client_id}, tx={self.transaction_id}, amount={self.amount})"


@dataclass(frozen=True)
class HistoricalEntry:
    """Deposit or withdrawal recorded against an account, kept for dispute lookups."""
    transaction_type: TransactionType
    amount: Decimal


@dataclass(frozen=True)
class AccountSnapshot:
    client_id: int
    available: Decimal
    held: Decimal
    total: Decimal
    locked: bool


class ProcessingStats:
    """Counters for the end-of-run summary."""

    def __init__(self):
        self.applied = 0
        self.rejected = 0
        self.malformed = 0

    def record_success(self):
        self.applied += 1

    def record_rejection(self):
        self.rejected += 1

    def record_malformed(self):
        self.malformed += 1

    def __repr__(self) -> str:
        return f"Applied: {self.applied}, Rejected: {self.rejected}, Malformed: {self.malformed}"
