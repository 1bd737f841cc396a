import logging
from decimal import Context, Decimal, Inexact, InvalidOperation, localcontext
from typing import Dict, Optional, Set

from .models import Transaction, TransactionType, HistoricalEntry, ProcessingResult

logger = logging.getLogger(__name__)

# Balances from amounts up to MAX_AMOUNT over every tx id fit in 64 digits.
BALANCE_CONTEXT = Context(prec=64, traps=[InvalidOperation, Inexact])


class ClientAccount:
    """
    Balances, transaction history and open disputes for a single client.
    Sole mutator of its own state; every rejected transaction leaves it untouched.
    """

    def __init__(self, client_id: int):
        self.client_id = client_id
        self.available = Decimal("0")
        self.held = Decimal("0")
        self.locked = False
        self._history: Dict[int, HistoricalEntry] = {}
        self._disputed: Set[int] = set()

    @property
    def total(self) -> Decimal:
        with localcontext(BALANCE_CONTEXT):
            return self.available + self.held

    def get_entry(self, transaction_id: int) -> Optional[HistoricalEntry]:
        return self._history.get(transaction_id)

    def is_disputed(self, transaction_id: int) -> bool:
        return transaction_id in self._disputed

    def apply(self, transaction: Transaction) -> ProcessingResult:
        """
        Apply a single transaction to this account.

        Returns:
            SUCCESS if the transaction took effect, otherwise the reason it was dropped.
        """
        if self.locked:
            return ProcessingResult.ACCOUNT_LOCKED

        match transaction.transaction_type:
            case TransactionType.DEPOSIT:
                return self._handle_deposit(transaction)
            case TransactionType.WITHDRAWAL:
                return self._handle_withdrawal(transaction)
            case TransactionType.DISPUTE:
                return self._handle_dispute(transaction)
            case TransactionType.RESOLVE:
                return self._handle_resolve(transaction)
            case TransactionType.CHARGEBACK:
                return self._handle_chargeback(transaction)

    def _handle_deposit(self, transaction: Transaction) -> ProcessingResult:
        if transaction.amount is None or transaction.amount < 0:
            logger.warning(f"Deposit tx {transaction.transaction_id}: invalid amount {transaction.amount}")
            return ProcessingResult.INVALID_AMOUNT

        if transaction.transaction_id in self._history:
            logger.info(f"Deposit tx {transaction.transaction_id}: already processed, skipping (idempotent)")
            return ProcessingResult.ALREADY_PROCESSED

        with localcontext(BALANCE_CONTEXT):
            self.available += transaction.amount
        self._history[transaction.transaction_id] = HistoricalEntry(TransactionType.DEPOSIT, transaction.amount)
        return ProcessingResult.SUCCESS

    def _handle_withdrawal(self, transaction: Transaction) -> ProcessingResult:
        if transaction.amount is None or transaction.amount < 0:
            logger.warning(f"Withdrawal tx {transaction.transaction_id}: invalid amount {transaction.amount}")
            return ProcessingResult.INVALID_AMOUNT

        if transaction.transaction_id in self._history:
            logger.info(f"Withdrawal tx {transaction.transaction_id}: already processed, skipping (idempotent)")
            return ProcessingResult.ALREADY_PROCESSED

        if self.available < transaction.amount:
            return ProcessingResult.INSUFFICIENT_FUNDS

        with localcontext(BALANCE_CONTEXT):
            self.available -= transaction.amount
        self._history[transaction.transaction_id] = HistoricalEntry(TransactionType.WITHDRAWAL, transaction.amount)
        return ProcessingResult.SUCCESS

    def _handle_dispute(self, transaction: Transaction) -> ProcessingResult:
        original = self._history.get(transaction.transaction_id)

        if original is None:
            return ProcessingResult.TRANSACTION_NOT_FOUND

        # Withdrawn funds have already left the account, nothing to hold.
        if original.transaction_type != TransactionType.DEPOSIT:
            logger.info(f"Dispute for tx {transaction.transaction_id}: only deposits can be disputed (got {original.transaction_type.value})")
            return ProcessingResult.NOT_DISPUTABLE

        if transaction.transaction_id in self._disputed:
            logger.info(f"Dispute for tx {transaction.transaction_id}: transaction already disputed")
            return ProcessingResult.ALREADY_DISPUTED

        # available must stay non-negative
        if self.available < original.amount:
            logger.info(f"Dispute for tx {transaction.transaction_id}: available {self.available} cannot cover held amount {original.amount}")
            return ProcessingResult.INSUFFICIENT_FUNDS

        with localcontext(BALANCE_CONTEXT):
            self.available -= original.amount
            self.held += original.amount
        self._disputed.add(transaction.transaction_id)
        return ProcessingResult.SUCCESS

    def _handle_resolve(self, transaction: Transaction) -> ProcessingResult:
        if transaction.transaction_id not in self._disputed:
            return ProcessingResult.NOT_DISPUTED

        original = self._history[transaction.transaction_id]
        with localcontext(BALANCE_CONTEXT):
            self.held -= original.amount
            self.available += original.amount
        self._disputed.remove(transaction.transaction_id)
        return ProcessingResult.SUCCESS

    def _handle_chargeback(self, transaction: Transaction) -> ProcessingResult:
        if transaction.transaction_id not in self._disputed:
            return ProcessingResult.NOT_DISPUTED

        original = self._history[transaction.transaction_id]
        with localcontext(BALANCE_CONTEXT):
            self.held -= original.amount
        self.locked = True
        self._disputed.remove(transaction.transaction_id)
        logger.info(f"Client {self.client_id}: chargeback on tx {transaction.transaction_id}, account locked")
        return ProcessingResult.SUCCESS

    def __repr__(self) -> str:
        return f"ClientAccount(client={self.client_id}, available={self.available}, held={self.held}, locked={self.locked})"
