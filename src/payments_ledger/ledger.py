import logging
from typing import Dict, List, Optional

from .account import ClientAccount
from .models import Transaction, ProcessingResult, ProcessingStats, AccountSnapshot

logger = logging.getLogger(__name__)


class Ledger:
    """
    Owns every client account for the run.
    Routes each transaction to its account, creating the account on first reference.
    """

    def __init__(self):
        self._accounts: Dict[int, ClientAccount] = {}
        self._stats = ProcessingStats()

    @property
    def stats(self) -> ProcessingStats:
        return self._stats

    def get_or_create_account(self, client_id: int) -> ClientAccount:
        """Get existing account or create new one."""
        if client_id not in self._accounts:
            self._accounts[client_id] = ClientAccount(client_id)
        return self._accounts[client_id]

    def get_account(self, client_id: int) -> Optional[ClientAccount]:
        return self._accounts.get(client_id)

    def apply(self, transaction: Transaction) -> None:
        """Apply a transaction. Rejected transactions are logged and dropped."""
        account = self.get_or_create_account(transaction.client_id)
        result = account.apply(transaction)

        if result == ProcessingResult.SUCCESS:
            self._stats.record_success()
        else:
            self._stats.record_rejection()
            logger.debug(f"Dropped {transaction}: {result.value}")

    def snapshot(self) -> List[AccountSnapshot]:
        """Final state of every account, ordered by client id."""
        return [
            AccountSnapshot(
                client_id=account.client_id,
                available=account.available,
                held=account.held,
                total=account.total,
                locked=account.locked,
            )
            for client_id, account in sorted(self._accounts.items())
        ]

    def __len__(self) -> int:
        return len(self._accounts)
