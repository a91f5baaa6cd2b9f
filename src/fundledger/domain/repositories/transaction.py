"""Transaction repository protocol."""

from __future__ import annotations

from typing import Protocol

from ...models.transaction import Transaction


class TransactionRepository(Protocol):
    """Repository for ledger movement rows."""

    def record(self, transaction: Transaction, *, user_id: int) -> Transaction:
        """Insert one movement."""
        ...

    def filter_by_account(self, account_id: int, *, user_id: int) -> list[Transaction]:
        """Get all transactions for a specific account."""
        ...
