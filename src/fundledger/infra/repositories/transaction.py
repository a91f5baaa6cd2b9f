"""SQLModel implementation of Transaction repository."""

from __future__ import annotations

from typing import Callable, ContextManager

from sqlmodel import Session, select

from ...models.transaction import Transaction


class SQLModelTransactionRepository:
    """SQLModel-based transaction repository implementation."""

    def __init__(self, session_factory: Callable[[], ContextManager[Session]]):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def record(self, transaction: Transaction, *, user_id: int) -> Transaction:
        """Insert one movement row."""
        with self.session_factory() as session:
            transaction.user_id = user_id
            session.add(transaction)
            session.flush()
            session.refresh(transaction)
            return transaction

    def filter_by_account(self, account_id: int, *, user_id: int) -> list[Transaction]:
        """Get all transactions for a specific account."""
        with self.session_factory() as session:
            statement = (
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .where(Transaction.account_id == account_id)
                .order_by(Transaction.occurred_on, Transaction.id)  # type: ignore
            )
            return list(session.exec(statement).all())
