"""Unit-of-work protocol grouping every ledger repository."""

from __future__ import annotations

from typing import ContextManager, Protocol

from .account import AccountRepository
from .fund import FundRepository
from .goal import GoalRepository
from .liability import LiabilityRepository
from .payment import PaymentRepository
from .schedule import ScheduleRepository
from .transaction import TransactionRepository


class LedgerUnitOfWork(Protocol):
    """Repositories sharing one transaction; it commits when the scope exits cleanly."""

    accounts: AccountRepository
    goals: GoalRepository
    funds: FundRepository
    liabilities: LiabilityRepository
    schedules: ScheduleRepository
    payments: PaymentRepository
    transactions: TransactionRepository


class LedgerStore(Protocol):
    def unit_of_work(self) -> ContextManager[LedgerUnitOfWork]:
        """Open a transaction; every write inside commits or rolls back together."""
        ...
