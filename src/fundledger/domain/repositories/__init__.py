"""Repository protocol definitions for domain layer."""

from .account import AccountRepository
from .fund import FundRepository
from .goal import GoalRepository
from .liability import LiabilityRepository
from .payment import PaymentRepository
from .schedule import ScheduleRepository
from .store import LedgerStore, LedgerUnitOfWork
from .transaction import TransactionRepository

__all__ = [
    "AccountRepository",
    "FundRepository",
    "GoalRepository",
    "LedgerStore",
    "LedgerUnitOfWork",
    "LiabilityRepository",
    "PaymentRepository",
    "ScheduleRepository",
    "TransactionRepository",
]
