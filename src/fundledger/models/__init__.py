"""SQLModel table exports."""

from .account import Account, AccountType
from .fund import FundBucket
from .goal import Goal
from .liability import Liability, LiabilityStatus, PaymentFrequency
from .payment import LiabilityPayment
from .schedule import EntryKind, ScheduleEntry, ScheduleStatus, SkipPolicy
from .transaction import Transaction
from .user import User

__all__ = [
    "Account",
    "AccountType",
    "EntryKind",
    "FundBucket",
    "Goal",
    "Liability",
    "LiabilityPayment",
    "LiabilityStatus",
    "PaymentFrequency",
    "ScheduleEntry",
    "ScheduleStatus",
    "SkipPolicy",
    "Transaction",
    "User",
]
