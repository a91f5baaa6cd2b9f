"""Concrete repository implementations using SQLModel."""

from .account import SQLModelAccountRepository
from .fund import SQLModelFundRepository
from .goal import SQLModelGoalRepository
from .liability import SQLModelLiabilityRepository
from .payment import SQLModelPaymentRepository
from .schedule import SQLModelScheduleRepository
from .transaction import SQLModelTransactionRepository

__all__ = [
    "SQLModelAccountRepository",
    "SQLModelFundRepository",
    "SQLModelGoalRepository",
    "SQLModelLiabilityRepository",
    "SQLModelPaymentRepository",
    "SQLModelScheduleRepository",
    "SQLModelTransactionRepository",
]
