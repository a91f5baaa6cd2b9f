"""Debt and liability entities."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel


class LiabilityStatus(str, Enum):
    ACTIVE = "active"
    PAID_OFF = "paid_off"
    DELETED = "deleted"


class PaymentFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "bi-weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class Liability(SQLModel, table=True):
    """Amortizing debt tracked by the ledger."""

    __tablename__: ClassVar[str] = "liability"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=80, index=True)
    original_amount: Decimal = Field(max_digits=14, decimal_places=2)
    current_balance: Decimal = Field(max_digits=14, decimal_places=2)
    # Principal paid into accounts as borrowed buckets so far.
    disbursed_amount: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    interest_rate: Decimal = Field(default=Decimal("0.00"), max_digits=7, decimal_places=4)
    payment_amount: Optional[Decimal] = Field(default=None, max_digits=14, decimal_places=2)
    frequency: str = Field(default=PaymentFrequency.MONTHLY.value, max_length=16)
    interest_included: bool = Field(default=True, nullable=False)
    start_date: date = Field(nullable=False)
    target_payoff_date: Optional[date] = Field(default=None)
    next_due_date: Optional[date] = Field(default=None)
    last_payment_date: Optional[date] = Field(default=None)
    status: str = Field(default=LiabilityStatus.ACTIVE.value, max_length=16, index=True)
    deleted_at: Optional[datetime] = Field(default=None)
    version: int = Field(default=1, nullable=False)

    @property
    def is_active(self) -> bool:
        return self.status == LiabilityStatus.ACTIVE
