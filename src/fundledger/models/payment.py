"""Historical liability payment records."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import ClassVar, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class LiabilityPayment(SQLModel, table=True):
    """Immutable record of money applied to a liability."""

    __tablename__: ClassVar[str] = "liability_payment"
    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_payment_idempotency_key"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    liability_id: int = Field(foreign_key="liability.id", nullable=False, index=True)
    account_id: Optional[int] = Field(default=None, foreign_key="account.id")
    amount: Decimal = Field(max_digits=14, decimal_places=2)
    principal_component: Decimal = Field(max_digits=14, decimal_places=2)
    interest_component: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    fees_component: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    paid_on: date = Field(nullable=False)
    transaction_id: Optional[int] = Field(default=None, foreign_key="transaction.id")
    schedule_entry_id: Optional[int] = Field(default=None, foreign_key="schedule_entry.id")
    idempotency_key: Optional[str] = Field(default=None, max_length=64)
    note: str = Field(default="", max_length=255)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
