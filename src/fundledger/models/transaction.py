"""Ledger transactions: one row per balance movement on an account bucket."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel


class Transaction(SQLModel, table=True):
    """A single signed movement on an account, tagged with the bucket it hit."""

    __tablename__: ClassVar[str] = "transaction"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    account_id: int = Field(foreign_key="account.id", nullable=False, index=True)
    amount: Decimal = Field(
        max_digits=14, decimal_places=2, description="Positive for inflow, negative for outflow"
    )
    bucket_type: str = Field(default="personal", max_length=16)
    reference_id: Optional[int] = Field(default=None)
    liability_id: Optional[int] = Field(default=None, foreign_key="liability.id", index=True)
    category: str = Field(default="", max_length=64)
    memo: str = Field(default="", max_length=255)
    occurred_on: date = Field(nullable=False, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
