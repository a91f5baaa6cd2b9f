"""Stored fund buckets (borrowed and goal slices of an account balance)."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class FundBucket(SQLModel, table=True):
    """A tagged slice of an account balance.

    Personal money is never stored; it is the account balance minus every
    row of this table for that account. Rows disappear when they reach zero.
    """

    __tablename__: ClassVar[str] = "fund_bucket"
    __table_args__ = (
        UniqueConstraint("account_id", "bucket_type", "reference_id", name="uq_fund_bucket_ref"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    account_id: int = Field(foreign_key="account.id", nullable=False, index=True)
    bucket_type: str = Field(nullable=False, max_length=16, index=True)
    reference_id: int = Field(nullable=False, index=True)
    amount: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
