"""Savings goal entity referenced by goal buckets."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel


class Goal(SQLModel, table=True):
    """A savings target; money earmarked for it lives in goal buckets."""

    __tablename__: ClassVar[str] = "goal"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=80)
    target_amount: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    target_date: Optional[date] = Field(default=None)
    is_active: bool = Field(default=True, nullable=False)
