"""Account model: a money container whose balance is split into buckets."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel


class AccountType(str, Enum):
    BANK = "bank"
    CARD = "card"
    WALLET = "wallet"
    CASH = "cash"
    INVESTMENT = "investment"
    LIABILITY = "liability"
    GOAL = "goal"
    OTHER = "other"


class Account(SQLModel, table=True):
    __tablename__: ClassVar[str] = "account"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=128)
    balance: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    currency: str = Field(default="USD", max_length=3)
    account_type: str = Field(default=AccountType.BANK.value, max_length=16)
    # Soft delete; archived accounts keep their history.
    is_active: bool = Field(default=True, nullable=False)
