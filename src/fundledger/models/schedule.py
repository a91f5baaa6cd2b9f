"""Schedule entries (bills): expected or completed payment instances."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel


class ScheduleStatus(str, Enum):
    UPCOMING = "upcoming"
    PAID = "paid"
    CANCELLED = "cancelled"


class EntryKind(str, Enum):
    SCHEDULED = "scheduled"
    SKIP_CARRYOVER = "skip_carryover"
    EXTRA_PAYMENT = "extra_payment"
    HISTORICAL = "historical"


class SkipPolicy(str, Enum):
    ADD_TO_NEXT = "add_to_next"
    ADD_TO_END = "add_to_end"
    SPREAD_ACROSS = "spread_across"
    PREPAID = "prepaid"


class ScheduleEntry(SQLModel, table=True):
    """One row of a liability's payment schedule.

    Only ``upcoming`` rows change. The audit columns below replace a free-form
    metadata bag: each mutation kind owns its own fields.
    """

    __tablename__: ClassVar[str] = "schedule_entry"
    # Regenerated tails must never reuse the ids of deleted entries.
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    liability_id: Optional[int] = Field(default=None, foreign_key="liability.id", index=True)
    due_date: date = Field(nullable=False, index=True)
    amount: Decimal = Field(max_digits=14, decimal_places=2)
    principal_component: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    interest_component: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    remaining_balance: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    payment_number: Optional[int] = Field(default=None)
    status: str = Field(default=ScheduleStatus.UPCOMING.value, max_length=16, index=True)
    entry_kind: str = Field(default=EntryKind.SCHEDULED.value, max_length=16)
    paid_on: Optional[date] = Field(default=None)

    # skip audit
    skip_policy: Optional[str] = Field(default=None, max_length=16)
    skipped_on: Optional[date] = Field(default=None)
    source_entry_id: Optional[int] = Field(default=None)
    carried_amount: Decimal = Field(default=Decimal("0.00"), max_digits=14, decimal_places=2)
    prepaid: bool = Field(default=False, nullable=False)

    # postpone audit
    original_due_date: Optional[date] = Field(default=None)
    postponed_on: Optional[date] = Field(default=None)

    # amount-change audit
    original_amount: Optional[Decimal] = Field(default=None, max_digits=14, decimal_places=2)
    amount_changed_on: Optional[date] = Field(default=None)

    version: int = Field(default=1, nullable=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def is_mutable(self) -> bool:
        return self.status == ScheduleStatus.UPCOMING
