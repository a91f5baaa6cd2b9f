"""Bucket accessor: per-account breakdown of personal, borrowed and goal money."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from ..domain.buckets import BucketRef, BucketType
from ..domain.errors import InvariantViolationError, NotFoundError
from ..domain.money import ZERO, money_sum, to_money
from ..domain.repositories import LedgerStore, LedgerUnitOfWork
from ..domain.results import ledger_operation

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BucketPortion:
    """Money in one account tagged for one liability or goal."""

    account_id: int
    bucket_type: BucketType
    reference_id: int
    amount: Decimal
    name: Optional[str] = None


@dataclass(slots=True)
class AccountBreakdown:
    account_id: int
    currency: str
    total: Decimal
    personal: Decimal
    borrowed_portions: list[BucketPortion] = field(default_factory=list)
    goal_portions: list[BucketPortion] = field(default_factory=list)

    @property
    def tagged_total(self) -> Decimal:
        return money_sum(p.amount for p in self.borrowed_portions + self.goal_portions)


def load_breakdown(uow: LedgerUnitOfWork, account_id: int, *, user_id: int) -> AccountBreakdown:
    """Build the breakdown inside an open unit of work.

    Raises ``NotFoundError`` for unknown or foreign accounts and
    ``InvariantViolationError`` when tagged money exceeds the balance.
    """

    account = uow.accounts.get_by_id(account_id, user_id=user_id)
    if account is None:
        raise NotFoundError("account", account_id)

    borrowed: list[BucketPortion] = []
    goals: list[BucketPortion] = []
    for row in uow.funds.list_for_account(account_id, user_id=user_id):
        bucket_type = BucketType(row.bucket_type)
        portion = BucketPortion(
            account_id=account_id,
            bucket_type=bucket_type,
            reference_id=row.reference_id,
            amount=to_money(row.amount),
        )
        if bucket_type is BucketType.BORROWED:
            liability = uow.liabilities.get_by_id(row.reference_id, user_id=user_id, include_deleted=True)
            portion.name = liability.name if liability else None
            borrowed.append(portion)
        else:
            goal = uow.goals.get_by_id(row.reference_id, user_id=user_id)
            portion.name = goal.name if goal else None
            goals.append(portion)

    total = to_money(account.balance)
    personal = total - money_sum(p.amount for p in borrowed + goals)
    if personal < ZERO:
        logger.error(
            "Negative personal balance detected",
            extra={"account_id": account_id, "personal": str(personal)},
        )
        raise InvariantViolationError(
            "Tagged buckets exceed the account balance",
            account_id=account_id,
            total=total,
            personal=personal,
        )
    return AccountBreakdown(
        account_id=account_id,
        currency=account.currency,
        total=total,
        personal=personal,
        borrowed_portions=borrowed,
        goal_portions=goals,
    )


def liability_portions(
    uow: LedgerUnitOfWork, liability_id: int, *, user_id: int
) -> list[BucketPortion]:
    """Borrowed portions for one liability across every account."""

    return [
        BucketPortion(
            account_id=row.account_id,
            bucket_type=BucketType.BORROWED,
            reference_id=liability_id,
            amount=to_money(row.amount),
        )
        for row in uow.funds.list_for_reference(BucketType.BORROWED, liability_id, user_id=user_id)
        if to_money(row.amount) > ZERO
    ]


@ledger_operation
def get_breakdown(store: LedgerStore, account_id: int, *, user_id: int) -> AccountBreakdown:
    """Return total, personal and tagged portions for an account."""

    with store.unit_of_work() as uow:
        return load_breakdown(uow, account_id, user_id=user_id)


@ledger_operation
def personal_balance(store: LedgerStore, account_id: int, *, user_id: int) -> Decimal:
    with store.unit_of_work() as uow:
        return load_breakdown(uow, account_id, user_id=user_id).personal


@ledger_operation
def bucket_balance(store: LedgerStore, bucket: BucketRef, *, user_id: int) -> Decimal:
    """Amount currently held in any single bucket."""

    with store.unit_of_work() as uow:
        return uow.funds.available(bucket, user_id=user_id)


@ledger_operation
def tagged_total_for_liability(store: LedgerStore, liability_id: int, *, user_id: int) -> Decimal:
    with store.unit_of_work() as uow:
        return money_sum(p.amount for p in liability_portions(uow, liability_id, user_id=user_id))


@ledger_operation
def accounts_with_liability_funds(
    store: LedgerStore, liability_id: int, *, user_id: int
) -> list[BucketPortion]:
    """Accounts still holding money borrowed for *liability_id*."""

    with store.unit_of_work() as uow:
        portions = liability_portions(uow, liability_id, user_id=user_id)
        for portion in portions:
            account = uow.accounts.get_by_id(portion.account_id, user_id=user_id)
            portion.name = account.name if account else None
        return portions


__all__ = [
    "AccountBreakdown",
    "BucketPortion",
    "accounts_with_liability_funds",
    "bucket_balance",
    "get_breakdown",
    "liability_portions",
    "load_breakdown",
    "personal_balance",
    "tagged_total_for_liability",
]
