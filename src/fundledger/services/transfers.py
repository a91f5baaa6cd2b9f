"""Transfer validator and bucket-to-bucket transfers.

Legal movements:

============  ==========================================
source        allowed destination
============  ==========================================
personal      personal, goal
goal          personal
borrowed      personal, the same liability's borrowed bucket
============  ==========================================

Nothing but a disbursement credits a borrowed bucket, so a borrowed
destination is only accepted when the source is the same liability's money
moving between accounts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from ..domain.buckets import BucketRef, BucketType
from ..domain.errors import InsufficientFundsError, NotFoundError, TransferNotAllowedError, ValidationError
from ..domain.money import ZERO, Number, to_money
from ..domain.repositories import LedgerStore, LedgerUnitOfWork
from ..domain.results import ledger_operation
from ..models.transaction import Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TransferDecision:
    allowed: bool
    reason: str = ""


@dataclass(slots=True)
class TransferReceipt:
    source: BucketRef
    destination: BucketRef
    amount: Decimal
    source_transaction_id: Optional[int]
    destination_transaction_id: Optional[int]


def transfer_allowed(source: BucketRef, destination: BucketRef) -> TransferDecision:
    """Decide whether money may move from *source* to *destination*."""

    src = source.bucket_type
    dst = destination.bucket_type

    if dst is BucketType.BORROWED:
        if src is BucketType.BORROWED and source.reference_id == destination.reference_id:
            return TransferDecision(True)
        return TransferDecision(False, "Borrowed buckets are only funded by disbursement")

    if src is BucketType.PERSONAL:
        return TransferDecision(True)
    if src is BucketType.GOAL:
        if dst is BucketType.PERSONAL:
            return TransferDecision(True)
        return TransferDecision(False, "Goal money can only be withdrawn to personal")
    if src is BucketType.BORROWED:
        if dst is BucketType.PERSONAL:
            return TransferDecision(True)
        return TransferDecision(False, "Borrowed money can only return to personal or move with its liability")
    raise ValueError(f"Unknown bucket type: {src!r}")


def check_transfer(
    source: BucketRef,
    destination: BucketRef,
    amount: Number,
    source_available: Number,
) -> Decimal:
    """Validate a transfer without touching balances; returns the cent amount."""

    value = to_money(amount)
    if value <= ZERO:
        raise ValidationError("Transfer amount must be positive", amount=value)
    if source == destination:
        raise TransferNotAllowedError("Source and destination are the same bucket", bucket=source.label())
    decision = transfer_allowed(source, destination)
    if not decision.allowed:
        raise TransferNotAllowedError(
            decision.reason,
            source=source.label(),
            destination=destination.label(),
        )
    available = to_money(source_available)
    if available < value:
        raise InsufficientFundsError(
            f"Insufficient funds in {source.label()}",
            available=available,
            requested=value,
        )
    return value


def _record_side(
    uow: LedgerUnitOfWork,
    bucket: BucketRef,
    amount: Decimal,
    *,
    user_id: int,
    on: date,
    memo: str,
    category: str,
    liability_id: Optional[int] = None,
) -> Transaction:
    if liability_id is None and bucket.bucket_type is BucketType.BORROWED:
        liability_id = bucket.reference_id
    return uow.transactions.record(
        Transaction(
            account_id=bucket.account_id,
            amount=amount,
            bucket_type=bucket.bucket_type.value,
            reference_id=bucket.reference_id,
            liability_id=liability_id,
            category=category,
            memo=memo,
            occurred_on=on,
        ),
        user_id=user_id,
    )


def _require_destination(uow: LedgerUnitOfWork, destination: BucketRef, *, user_id: int) -> None:
    account = uow.accounts.get_by_id(destination.account_id, user_id=user_id)
    if account is None or not account.is_active:
        raise NotFoundError("account", destination.account_id)
    if destination.bucket_type is BucketType.GOAL:
        goal = uow.goals.get_by_id(destination.reference_id, user_id=user_id)
        if goal is None or not goal.is_active:
            raise NotFoundError("goal", destination.reference_id)
    elif destination.bucket_type is BucketType.BORROWED:
        uow.liabilities.require(destination.reference_id, user_id=user_id)


def move_funds(
    uow: LedgerUnitOfWork,
    source: BucketRef,
    destination: BucketRef,
    amount: Number,
    *,
    user_id: int,
    on: Optional[date] = None,
    memo: str = "",
    category: str = "transfer",
) -> TransferReceipt:
    """Validate and apply a transfer inside an open unit of work.

    Each side moves the bucket and its account together; a same-account
    transfer leaves the account total unchanged.
    """

    if uow.accounts.get_by_id(source.account_id, user_id=user_id) is None:
        raise NotFoundError("account", source.account_id)
    _require_destination(uow, destination, user_id=user_id)
    value = check_transfer(source, destination, amount, uow.funds.available(source, user_id=user_id))
    same_account = source.account_id == destination.account_id
    account_delta = ZERO if same_account else value

    uow.funds.adjust(source, bucket_delta=-value, account_delta=-account_delta, user_id=user_id)
    uow.funds.adjust(destination, bucket_delta=value, account_delta=account_delta, user_id=user_id)

    when = on or date.today()
    memo = memo or f"Transfer {source.label()} -> {destination.label()}"
    out = _record_side(uow, source, -value, user_id=user_id, on=when, memo=memo, category=category)
    into = _record_side(uow, destination, value, user_id=user_id, on=when, memo=memo, category=category)
    return TransferReceipt(source, destination, value, out.id, into.id)


def spend_from_bucket(
    uow: LedgerUnitOfWork,
    bucket: BucketRef,
    amount: Number,
    *,
    user_id: int,
    on: Optional[date] = None,
    memo: str = "",
    category: str = "",
    liability_id: Optional[int] = None,
) -> Transaction:
    """Take money out of a bucket and its account, recording the outflow."""

    value = to_money(amount)
    if value <= ZERO:
        raise ValidationError("Amount must be positive", amount=value)
    uow.funds.adjust(bucket, bucket_delta=-value, account_delta=-value, user_id=user_id)
    return _record_side(
        uow,
        bucket,
        -value,
        user_id=user_id,
        on=on or date.today(),
        memo=memo,
        category=category,
        liability_id=liability_id,
    )


@ledger_operation
def transfer_funds(
    store: LedgerStore,
    source: BucketRef,
    destination: BucketRef,
    amount: Number,
    *,
    user_id: int,
    on: Optional[date] = None,
    memo: str = "",
) -> TransferReceipt:
    """Move money between buckets in a single transaction."""

    with store.unit_of_work() as uow:
        receipt = move_funds(uow, source, destination, amount, user_id=user_id, on=on, memo=memo)
    logger.info(
        "Transfer committed",
        extra={
            "source": source.label(),
            "destination": destination.label(),
            "amount": str(receipt.amount),
        },
    )
    return receipt


__all__ = [
    "TransferDecision",
    "TransferReceipt",
    "check_transfer",
    "move_funds",
    "spend_from_bucket",
    "transfer_allowed",
    "transfer_funds",
]
