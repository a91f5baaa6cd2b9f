"""Payment allocator: split one lump payment across liabilities and components."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable, Mapping, Optional, Sequence, Union

from ..domain.buckets import BucketRef, BucketType
from ..domain.errors import (
    AllocationMismatchError,
    InsufficientFundsError,
    LedgerError,
    TransferNotAllowedError,
    ValidationError,
)
from ..domain.money import CENT, ZERO, Number, money_sum, to_money, within_tolerance
from ..domain.repositories import LedgerStore, LedgerUnitOfWork
from ..domain.results import ledger_operation
from ..models.liability import Liability, LiabilityStatus
from ..models.payment import LiabilityPayment
from ..models.schedule import EntryKind, ScheduleEntry, ScheduleStatus
from .amortization import calculate_payment_breakdown
from .schedules import rebuild_upcoming, upcoming_entries, verify_schedule
from .transfers import spend_from_bucket

logger = logging.getLogger(__name__)

Expectations = Union[Mapping[int, Number], Iterable[tuple[int, Number]]]


@dataclass(slots=True)
class Allocation:
    """One liability's share of a payment."""

    liability_id: int
    amount: Decimal
    interest: Decimal = ZERO
    fees: Decimal = ZERO

    @property
    def principal(self) -> Decimal:
        return self.amount - self.interest - self.fees


@dataclass(slots=True)
class LegResult:
    liability_id: int
    amount: Decimal
    principal: Decimal
    payment_id: Optional[int]
    remaining_balance: Decimal
    already_applied: bool = False


@dataclass(slots=True)
class LegFailure:
    liability_id: int
    amount: Decimal
    error: LedgerError


@dataclass(slots=True)
class PaymentReport:
    """Per-leg outcome of a multi-liability payment; committed legs stay committed."""

    succeeded: list[LegResult] = field(default_factory=list)
    failed: list[LegFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def total_paid(self) -> Decimal:
        return money_sum(leg.amount for leg in self.succeeded)


def auto_allocate(total: Number, expected: Expectations) -> list[Allocation]:
    """Split *total* proportionally to each liability's expected payment.

    Shares are floored to the cent and the leftover cents go to the largest
    fractional parts, later legs first on ties, so the allocations add up to
    *total* exactly and none is negative. Liabilities whose share comes out
    at zero are left out. When every expectation is zero the split is equal.
    """

    amount = to_money(total)
    if amount <= ZERO:
        raise ValidationError("Payment total must be positive", total=amount)
    pairs = list(expected.items()) if isinstance(expected, Mapping) else list(expected)
    if not pairs:
        raise ValidationError("At least one liability is required")

    weights = [max(to_money(value), ZERO) for _, value in pairs]
    weight_total = sum(weights, ZERO)
    if weight_total == ZERO:
        weights = [Decimal(1)] * len(pairs)
        weight_total = Decimal(len(pairs))

    exact = [amount * weight / weight_total for weight in weights]
    shares = [value.quantize(CENT, rounding=ROUND_FLOOR) for value in exact]
    leftover = int((amount - sum(shares, ZERO)) / CENT)
    by_remainder = sorted(
        (index for index, weight in enumerate(weights) if weight > ZERO),
        key=lambda index: (exact[index] - shares[index], index),
        reverse=True,
    )
    for index in by_remainder[:leftover]:
        shares[index] += CENT

    return [
        Allocation(liability_id=liability_id, amount=share)
        for (liability_id, _), share in zip(pairs, shares)
        if share > ZERO
    ]


def build_allocation(
    liability_id: int,
    amount: Number,
    *,
    interest: Optional[Number] = None,
    fees: Optional[Number] = None,
    default_interest: Number = ZERO,
    default_fees: Number = ZERO,
    current_balance: Optional[Number] = None,
) -> Allocation:
    """Split one liability's share into interest, fees and principal.

    Interest and fees fall back to the defaults taken from the current
    schedule entry; principal is whatever is left.
    """

    allocation = Allocation(
        liability_id=liability_id,
        amount=to_money(amount),
        interest=to_money(default_interest if interest is None else interest),
        fees=to_money(default_fees if fees is None else fees),
    )
    if allocation.amount <= ZERO:
        raise ValidationError("Allocated amount must be positive", liability_id=liability_id)
    if allocation.interest < ZERO or allocation.fees < ZERO:
        raise ValidationError("Interest and fees must not be negative", liability_id=liability_id)
    if allocation.principal < ZERO:
        raise ValidationError(
            "Interest and fees exceed the allocated amount",
            liability_id=liability_id,
            amount=allocation.amount,
            interest=allocation.interest,
            fees=allocation.fees,
        )
    if current_balance is not None and allocation.principal > to_money(current_balance):
        raise ValidationError(
            "Principal exceeds the remaining balance",
            liability_id=liability_id,
            principal=allocation.principal,
            current_balance=to_money(current_balance),
        )
    return allocation


def validate_allocations(
    total: Number, allocations: Sequence[Allocation], tolerance: Number = CENT
) -> None:
    allocated = money_sum(a.amount for a in allocations)
    if not within_tolerance(allocated, total, tolerance):
        discrepancy = allocated - to_money(total)
        raise AllocationMismatchError(
            f"Allocations total {allocated} but the payment is {to_money(total)} (off by {discrepancy})",
            discrepancy=discrepancy,
            total=to_money(total),
            allocated=allocated,
        )


def expected_payment(uow: LedgerUnitOfWork, liability: Liability, *, user_id: int) -> Decimal:
    """Next upcoming entry's amount, else the liability's periodic payment."""

    upcoming = upcoming_entries(uow, liability.id, user_id=user_id)
    if upcoming:
        return to_money(upcoming[0].amount)
    return to_money(liability.payment_amount)


def default_interest(uow: LedgerUnitOfWork, liability: Liability, *, user_id: int) -> Decimal:
    """Interest due on the current amortization entry."""

    upcoming = upcoming_entries(uow, liability.id, user_id=user_id)
    if upcoming:
        return to_money(upcoming[0].interest_component)
    return calculate_payment_breakdown(
        liability.current_balance, liability.current_balance, liability.interest_rate, liability.frequency
    ).interest


def _check_source(source: BucketRef, liability_id: int) -> None:
    if source.bucket_type is BucketType.PERSONAL:
        return
    if source.bucket_type is BucketType.BORROWED and source.reference_id == liability_id:
        return
    raise TransferNotAllowedError(
        "Payments come from personal money or the liability's own borrowed funds",
        source=source.label(),
        liability_id=liability_id,
    )


def _active_liability(uow: LedgerUnitOfWork, liability_id: int, *, user_id: int) -> Liability:
    liability = uow.liabilities.require(liability_id, user_id=user_id)
    if liability.status != LiabilityStatus.ACTIVE:
        raise ValidationError("Liability is not active", liability_id=liability_id, status=liability.status)
    return liability


def apply_payment(
    uow: LedgerUnitOfWork,
    allocation: Allocation,
    source: BucketRef,
    *,
    user_id: int,
    on: date,
    idempotency_key: Optional[str] = None,
    note: str = "",
) -> LegResult:
    """Commit one leg inside an open unit of work.

    Debits the source, reduces the liability by principal only, marks the
    soonest upcoming entry paid with the actual components and re-amortizes
    the tail when the principal differs from plan.
    """

    if idempotency_key:
        existing = uow.payments.find_by_idempotency_key(idempotency_key, user_id=user_id)
        if existing is not None:
            liability = uow.liabilities.require(existing.liability_id, user_id=user_id)
            return LegResult(
                existing.liability_id,
                to_money(existing.amount),
                to_money(existing.principal_component),
                existing.id,
                to_money(liability.current_balance),
                already_applied=True,
            )

    _check_source(source, allocation.liability_id)
    liability = _active_liability(uow, allocation.liability_id, user_id=user_id)
    principal = allocation.principal

    transaction = spend_from_bucket(
        uow,
        source,
        allocation.amount,
        user_id=user_id,
        on=on,
        memo=f"Payment toward {liability.name}",
        category="liability_payment",
        liability_id=liability.id,
    )
    if principal > ZERO:
        liability = uow.liabilities.adjust_balance(liability.id, -principal, user_id=user_id)

    upcoming = upcoming_entries(uow, liability.id, user_id=user_id)
    planned = upcoming[0] if upcoming else None
    # The update below refreshes the identity-mapped row in place.
    planned_principal = to_money(planned.principal_component) if planned is not None else None
    if planned is not None:
        entry = uow.schedules.update(
            planned.id,
            planned.version,
            user_id=user_id,
            status=ScheduleStatus.PAID.value,
            paid_on=on,
            amount=allocation.amount,
            principal_component=principal,
            interest_component=allocation.interest,
            remaining_balance=to_money(liability.current_balance),
        )
    else:
        [entry] = uow.schedules.insert_many(
            [
                ScheduleEntry(
                    liability_id=liability.id,
                    due_date=on,
                    amount=allocation.amount,
                    principal_component=principal,
                    interest_component=allocation.interest,
                    remaining_balance=to_money(liability.current_balance),
                    status=ScheduleStatus.PAID.value,
                    entry_kind=EntryKind.EXTRA_PAYMENT.value,
                    paid_on=on,
                )
            ],
            user_id=user_id,
        )

    payment = uow.payments.record(
        LiabilityPayment(
            liability_id=liability.id,
            account_id=source.account_id,
            amount=allocation.amount,
            principal_component=principal,
            interest_component=allocation.interest,
            fees_component=allocation.fees,
            paid_on=on,
            transaction_id=transaction.id,
            schedule_entry_id=entry.id,
            idempotency_key=idempotency_key,
            note=note,
        ),
        user_id=user_id,
    )

    deviated = planned_principal is None or planned_principal != principal
    if deviated or to_money(liability.current_balance) <= ZERO:
        _, liability = rebuild_upcoming(uow, liability, user_id=user_id, last_payment_date=on)
    else:
        liability = uow.liabilities.update_fields(
            liability.id,
            liability.version,
            user_id=user_id,
            last_payment_date=on,
            next_due_date=upcoming[1].due_date if len(upcoming) > 1 else None,
        )
        verify_schedule(uow, liability, user_id=user_id)

    return LegResult(
        liability.id,
        allocation.amount,
        principal,
        payment.id,
        to_money(liability.current_balance),
    )


def _validate_legs(
    uow: LedgerUnitOfWork,
    total: Decimal,
    allocations: Sequence[Allocation],
    source: BucketRef,
    *,
    user_id: int,
    tolerance: Number = CENT,
) -> None:
    if not allocations:
        raise ValidationError("At least one allocation is required")
    validate_allocations(total, allocations, tolerance)
    seen: set[int] = set()
    for allocation in allocations:
        if allocation.liability_id in seen:
            raise ValidationError("Liability allocated twice", liability_id=allocation.liability_id)
        seen.add(allocation.liability_id)
        _check_source(source, allocation.liability_id)
        liability = _active_liability(uow, allocation.liability_id, user_id=user_id)
        build_allocation(
            allocation.liability_id,
            allocation.amount,
            interest=allocation.interest,
            fees=allocation.fees,
            current_balance=liability.current_balance,
        )
    available = uow.funds.available(source, user_id=user_id)
    if available < total:
        raise InsufficientFundsError(
            f"Insufficient funds in {source.label()}", available=available, requested=total
        )


@ledger_operation
def suggest_allocation(
    store: LedgerStore, total: Number, liability_ids: Sequence[int], *, user_id: int
) -> list[Allocation]:
    """Proportional split with interest defaulted from each current schedule entry."""

    with store.unit_of_work() as uow:
        liabilities = [_active_liability(uow, lid, user_id=user_id) for lid in liability_ids]
        shares = auto_allocate(
            total, [(l.id, expected_payment(uow, l, user_id=user_id)) for l in liabilities]
        )
        by_id = {liability.id: liability for liability in liabilities}
        allocations = []
        for share in shares:
            liability = by_id[share.liability_id]
            interest = min(default_interest(uow, liability, user_id=user_id), share.amount)
            allocations.append(
                build_allocation(
                    liability.id,
                    share.amount,
                    default_interest=interest,
                    current_balance=liability.current_balance,
                )
            )
        return allocations


@ledger_operation
def pay_liabilities(
    store: LedgerStore,
    total: Number,
    allocations: Sequence[Allocation],
    source: BucketRef,
    *,
    user_id: int,
    on: Optional[date] = None,
    idempotency_key: Optional[str] = None,
    tolerance: Number = CENT,
) -> PaymentReport:
    """Pay several liabilities from one bucket.

    Everything is validated before the first write; the allocations must add
    up to *total* within *tolerance*. Each leg then commits in its own
    transaction; a failing leg is reported and earlier legs stay.
    """

    amount = to_money(total)
    on = on or date.today()
    with store.unit_of_work() as uow:
        _validate_legs(uow, amount, allocations, source, user_id=user_id, tolerance=tolerance)

    report = PaymentReport()
    for allocation in allocations:
        key = f"{idempotency_key}:{allocation.liability_id}" if idempotency_key else None
        try:
            with store.unit_of_work() as uow:
                leg = apply_payment(uow, allocation, source, user_id=user_id, on=on, idempotency_key=key)
        except LedgerError as exc:
            logger.warning(
                "Payment leg failed",
                extra={"liability_id": allocation.liability_id, "error_code": exc.code, "reason": exc.message},
            )
            report.failed.append(LegFailure(allocation.liability_id, allocation.amount, exc))
            continue
        report.succeeded.append(leg)

    logger.info(
        "Liability payment processed",
        extra={
            "total": str(amount),
            "succeeded": [leg.liability_id for leg in report.succeeded],
            "failed": [leg.liability_id for leg in report.failed],
        },
    )
    return report


__all__ = [
    "Allocation",
    "LegFailure",
    "LegResult",
    "PaymentReport",
    "apply_payment",
    "auto_allocate",
    "build_allocation",
    "default_interest",
    "expected_payment",
    "pay_liabilities",
    "suggest_allocation",
    "validate_allocations",
]
