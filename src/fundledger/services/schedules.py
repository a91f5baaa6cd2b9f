"""Schedule mutator: skip, reschedule, re-amount and prepay liability entries.

Only ``upcoming`` entries change. Every operation re-checks that the
principal of paid and upcoming entries still adds up to the liability's
original amount before it writes reshaped rows, and repeating an operation
whose effect is already in place reports ``already_applied`` instead of
applying it twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from ..domain.buckets import BucketRef
from ..domain.errors import (
    DateOutOfRangeError,
    EntryNotMutableError,
    NotFoundError,
    ValidationError,
)
from ..domain.money import ZERO, Number, money_sum, split_evenly, to_money
from ..domain.repositories import LedgerStore, LedgerUnitOfWork
from ..domain.results import ledger_operation
from ..models.liability import Liability, LiabilityStatus
from ..models.payment import LiabilityPayment
from ..models.schedule import EntryKind, ScheduleEntry, ScheduleStatus, SkipPolicy
from .amortization import (
    ExtraPaymentOption,
    ExtraPaymentStrategy,
    ScheduleRow,
    advance_date,
    calculate_loan_term,
    calculate_payment_amount,
    extra_payment_options,
    generate_schedule,
    period_rate,
    verify_principal_sum,
)
from .transfers import spend_from_bucket

logger = logging.getLogger(__name__)


class AmountChangeMode(str, Enum):
    ONE_TIME = "one_time"
    ADD_TO_NEXT = "add_to_next"
    UPDATE_ALL = "update_all"


@dataclass(slots=True)
class SkipImpact:
    entry_id: int
    policy: SkipPolicy
    moved_amount: Decimal
    target_entry_ids: list[int] = field(default_factory=list)
    next_due_date: Optional[date] = None
    already_applied: bool = False


@dataclass(slots=True)
class DateChangeImpact:
    entry_id: int
    previous_due_date: date
    new_due_date: date
    next_due_date: Optional[date] = None
    next_due_changed: bool = False
    already_applied: bool = False


@dataclass(slots=True)
class AmountChangeImpact:
    entry_id: int
    mode: AmountChangeMode
    previous_amount: Decimal
    new_amount: Decimal
    adjusted_entry_ids: list[int] = field(default_factory=list)
    new_payment_amount: Optional[Decimal] = None
    already_applied: bool = False


@dataclass(slots=True)
class ExtraPaymentImpact:
    liability_id: int
    amount: Decimal
    strategy: ExtraPaymentStrategy
    new_balance: Decimal
    previous_payment: Optional[Decimal] = None
    new_payment: Optional[Decimal] = None
    previous_periods: int = 0
    new_periods: int = 0
    interest_saved: Decimal = ZERO
    entries_skipped: int = 0
    payment_id: Optional[int] = None
    already_applied: bool = False

    @property
    def term_change(self) -> int:
        return self.new_periods - self.previous_periods

    @property
    def payment_change(self) -> Decimal:
        return to_money(self.new_payment) - to_money(self.previous_payment)


# ---------------------------------------------------------------------------
# Helpers shared with the allocator and liability lifecycle
# ---------------------------------------------------------------------------


def entries_from_rows(
    rows: Iterable[ScheduleRow],
    *,
    liability_id: Optional[int],
    kind: EntryKind = EntryKind.SCHEDULED,
) -> list[ScheduleEntry]:
    return [
        ScheduleEntry(
            liability_id=liability_id,
            due_date=row.due_date,
            amount=row.amount,
            principal_component=row.principal,
            interest_component=row.interest,
            remaining_balance=row.remaining_balance,
            payment_number=row.payment_number,
            entry_kind=kind.value,
        )
        for row in rows
    ]


def require_entry(uow: LedgerUnitOfWork, entry_id: int, *, user_id: int) -> ScheduleEntry:
    entry = uow.schedules.get(entry_id, user_id=user_id)
    if entry is None:
        raise NotFoundError("schedule entry", entry_id)
    return entry


def upcoming_entries(uow: LedgerUnitOfWork, liability_id: int, *, user_id: int) -> list[ScheduleEntry]:
    return uow.schedules.list_for_liability(liability_id, user_id=user_id, status=ScheduleStatus.UPCOMING)


def _paid_entries(uow: LedgerUnitOfWork, liability_id: int, *, user_id: int) -> list[ScheduleEntry]:
    return uow.schedules.list_for_liability(liability_id, user_id=user_id, status=ScheduleStatus.PAID)


def verify_schedule(
    uow: LedgerUnitOfWork,
    liability: Liability,
    *,
    user_id: int,
    pending: Optional[Iterable[object]] = None,
) -> None:
    """Check paid + upcoming (or *pending* replacement) principal against the loan.

    Raises ``InvariantViolationError`` so the surrounding unit of work rolls back.
    """

    paid = _paid_entries(uow, liability.id, user_id=user_id)
    tail = list(pending) if pending is not None else upcoming_entries(uow, liability.id, user_id=user_id)
    verify_principal_sum([*paid, *tail], liability.original_amount)


def _restate_balances(uow: LedgerUnitOfWork, liability: Liability, *, user_id: int) -> None:
    running = to_money(liability.current_balance)
    for entry in upcoming_entries(uow, liability.id, user_id=user_id):
        running -= to_money(entry.principal_component)
        if to_money(entry.remaining_balance) != running:
            uow.schedules.update(entry.id, entry.version, user_id=user_id, remaining_balance=running)


def refresh_next_due(
    uow: LedgerUnitOfWork, liability: Liability, *, user_id: int, **fields: Any
) -> Liability:
    """Sync the cached next due date (plus any extra *fields*) onto the liability."""

    upcoming = upcoming_entries(uow, liability.id, user_id=user_id)
    next_due = min((e.due_date for e in upcoming), default=None)
    if next_due == liability.next_due_date and not fields:
        return liability
    return uow.liabilities.update_fields(
        liability.id, liability.version, user_id=user_id, next_due_date=next_due, **fields
    )


def _next_start_date(uow: LedgerUnitOfWork, liability: Liability, *, user_id: int) -> date:
    scheduled = [
        e for e in _paid_entries(uow, liability.id, user_id=user_id) if e.payment_number is not None
    ]
    if scheduled:
        return advance_date(max(e.due_date for e in scheduled), liability.frequency, 1)
    return liability.start_date


def rebuild_upcoming(
    uow: LedgerUnitOfWork,
    liability: Liability,
    *,
    user_id: int,
    payment: Optional[Decimal] = None,
    periods: Optional[int] = None,
    use_target_date: bool = True,
    start_date: Optional[date] = None,
    starting_number: Optional[int] = None,
    first_period_interest: Decimal = ZERO,
    max_periods: Optional[int] = None,
    **liability_fields: Any,
) -> tuple[list[ScheduleEntry], Liability]:
    """Replace the upcoming tail with a fresh amortization of ``current_balance``.

    Already-paid entries keep their numbers; the new tail continues from the
    first replaced entry. Returns the inserted entries and the updated liability.
    """

    upcoming = upcoming_entries(uow, liability.id, user_id=user_id)
    balance = to_money(liability.current_balance)

    if start_date is None:
        start_date = upcoming[0].due_date if upcoming else _next_start_date(uow, liability, user_id=user_id)
    if starting_number is None:
        numbered = [e.payment_number for e in upcoming if e.payment_number is not None]
        if numbered:
            starting_number = min(numbered)
        else:
            paid_numbers = [
                e.payment_number
                for e in _paid_entries(uow, liability.id, user_id=user_id)
                if e.payment_number is not None
            ]
            starting_number = max(paid_numbers, default=0) + 1

    if payment is None:
        payment = liability.payment_amount
    if payment is None and periods is None:
        periods = max(len(upcoming), 1)
    end_date = liability.target_payoff_date if use_target_date else None
    if end_date is not None and end_date < start_date:
        # Past the payoff date: everything left falls due at once.
        end_date, periods = None, 1

    rows: list[ScheduleRow] = []
    if balance > ZERO:
        options: dict[str, Any] = {}
        if max_periods is not None:
            options["max_periods"] = max_periods
        rows = generate_schedule(
            balance,
            liability.interest_rate,
            payment,
            start_date,
            liability.frequency,
            interest_included=liability.interest_included,
            starting_payment_number=starting_number,
            end_date=end_date,
            periods=periods,
            **options,
        )
        if rows and first_period_interest:
            rows[0].interest += first_period_interest
            if liability.interest_included:
                rows[0].amount += first_period_interest

    verify_schedule(uow, liability, user_id=user_id, pending=rows)
    uow.schedules.delete_upcoming(liability.id, user_id=user_id)
    entries = uow.schedules.insert_many(
        entries_from_rows(rows, liability_id=liability.id), user_id=user_id
    )
    if balance <= ZERO:
        liability_fields.setdefault("status", LiabilityStatus.PAID_OFF.value)
    liability = uow.liabilities.update_fields(
        liability.id,
        liability.version,
        user_id=user_id,
        next_due_date=entries[0].due_date if entries else None,
        **liability_fields,
    )
    return entries, liability


def _carry_into(
    uow: LedgerUnitOfWork,
    target: ScheduleEntry,
    *,
    amount: Decimal,
    principal: Decimal,
    interest: Decimal,
    source_entry_id: int,
    user_id: int,
) -> ScheduleEntry:
    return uow.schedules.update(
        target.id,
        target.version,
        user_id=user_id,
        amount=to_money(target.amount) + amount,
        principal_component=to_money(target.principal_component) + principal,
        interest_component=to_money(target.interest_component) + interest,
        carried_amount=to_money(target.carried_amount) + amount,
        source_entry_id=source_entry_id,
    )


def _ensure_mutable(entry: ScheduleEntry) -> None:
    if not entry.is_mutable:
        raise EntryNotMutableError(
            f"Schedule entry {entry.id} is {entry.status} and can no longer change",
            entry_id=entry.id,
            status=entry.status,
        )


def _index_of(entries: list[ScheduleEntry], entry_id: int) -> int:
    for index, candidate in enumerate(entries):
        if candidate.id == entry_id:
            return index
    raise NotFoundError("schedule entry", entry_id)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


@ledger_operation
def skip_entry(
    store: LedgerStore,
    entry_id: int,
    policy: SkipPolicy | str,
    *,
    user_id: int,
    on: Optional[date] = None,
) -> SkipImpact:
    """Cancel an upcoming entry and carry its amount elsewhere.

    ``add_to_next`` folds it into the following entry, ``add_to_end`` appends
    a carry-over entry one period after the last, ``spread_across`` splits it
    evenly over every remaining entry with the remainder cents on the last.
    A standalone bill is simply cancelled.
    """

    policy = SkipPolicy(policy)
    if policy is SkipPolicy.PREPAID:
        raise ValidationError("Prepaid skips are created by extra payments only")
    on = on or date.today()

    with store.unit_of_work() as uow:
        entry = require_entry(uow, entry_id, user_id=user_id)
        if entry.status == ScheduleStatus.CANCELLED and entry.skip_policy == policy.value:
            return SkipImpact(entry.id, policy, to_money(entry.amount), already_applied=True)
        _ensure_mutable(entry)
        if entry.liability_id is None:
            # Standalone bills have nothing to carry into.
            uow.schedules.update(
                entry.id,
                entry.version,
                user_id=user_id,
                status=ScheduleStatus.CANCELLED.value,
                skip_policy=policy.value,
                skipped_on=on,
            )
            return SkipImpact(entry.id, policy, to_money(entry.amount))
        liability = uow.liabilities.require(entry.liability_id, user_id=user_id)

        upcoming = upcoming_entries(uow, liability.id, user_id=user_id)
        index = _index_of(upcoming, entry.id)
        others = upcoming[:index] + upcoming[index + 1 :]
        amount = to_money(entry.amount)
        principal = to_money(entry.principal_component)
        interest = to_money(entry.interest_component)

        if policy is SkipPolicy.ADD_TO_NEXT and index + 1 >= len(upcoming):
            raise ValidationError("No later upcoming entry to carry the skipped amount into", entry_id=entry.id)
        if policy is SkipPolicy.SPREAD_ACROSS and not others:
            raise ValidationError("No other upcoming entries to spread the skipped amount over", entry_id=entry.id)

        uow.schedules.update(
            entry.id,
            entry.version,
            user_id=user_id,
            status=ScheduleStatus.CANCELLED.value,
            skip_policy=policy.value,
            skipped_on=on,
        )

        targets: list[int] = []
        if policy is SkipPolicy.ADD_TO_NEXT:
            updated = _carry_into(
                uow,
                upcoming[index + 1],
                amount=amount,
                principal=principal,
                interest=interest,
                source_entry_id=entry.id,
                user_id=user_id,
            )
            targets.append(updated.id)
        elif policy is SkipPolicy.ADD_TO_END:
            last = upcoming[-1]
            numbers = [e.payment_number for e in upcoming if e.payment_number is not None]
            carry = ScheduleEntry(
                liability_id=liability.id,
                due_date=advance_date(last.due_date, liability.frequency, 1),
                amount=amount,
                principal_component=principal,
                interest_component=interest,
                remaining_balance=ZERO,
                payment_number=max(numbers) + 1 if numbers else None,
                entry_kind=EntryKind.SKIP_CARRYOVER.value,
                skip_policy=policy.value,
                source_entry_id=entry.id,
                carried_amount=amount,
            )
            targets.extend(e.id for e in uow.schedules.insert_many([carry], user_id=user_id))
        else:
            principal_shares = split_evenly(principal, len(others))
            interest_shares = split_evenly(interest, len(others))
            for target, p_share, i_share in zip(others, principal_shares, interest_shares):
                share = p_share + i_share if liability.interest_included else p_share
                updated = _carry_into(
                    uow,
                    target,
                    amount=share,
                    principal=p_share,
                    interest=i_share,
                    source_entry_id=entry.id,
                    user_id=user_id,
                )
                targets.append(updated.id)

        _restate_balances(uow, liability, user_id=user_id)
        verify_schedule(uow, liability, user_id=user_id)
        liability = refresh_next_due(uow, liability, user_id=user_id)

    logger.info(
        "Schedule entry skipped",
        extra={"entry_id": entry_id, "policy": policy.value, "amount": str(amount)},
    )
    return SkipImpact(entry_id, policy, amount, targets, liability.next_due_date)


@ledger_operation
def change_due_date(
    store: LedgerStore,
    entry_id: int,
    new_date: date,
    *,
    user_id: int,
    today: Optional[date] = None,
) -> DateChangeImpact:
    """Postpone or advance an upcoming entry.

    The new date may not be in the past or after the liability's target
    payoff date.
    """

    today = today or date.today()
    with store.unit_of_work() as uow:
        entry = require_entry(uow, entry_id, user_id=user_id)
        _ensure_mutable(entry)
        previous = entry.due_date
        if previous == new_date:
            return DateChangeImpact(entry.id, previous, new_date, already_applied=True)
        if new_date < today:
            raise DateOutOfRangeError(
                "New due date is in the past", new_date=new_date.isoformat(), today=today.isoformat()
            )

        liability = None
        if entry.liability_id is not None:
            liability = uow.liabilities.require(entry.liability_id, user_id=user_id)
            if liability.target_payoff_date and new_date > liability.target_payoff_date:
                raise DateOutOfRangeError(
                    "New due date falls after the target payoff date",
                    new_date=new_date.isoformat(),
                    target_payoff_date=liability.target_payoff_date.isoformat(),
                )

        uow.schedules.update(
            entry.id,
            entry.version,
            user_id=user_id,
            due_date=new_date,
            original_due_date=entry.original_due_date or previous,
            postponed_on=today,
        )

        if liability is None:
            return DateChangeImpact(entry.id, previous, new_date)

        before = liability.next_due_date
        _restate_balances(uow, liability, user_id=user_id)
        liability = refresh_next_due(uow, liability, user_id=user_id)

    logger.info(
        "Schedule entry rescheduled",
        extra={"entry_id": entry_id, "from": previous.isoformat(), "to": new_date.isoformat()},
    )
    return DateChangeImpact(
        entry_id,
        previous,
        new_date,
        next_due_date=liability.next_due_date,
        next_due_changed=liability.next_due_date != before,
    )


def _reamortize(
    uow: LedgerUnitOfWork,
    liability: Liability,
    entry: ScheduleEntry,
    value: Decimal,
    audit: dict[str, Any],
    *,
    user_id: int,
) -> list[int]:
    """Regenerate the tail at payment *value*; the payoff date follows the new term."""

    entries, liability = rebuild_upcoming(
        uow,
        liability,
        user_id=user_id,
        payment=value,
        use_target_date=False,
        payment_amount=value,
    )
    if entries:
        uow.liabilities.update_fields(
            liability.id, liability.version, user_id=user_id, target_payoff_date=entries[-1].due_date
        )
        changed = next((e for e in entries if e.due_date == entry.due_date), entries[0])
        uow.schedules.update(changed.id, changed.version, user_id=user_id, **audit)
    return [e.id for e in entries]


def _shift_difference(
    uow: LedgerUnitOfWork,
    liability: Liability,
    entry: ScheduleEntry,
    value: Decimal,
    mode: AmountChangeMode,
    audit: dict[str, Any],
    *,
    user_id: int,
) -> list[int]:
    """Re-amount one entry and move the principal difference onto another."""

    interest = to_money(entry.interest_component) if liability.interest_included else ZERO
    new_principal = value - interest
    if new_principal < ZERO:
        raise ValidationError(
            "New amount does not cover the entry's interest",
            amount=value,
            interest=interest,
        )
    delta = new_principal - to_money(entry.principal_component)

    upcoming = upcoming_entries(uow, liability.id, user_id=user_id)
    later = upcoming[_index_of(upcoming, entry.id) + 1 :]
    if mode is AmountChangeMode.ADD_TO_NEXT:
        if not later:
            raise ValidationError("No later upcoming entry to absorb the difference", entry_id=entry.id)
        absorber: Optional[ScheduleEntry] = later[0]
    else:
        absorber = later[-1] if later else None

    if absorber is not None and to_money(absorber.principal_component) - delta < ZERO:
        raise ValidationError(
            "Change exceeds what the remaining schedule can absorb",
            entry_id=entry.id,
            delta=delta,
        )
    if absorber is None and delta > ZERO:
        raise ValidationError("Amount exceeds the remaining balance", entry_id=entry.id, delta=delta)

    uow.schedules.update(
        entry.id,
        entry.version,
        user_id=user_id,
        amount=value,
        principal_component=new_principal,
        **audit,
    )
    adjusted = [entry.id]
    if absorber is not None:
        absorbed_amount = to_money(absorber.amount) - delta
        patch: dict[str, Any] = {
            "amount": absorbed_amount,
            "principal_component": to_money(absorber.principal_component) - delta,
            "carried_amount": to_money(absorber.carried_amount) - delta,
            "source_entry_id": entry.id,
        }
        if absorbed_amount <= ZERO:
            patch["status"] = ScheduleStatus.CANCELLED.value
        uow.schedules.update(absorber.id, absorber.version, user_id=user_id, **patch)
        adjusted.append(absorber.id)
    elif delta < ZERO:
        # The last entry shrank; the difference still has to be paid.
        carry = ScheduleEntry(
            liability_id=liability.id,
            due_date=advance_date(entry.due_date, liability.frequency, 1),
            amount=-delta,
            principal_component=-delta,
            interest_component=ZERO,
            remaining_balance=ZERO,
            payment_number=(entry.payment_number + 1) if entry.payment_number is not None else None,
            entry_kind=EntryKind.SKIP_CARRYOVER.value,
            source_entry_id=entry.id,
            carried_amount=-delta,
        )
        adjusted.extend(e.id for e in uow.schedules.insert_many([carry], user_id=user_id))

    _restate_balances(uow, liability, user_id=user_id)
    verify_schedule(uow, liability, user_id=user_id)
    refresh_next_due(uow, liability, user_id=user_id)
    return adjusted


@ledger_operation
def change_amount(
    store: LedgerStore,
    entry_id: int,
    new_amount: Number,
    mode: AmountChangeMode | str,
    *,
    user_id: int,
    today: Optional[date] = None,
) -> AmountChangeImpact:
    """Change an upcoming entry's amount.

    ``one_time`` lets the last upcoming entry absorb the principal difference,
    ``add_to_next`` pushes it into the following entry, and ``update_all``
    re-amortizes the tail at the new periodic payment.
    """

    mode = AmountChangeMode(mode)
    value = to_money(new_amount)
    if value <= ZERO:
        raise ValidationError("Amount must be positive", amount=value)
    today = today or date.today()

    with store.unit_of_work() as uow:
        entry = require_entry(uow, entry_id, user_id=user_id)
        _ensure_mutable(entry)
        previous = to_money(entry.amount)
        audit = {
            "original_amount": entry.original_amount if entry.original_amount is not None else previous,
            "amount_changed_on": today,
        }

        if entry.liability_id is None:
            if previous == value:
                return AmountChangeImpact(entry.id, mode, previous, value, already_applied=True)
            uow.schedules.update(
                entry.id, entry.version, user_id=user_id, amount=value, principal_component=value, **audit
            )
            return AmountChangeImpact(entry.id, mode, previous, value, [entry.id])

        liability = uow.liabilities.require(entry.liability_id, user_id=user_id)
        new_payment: Optional[Decimal] = None
        if mode is AmountChangeMode.UPDATE_ALL:
            if previous == value and to_money(liability.payment_amount) == value:
                return AmountChangeImpact(
                    entry.id, mode, previous, value, new_payment_amount=value, already_applied=True
                )
            adjusted = _reamortize(uow, liability, entry, value, audit, user_id=user_id)
            new_payment = value
        else:
            if previous == value:
                return AmountChangeImpact(entry.id, mode, previous, value, already_applied=True)
            adjusted = _shift_difference(uow, liability, entry, value, mode, audit, user_id=user_id)

    logger.info(
        "Schedule entry amount changed",
        extra={"entry_id": entry_id, "mode": mode.value, "from": str(previous), "to": str(value)},
    )
    return AmountChangeImpact(entry_id, mode, previous, value, adjusted, new_payment)


def _record_extra_payment(
    uow: LedgerUnitOfWork,
    liability: Liability,
    amount: Decimal,
    *,
    user_id: int,
    on: date,
    account_id: Optional[int],
    idempotency_key: Optional[str],
) -> tuple[LiabilityPayment, Liability]:
    transaction_id = None
    if account_id is not None:
        transaction = spend_from_bucket(
            uow,
            BucketRef.personal(account_id),
            amount,
            user_id=user_id,
            on=on,
            memo=f"Extra payment toward {liability.name}",
            category="liability_payment",
            liability_id=liability.id,
        )
        transaction_id = transaction.id

    liability = uow.liabilities.adjust_balance(liability.id, -amount, user_id=user_id)
    [entry] = uow.schedules.insert_many(
        [
            ScheduleEntry(
                liability_id=liability.id,
                due_date=on,
                amount=amount,
                principal_component=amount,
                interest_component=ZERO,
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
            account_id=account_id,
            amount=amount,
            principal_component=amount,
            paid_on=on,
            transaction_id=transaction_id,
            schedule_entry_id=entry.id,
            idempotency_key=idempotency_key,
            note="Extra payment",
        ),
        user_id=user_id,
    )
    return payment, liability


@ledger_operation
def apply_extra_payment(
    store: LedgerStore,
    liability_id: int,
    amount: Number,
    strategy: ExtraPaymentStrategy | str,
    *,
    user_id: int,
    skip_count: Optional[int] = None,
    account_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
    on: Optional[date] = None,
) -> ExtraPaymentImpact:
    """Pay down principal outside the schedule, then reshape the remaining entries.

    ``reduce_payment`` keeps the number of remaining payments and lowers the
    payment; ``reduce_term`` keeps the payment and ends sooner;
    ``skip_payments`` prepays the next N entries (interest keeps accruing and
    is charged to the first entry after them); ``reduce_principal`` keeps the
    payment and the payoff date.
    """

    strategy = ExtraPaymentStrategy(strategy)
    value = to_money(amount)
    if value <= ZERO:
        raise ValidationError("Extra payment must be positive", amount=value)
    on = on or date.today()

    with store.unit_of_work() as uow:
        if idempotency_key:
            existing = uow.payments.find_by_idempotency_key(idempotency_key, user_id=user_id)
            if existing is not None:
                return ExtraPaymentImpact(
                    liability_id=existing.liability_id,
                    amount=to_money(existing.amount),
                    strategy=strategy,
                    new_balance=to_money(
                        uow.liabilities.require(existing.liability_id, user_id=user_id).current_balance
                    ),
                    payment_id=existing.id,
                    already_applied=True,
                )

        liability = uow.liabilities.require(liability_id, user_id=user_id)
        if not liability.is_active:
            raise ValidationError("Liability is not active", liability_id=liability_id, status=liability.status)
        if value > to_money(liability.current_balance):
            raise ValidationError(
                "Extra payment exceeds the remaining balance",
                amount=value,
                current_balance=to_money(liability.current_balance),
            )

        upcoming = upcoming_entries(uow, liability.id, user_id=user_id)
        previous_payment = to_money(liability.payment_amount) if liability.payment_amount is not None else None
        previous_interest = money_sum(e.interest_component for e in upcoming)

        skipped = 0
        if strategy is ExtraPaymentStrategy.SKIP_PAYMENTS:
            skipped = skip_count if skip_count is not None else int(value // (previous_payment or value))
            if not 0 < skipped < len(upcoming):
                raise ValidationError(
                    "Number of payments to skip must leave at least one upcoming entry",
                    skip_count=skipped,
                    upcoming=len(upcoming),
                )
        elif strategy is ExtraPaymentStrategy.REDUCE_PAYMENT and not upcoming:
            raise ValidationError("No upcoming entries to re-amortize", liability_id=liability_id)

        payment, liability = _record_extra_payment(
            uow,
            liability,
            value,
            user_id=user_id,
            on=on,
            account_id=account_id,
            idempotency_key=idempotency_key,
        )
        new_balance = to_money(liability.current_balance)

        if new_balance <= ZERO:
            entries, liability = rebuild_upcoming(uow, liability, user_id=user_id, last_payment_date=on)
        elif strategy is ExtraPaymentStrategy.REDUCE_PAYMENT:
            reduced = calculate_payment_amount(
                new_balance, liability.interest_rate, len(upcoming), liability.frequency
            )
            entries, liability = rebuild_upcoming(
                uow,
                liability,
                user_id=user_id,
                payment=reduced,
                periods=len(upcoming),
                payment_amount=reduced,
                last_payment_date=on,
            )
        elif strategy is ExtraPaymentStrategy.REDUCE_TERM:
            term = calculate_loan_term(
                new_balance, liability.interest_rate, liability.payment_amount, liability.frequency
            )
            if term is None:
                raise ValidationError("Payment does not cover interest on the new balance")
            entries, liability = rebuild_upcoming(
                uow,
                liability,
                user_id=user_id,
                periods=max(term, 1),
                use_target_date=False,
                last_payment_date=on,
            )
            if entries:
                liability = uow.liabilities.update_fields(
                    liability.id,
                    liability.version,
                    user_id=user_id,
                    target_payoff_date=entries[-1].due_date,
                )
        elif strategy is ExtraPaymentStrategy.SKIP_PAYMENTS:
            for prepaid in upcoming[:skipped]:
                uow.schedules.update(
                    prepaid.id,
                    prepaid.version,
                    user_id=user_id,
                    status=ScheduleStatus.CANCELLED.value,
                    prepaid=True,
                    skip_policy=SkipPolicy.PREPAID.value,
                    skipped_on=on,
                )
            resume = upcoming[skipped]
            accrued = to_money(new_balance * period_rate(liability.interest_rate, liability.frequency)) * skipped
            entries, liability = rebuild_upcoming(
                uow,
                liability,
                user_id=user_id,
                start_date=resume.due_date,
                starting_number=resume.payment_number,
                first_period_interest=accrued,
                last_payment_date=on,
            )
        else:
            entries, liability = rebuild_upcoming(uow, liability, user_id=user_id, last_payment_date=on)

    impact = ExtraPaymentImpact(
        liability_id=liability_id,
        amount=value,
        strategy=strategy,
        new_balance=new_balance,
        previous_payment=previous_payment,
        new_payment=to_money(liability.payment_amount) if liability.payment_amount is not None else None,
        previous_periods=len(upcoming),
        new_periods=len(entries) + skipped,
        interest_saved=previous_interest - money_sum(e.interest_component for e in entries),
        entries_skipped=skipped,
        payment_id=payment.id,
    )
    logger.info(
        "Extra payment applied",
        extra={
            "liability_id": liability_id,
            "amount": str(value),
            "strategy": strategy.value,
            "new_balance": str(new_balance),
        },
    )
    return impact


@ledger_operation
def regenerate_tail(store: LedgerStore, liability_id: int, *, user_id: int) -> list[ScheduleEntry]:
    """Rebuild the upcoming entries from the liability's current balance."""

    with store.unit_of_work() as uow:
        liability = uow.liabilities.require(liability_id, user_id=user_id)
        entries, _ = rebuild_upcoming(uow, liability, user_id=user_id)
    logger.info("Schedule tail regenerated", extra={"liability_id": liability_id, "entries": len(entries)})
    return entries


@ledger_operation
def list_schedule(
    store: LedgerStore,
    liability_id: int,
    *,
    user_id: int,
    status: Optional[ScheduleStatus] = None,
) -> list[ScheduleEntry]:
    with store.unit_of_work() as uow:
        uow.liabilities.require(liability_id, user_id=user_id)
        return uow.schedules.list_for_liability(liability_id, user_id=user_id, status=status)


@ledger_operation
def preview_extra_payment(
    store: LedgerStore, liability_id: int, amount: Number, *, user_id: int
) -> list[ExtraPaymentOption]:
    """What each extra-payment strategy would do, without applying any."""

    with store.unit_of_work() as uow:
        liability = uow.liabilities.require(liability_id, user_id=user_id)
        upcoming = upcoming_entries(uow, liability.id, user_id=user_id)
        if not upcoming or liability.payment_amount is None:
            return []
        return extra_payment_options(
            balance=liability.current_balance,
            annual_rate_pct=liability.interest_rate,
            payment_amount=liability.payment_amount,
            first_due_date=upcoming[0].due_date,
            remaining_periods=len(upcoming),
            extra_amount=amount,
            frequency=liability.frequency,
            end_date=liability.target_payoff_date,
        )


__all__ = [
    "AmountChangeImpact",
    "AmountChangeMode",
    "DateChangeImpact",
    "ExtraPaymentImpact",
    "SkipImpact",
    "apply_extra_payment",
    "change_amount",
    "change_due_date",
    "entries_from_rows",
    "list_schedule",
    "preview_extra_payment",
    "rebuild_upcoming",
    "refresh_next_due",
    "regenerate_tail",
    "skip_entry",
    "upcoming_entries",
    "verify_schedule",
]
