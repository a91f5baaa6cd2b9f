"""Liability lifecycle: creation with disbursements, later draws, payments, goals and accounts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from ..domain.buckets import BucketRef
from ..domain.errors import ValidationError
from ..domain.money import ZERO, Number, money_sum, to_money
from ..domain.repositories import LedgerStore, LedgerUnitOfWork
from ..domain.results import ledger_operation
from ..models.account import Account, AccountType
from ..models.goal import Goal
from ..models.liability import Liability, PaymentFrequency
from ..models.payment import LiabilityPayment
from ..models.schedule import EntryKind, ScheduleEntry, ScheduleStatus
from ..models.transaction import Transaction
from .allocation import PaymentReport, build_allocation, default_interest, pay_liabilities
from .amortization import (
    ScheduleRow,
    advance_date,
    calculate_payment_amount,
    count_periods,
    generate_schedule,
    period_rate,
)
from .buckets import load_breakdown
from .schedules import rebuild_upcoming
from .transfers import TransferReceipt, move_funds

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LiabilityDraft:
    """Terms of a new liability.

    Either ``payment_amount``, ``periods`` or ``target_payoff_date`` must be
    given; a missing payment is the annuity for the term.
    """

    name: str
    original_amount: Decimal
    start_date: date
    interest_rate: Decimal = ZERO
    payment_amount: Optional[Decimal] = None
    frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    periods: Optional[int] = None
    target_payoff_date: Optional[date] = None
    interest_included: bool = True


@dataclass(slots=True)
class Disbursement:
    account_id: int
    amount: Decimal


@dataclass(slots=True)
class InitialPayment:
    """A payment made before the liability was tracked."""

    amount: Decimal
    paid_on: date
    interest: Decimal = ZERO

    @property
    def principal(self) -> Decimal:
        return to_money(self.amount) - to_money(self.interest)


@dataclass(slots=True)
class LiabilityCreated:
    liability: Liability
    schedule: list[ScheduleEntry] = field(default_factory=list)
    disbursed: Decimal = ZERO


def _validate_draft(draft: LiabilityDraft) -> None:
    if not draft.name or not draft.name.strip():
        raise ValidationError("Liability name is required")
    if to_money(draft.original_amount) <= ZERO:
        raise ValidationError("Original amount must be positive", original_amount=draft.original_amount)
    period_rate(draft.interest_rate, draft.frequency)
    if draft.payment_amount is not None and to_money(draft.payment_amount) <= ZERO:
        raise ValidationError("Payment amount must be positive", payment_amount=draft.payment_amount)
    if draft.periods is not None and draft.periods <= 0:
        raise ValidationError("Number of periods must be positive", periods=draft.periods)
    if draft.target_payoff_date is not None and draft.target_payoff_date < draft.start_date:
        raise ValidationError(
            "Target payoff date precedes the start date",
            start_date=draft.start_date.isoformat(),
            target_payoff_date=draft.target_payoff_date.isoformat(),
        )


def _terms(draft: LiabilityDraft) -> tuple[Decimal, Optional[int]]:
    """Resolve the periodic payment and, when known, the number of periods."""

    periods = draft.periods
    if periods is None and draft.payment_amount is None:
        if draft.target_payoff_date is None:
            raise ValidationError("A payment amount, a number of periods or a payoff date is required")
        periods = max(count_periods(draft.start_date, draft.target_payoff_date, draft.frequency), 1)
    if draft.payment_amount is not None:
        return to_money(draft.payment_amount), periods
    return calculate_payment_amount(draft.original_amount, draft.interest_rate, periods, draft.frequency), periods


def credit_disbursement(
    uow: LedgerUnitOfWork,
    liability: Liability,
    account_id: int,
    amount: Number,
    *,
    user_id: int,
    on: date,
) -> Transaction:
    """Pay borrowed principal into an account's borrowed bucket."""

    value = to_money(amount)
    if value <= ZERO:
        raise ValidationError("Disbursement amount must be positive", amount=value)
    uow.liabilities.add_disbursed(liability.id, value, user_id=user_id)
    bucket = BucketRef.borrowed(account_id, liability.id)
    uow.funds.adjust(bucket, bucket_delta=value, account_delta=value, user_id=user_id)
    return uow.transactions.record(
        Transaction(
            account_id=account_id,
            amount=value,
            bucket_type=bucket.bucket_type.value,
            reference_id=liability.id,
            liability_id=liability.id,
            category="disbursement",
            memo=f"Disbursement from {liability.name}",
            occurred_on=on,
        ),
        user_id=user_id,
    )


def _record_history(
    uow: LedgerUnitOfWork,
    liability: Liability,
    payments: Sequence[InitialPayment],
    *,
    user_id: int,
) -> None:
    balance = to_money(liability.original_amount)
    entries = []
    for index, payment in enumerate(payments):
        balance -= payment.principal
        entries.append(
            ScheduleEntry(
                liability_id=liability.id,
                due_date=advance_date(liability.start_date, liability.frequency, index),
                amount=to_money(payment.amount),
                principal_component=payment.principal,
                interest_component=to_money(payment.interest),
                remaining_balance=balance,
                payment_number=index + 1,
                status=ScheduleStatus.PAID.value,
                entry_kind=EntryKind.HISTORICAL.value,
                paid_on=payment.paid_on,
            )
        )
    for entry, payment in zip(uow.schedules.insert_many(entries, user_id=user_id), payments):
        uow.payments.record(
            LiabilityPayment(
                liability_id=liability.id,
                amount=entry.amount,
                principal_component=entry.principal_component,
                interest_component=entry.interest_component,
                paid_on=payment.paid_on,
                schedule_entry_id=entry.id,
                note="Recorded at creation",
            ),
            user_id=user_id,
        )


@ledger_operation
def create_liability(
    store: LedgerStore,
    draft: LiabilityDraft,
    *,
    user_id: int,
    disbursements: Sequence[Disbursement] = (),
    initial_payments: Sequence[InitialPayment] = (),
) -> LiabilityCreated:
    """Create a liability, pay out its disbursements and generate its schedule.

    Initial payments become paid historical entries numbered from 1; the
    generated schedule continues after them. Everything commits together.
    """

    _validate_draft(draft)
    original = to_money(draft.original_amount)
    for disbursement in disbursements:
        if to_money(disbursement.amount) <= ZERO:
            raise ValidationError("Disbursement amount must be positive", account_id=disbursement.account_id)
    disbursed = money_sum(d.amount for d in disbursements)
    if disbursed > original:
        raise ValidationError(
            "Disbursements exceed the original amount", disbursed=disbursed, original_amount=original
        )
    history = sorted(initial_payments, key=lambda p: p.paid_on)
    for payment in history:
        if to_money(payment.amount) <= ZERO or payment.principal < ZERO:
            raise ValidationError("Initial payments need a positive amount covering their interest")
    paid_principal = money_sum(p.principal for p in history)
    if paid_principal > original:
        raise ValidationError(
            "Initial payments exceed the original amount", paid=paid_principal, original_amount=original
        )
    payment_amount, periods = _terms(draft)
    remaining_periods = max(periods - len(history), 1) if periods is not None else None
    on = draft.start_date

    with store.unit_of_work() as uow:
        liability = uow.liabilities.create(
            Liability(
                name=draft.name.strip(),
                original_amount=original,
                current_balance=original - paid_principal,
                interest_rate=Decimal(str(draft.interest_rate or 0)),
                payment_amount=payment_amount,
                frequency=PaymentFrequency(draft.frequency).value,
                interest_included=draft.interest_included,
                start_date=draft.start_date,
                target_payoff_date=draft.target_payoff_date,
                last_payment_date=history[-1].paid_on if history else None,
            ),
            user_id=user_id,
        )
        for disbursement in disbursements:
            credit_disbursement(uow, liability, disbursement.account_id, disbursement.amount, user_id=user_id, on=on)
        if history:
            _record_history(uow, liability, history, user_id=user_id)

        liability = uow.liabilities.require(liability.id, user_id=user_id)
        entries, liability = rebuild_upcoming(uow, liability, user_id=user_id, periods=remaining_periods)

    logger.info(
        "Liability created",
        extra={
            "liability_id": liability.id,
            "original_amount": str(original),
            "disbursed": str(disbursed),
            "entries": len(entries),
        },
    )
    return LiabilityCreated(liability=liability, schedule=entries, disbursed=disbursed)


@ledger_operation
def disburse_funds(
    store: LedgerStore,
    liability_id: int,
    account_id: int,
    amount: Number,
    *,
    user_id: int,
    on: Optional[date] = None,
) -> Transaction:
    """Draw undisbursed principal into an account."""

    with store.unit_of_work() as uow:
        liability = uow.liabilities.require(liability_id, user_id=user_id)
        transaction = credit_disbursement(
            uow, liability, account_id, amount, user_id=user_id, on=on or date.today()
        )
    logger.info(
        "Funds disbursed",
        extra={"liability_id": liability_id, "account_id": account_id, "amount": str(transaction.amount)},
    )
    return transaction


@ledger_operation
def record_payment(
    store: LedgerStore,
    liability_id: int,
    amount: Number,
    source: BucketRef,
    *,
    user_id: int,
    on: Optional[date] = None,
    interest: Optional[Number] = None,
    fees: Optional[Number] = None,
    idempotency_key: Optional[str] = None,
) -> PaymentReport:
    """Pay a single liability; interest defaults to the current schedule entry."""

    with store.unit_of_work() as uow:
        liability = uow.liabilities.require(liability_id, user_id=user_id)
        allocation = build_allocation(
            liability_id,
            amount,
            interest=interest,
            fees=fees,
            default_interest=min(default_interest(uow, liability, user_id=user_id), to_money(amount)),
            current_balance=liability.current_balance,
        )
    report = pay_liabilities.raw(
        store, allocation.amount, [allocation], source, user_id=user_id, on=on, idempotency_key=idempotency_key
    )
    if report.failed:
        raise report.failed[0].error
    return report


@ledger_operation
def payment_history(store: LedgerStore, liability_id: int, *, user_id: int) -> list[LiabilityPayment]:
    """Payments recorded against a liability, oldest first."""

    with store.unit_of_work() as uow:
        uow.liabilities.require(liability_id, user_id=user_id)
        return uow.payments.list_for_liability(liability_id, user_id=user_id)


@ledger_operation
def list_liabilities(store: LedgerStore, *, user_id: int) -> list[Liability]:
    with store.unit_of_work() as uow:
        return uow.liabilities.list_active(user_id=user_id)


@ledger_operation
def total_debt(store: LedgerStore, *, user_id: int) -> Decimal:
    with store.unit_of_work() as uow:
        return uow.liabilities.get_total_debt(user_id=user_id)


def generate_payment_schedule(liability: Liability, *, start_date: Optional[date] = None) -> list[ScheduleRow]:
    """Projected schedule for a liability row from its current balance; writes nothing."""

    return generate_schedule(
        liability.current_balance,
        liability.interest_rate,
        liability.payment_amount,
        start_date or liability.next_due_date or liability.start_date,
        liability.frequency,
        interest_included=liability.interest_included,
        end_date=liability.target_payoff_date,
    )


@ledger_operation
def create_account(
    store: LedgerStore,
    name: str,
    *,
    user_id: int,
    opening_balance: Number = ZERO,
    account_type: AccountType | str = AccountType.BANK,
    currency: str = "USD",
) -> Account:
    """Open an account; the opening balance is personal money."""

    if not name or not name.strip():
        raise ValidationError("Account name is required")
    with store.unit_of_work() as uow:
        return uow.accounts.create(
            Account(
                name=name.strip(),
                balance=to_money(opening_balance),
                account_type=AccountType(account_type).value,
                currency=currency,
            ),
            user_id=user_id,
        )


@ledger_operation
def archive_account(store: LedgerStore, account_id: int, *, user_id: int) -> bool:
    """Hide an account; refused while it still holds borrowed or goal money."""

    with store.unit_of_work() as uow:
        breakdown = load_breakdown(uow, account_id, user_id=user_id)
        if breakdown.tagged_total > ZERO:
            raise ValidationError(
                "Account still holds tagged funds", account_id=account_id, tagged=breakdown.tagged_total
            )
        return uow.accounts.archive(account_id, user_id=user_id)


@ledger_operation
def list_accounts(store: LedgerStore, *, user_id: int, include_archived: bool = False) -> list[Account]:
    with store.unit_of_work() as uow:
        return uow.accounts.list_all(user_id=user_id, include_archived=include_archived)


@ledger_operation
def create_goal(
    store: LedgerStore,
    name: str,
    *,
    user_id: int,
    target_amount: Number = ZERO,
    target_date: Optional[date] = None,
) -> Goal:
    if not name or not name.strip():
        raise ValidationError("Goal name is required")
    if to_money(target_amount) < ZERO:
        raise ValidationError("Target amount must not be negative", target_amount=target_amount)
    with store.unit_of_work() as uow:
        return uow.goals.create(
            Goal(name=name.strip(), target_amount=to_money(target_amount), target_date=target_date),
            user_id=user_id,
        )


@ledger_operation
def fund_goal(
    store: LedgerStore,
    account_id: int,
    goal_id: int,
    amount: Number,
    *,
    user_id: int,
    on: Optional[date] = None,
) -> TransferReceipt:
    """Earmark personal money in *account_id* for a goal."""

    with store.unit_of_work() as uow:
        receipt = move_funds(
            uow,
            BucketRef.personal(account_id),
            BucketRef.goal(account_id, goal_id),
            amount,
            user_id=user_id,
            on=on,
            memo="Goal contribution",
            category="goal_contribution",
        )
    logger.info(
        "Goal funded",
        extra={"account_id": account_id, "goal_id": goal_id, "amount": str(receipt.amount)},
    )
    return receipt


__all__ = [
    "Disbursement",
    "InitialPayment",
    "LiabilityCreated",
    "LiabilityDraft",
    "archive_account",
    "create_account",
    "create_goal",
    "create_liability",
    "credit_disbursement",
    "disburse_funds",
    "fund_goal",
    "generate_payment_schedule",
    "list_accounts",
    "list_liabilities",
    "payment_history",
    "record_payment",
    "total_debt",
]
