"""Settlement reconciler: drive a liability's owed and tagged balances to zero before deletion.

A liability is deletable only when both its remaining balance and the money
still tagged to it across accounts are zero. Callers reach that state with an
ordered list of adjustments and, for whatever is left, one terminal action:

* ``forgive_debt`` clears an owed residual and leaves money where it is;
* ``erase_funds`` clears a tagged residual; the debt stays recorded as a loss.

Planning is pure. Execution applies the whole plan in one unit of work and
checks the residuals again before soft-deleting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence

from ..domain.buckets import BucketRef
from ..domain.errors import InvariantViolationError, ValidationError
from ..domain.money import ZERO, money_sum, to_money
from ..domain.repositories import LedgerStore, LedgerUnitOfWork
from ..domain.results import ledger_operation
from ..models.payment import LiabilityPayment
from .buckets import BucketPortion, liability_portions
from .transfers import move_funds, spend_from_bucket

logger = logging.getLogger(__name__)


class AdjustmentType(str, Enum):
    REPAYMENT = "repayment"
    REFUND = "refund"
    CONVERT_TO_PERSONAL = "convert_to_personal"
    EXPENSE_WRITEOFF = "expense_writeoff"


class FinalAction(str, Enum):
    FORGIVE_DEBT = "forgive_debt"
    ERASE_FUNDS = "erase_funds"


@dataclass(slots=True)
class SettlementAdjustment:
    kind: AdjustmentType
    account_id: int
    amount: Decimal
    note: str = ""


@dataclass(slots=True)
class SettlementStatus:
    liability_id: int
    remaining_owed: Decimal
    tagged_funds: Decimal
    total_loan: Decimal
    accounts_with_funds: list[BucketPortion] = field(default_factory=list)

    @property
    def overfunded_by(self) -> Decimal:
        """Tagged money beyond what is still owed."""
        return max(self.tagged_funds - self.remaining_owed, ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.remaining_owed == ZERO and self.tagged_funds == ZERO

    @property
    def needs_settlement(self) -> bool:
        return not self.is_balanced

    def tagged_in(self, account_id: int) -> Decimal:
        return money_sum(p.amount for p in self.accounts_with_funds if p.account_id == account_id)


@dataclass(slots=True)
class PlannedStep:
    """One balance movement of a settlement plan.

    ``from_tagged`` and ``from_personal`` are what leaves each bucket;
    ``owed_delta`` is the change to the liability balance.
    """

    kind: AdjustmentType | FinalAction
    account_id: Optional[int]
    amount: Decimal
    from_tagged: Decimal = ZERO
    from_personal: Decimal = ZERO
    owed_delta: Decimal = ZERO
    note: str = ""


@dataclass(slots=True)
class SettlementPlan:
    liability_id: int
    steps: list[PlannedStep]
    final_action: Optional[FinalAction]
    remaining_owed: Decimal
    tagged_funds: Decimal

    @property
    def forgiven(self) -> Decimal:
        return money_sum(-s.owed_delta for s in self.steps if s.kind is FinalAction.FORGIVE_DEBT)

    @property
    def erased(self) -> Decimal:
        return money_sum(s.from_tagged for s in self.steps if s.kind is FinalAction.ERASE_FUNDS)

    @property
    def settles(self) -> bool:
        return self.remaining_owed == ZERO and self.tagged_funds == ZERO


@dataclass(slots=True)
class SettlementOutcome:
    liability_id: int
    plan: SettlementPlan
    payment_ids: list[int] = field(default_factory=list)
    cancelled_entries: int = 0
    deleted_at: Optional[datetime] = None


def load_status(uow: LedgerUnitOfWork, liability_id: int, *, user_id: int) -> SettlementStatus:
    liability = uow.liabilities.require(liability_id, user_id=user_id)
    portions = liability_portions(uow, liability_id, user_id=user_id)
    return SettlementStatus(
        liability_id=liability_id,
        remaining_owed=to_money(liability.current_balance),
        tagged_funds=money_sum(p.amount for p in portions),
        total_loan=to_money(liability.original_amount),
        accounts_with_funds=portions,
    )


def plan_settlement(
    status: SettlementStatus,
    adjustments: Sequence[SettlementAdjustment],
    final_action: Optional[FinalAction | str] = None,
) -> SettlementPlan:
    """Project adjustments onto *status* without touching any balance.

    Raises ``ValidationError`` when an adjustment exceeds what is owed or
    tagged, when a residual is left without a matching terminal action, or
    when a terminal action has nothing to resolve.
    """

    owed = status.remaining_owed
    tagged = {p.account_id: p.amount for p in status.accounts_with_funds}
    steps: list[PlannedStep] = []

    for adjustment in adjustments:
        kind = AdjustmentType(adjustment.kind)
        amount = to_money(adjustment.amount)
        account_id = adjustment.account_id
        if amount <= ZERO:
            raise ValidationError("Adjustment amount must be positive", kind=kind.value, amount=amount)
        in_account = tagged.get(account_id, ZERO)

        if kind is AdjustmentType.REPAYMENT:
            if amount > owed:
                raise ValidationError(
                    "Repayment exceeds the remaining balance", amount=amount, remaining_owed=owed
                )
            from_tagged = min(amount, in_account)
            step = PlannedStep(
                kind,
                account_id,
                amount,
                from_tagged=from_tagged,
                from_personal=amount - from_tagged,
                owed_delta=-amount,
                note=adjustment.note,
            )
            owed -= amount
        else:
            if amount > in_account:
                raise ValidationError(
                    f"{kind.value} exceeds the funds tagged in account {account_id}",
                    account_id=account_id,
                    amount=amount,
                    available=in_account,
                )
            step = PlannedStep(kind, account_id, amount, from_tagged=amount, note=adjustment.note)
        tagged[account_id] = in_account - step.from_tagged
        steps.append(step)

    tagged_left = money_sum(tagged.values())
    action = FinalAction(final_action) if final_action is not None else None

    if owed > ZERO and tagged_left > ZERO:
        raise ValidationError(
            "Both the balance and tagged funds remain; adjust one side first",
            remaining_owed=owed,
            tagged_funds=tagged_left,
        )
    if owed == ZERO and tagged_left == ZERO:
        if action is not None:
            raise ValidationError("Nothing left to resolve", final_action=action.value)
    elif owed > ZERO:
        if action is not FinalAction.FORGIVE_DEBT:
            raise ValidationError("A remaining balance can only be forgiven", remaining_owed=owed)
        steps.append(PlannedStep(action, None, owed, owed_delta=-owed))
        owed = ZERO
    else:
        if action is not FinalAction.ERASE_FUNDS:
            raise ValidationError("Remaining tagged funds can only be erased", tagged_funds=tagged_left)
        for account_id, amount in tagged.items():
            if amount > ZERO:
                steps.append(PlannedStep(action, account_id, amount, from_tagged=amount))
                tagged[account_id] = ZERO
        tagged_left = ZERO

    return SettlementPlan(
        liability_id=status.liability_id,
        steps=steps,
        final_action=action,
        remaining_owed=owed,
        tagged_funds=tagged_left,
    )


def _apply_step(
    uow: LedgerUnitOfWork,
    liability_id: int,
    step: PlannedStep,
    *,
    user_id: int,
    on: date,
) -> Optional[int]:
    borrowed = BucketRef.borrowed(step.account_id, liability_id) if step.account_id is not None else None
    memo = step.note or f"Settlement {step.kind.value}"

    if step.kind is AdjustmentType.REPAYMENT:
        transaction = None
        if step.from_tagged > ZERO:
            transaction = spend_from_bucket(
                uow, borrowed, step.from_tagged,
                user_id=user_id, on=on, memo=memo, category="liability_payment",
            )
        if step.from_personal > ZERO:
            transaction = spend_from_bucket(
                uow, BucketRef.personal(step.account_id), step.from_personal,
                user_id=user_id, on=on, memo=memo, category="liability_payment", liability_id=liability_id,
            )
        uow.liabilities.adjust_balance(liability_id, step.owed_delta, user_id=user_id)
        payment = uow.payments.record(
            LiabilityPayment(
                liability_id=liability_id,
                account_id=step.account_id,
                amount=step.amount,
                principal_component=step.amount,
                paid_on=on,
                transaction_id=transaction.id if transaction else None,
                note=memo,
            ),
            user_id=user_id,
        )
        return payment.id
    if step.kind is AdjustmentType.CONVERT_TO_PERSONAL:
        move_funds(
            uow, borrowed, BucketRef.personal(step.account_id), step.amount,
            user_id=user_id, on=on, memo=memo, category="reclassification",
        )
    elif step.kind is AdjustmentType.REFUND:
        spend_from_bucket(uow, borrowed, step.amount, user_id=user_id, on=on, memo=memo, category="refund")
    elif step.kind is AdjustmentType.EXPENSE_WRITEOFF:
        spend_from_bucket(uow, borrowed, step.amount, user_id=user_id, on=on, memo=memo, category="expense")
    elif step.kind is FinalAction.FORGIVE_DEBT:
        uow.liabilities.adjust_balance(liability_id, step.owed_delta, user_id=user_id)
    elif step.kind is FinalAction.ERASE_FUNDS:
        spend_from_bucket(uow, borrowed, step.from_tagged, user_id=user_id, on=on, memo=memo, category="erased")
    return None


@ledger_operation
def check_settlement_status(store: LedgerStore, liability_id: int, *, user_id: int) -> SettlementStatus:
    with store.unit_of_work() as uow:
        return load_status(uow, liability_id, user_id=user_id)


@ledger_operation
def preview_settlement(
    store: LedgerStore,
    liability_id: int,
    adjustments: Sequence[SettlementAdjustment] = (),
    final_action: Optional[FinalAction | str] = None,
    *,
    user_id: int,
) -> SettlementPlan:
    with store.unit_of_work() as uow:
        status = load_status(uow, liability_id, user_id=user_id)
    return plan_settlement(status, adjustments, final_action)


@ledger_operation
def execute_settlement(
    store: LedgerStore,
    liability_id: int,
    adjustments: Sequence[SettlementAdjustment] = (),
    final_action: Optional[FinalAction | str] = None,
    *,
    user_id: int,
    on: Optional[date] = None,
) -> SettlementOutcome:
    """Apply a settlement plan and soft-delete the liability in one transaction.

    Nothing is written when the plan does not validate. If the balances do
    not come out at zero the whole unit of work is rolled back.
    """

    on = on or date.today()
    with store.unit_of_work() as uow:
        plan = plan_settlement(load_status(uow, liability_id, user_id=user_id), adjustments, final_action)
        outcome = SettlementOutcome(liability_id=liability_id, plan=plan)
        for step in plan.steps:
            payment_id = _apply_step(uow, liability_id, step, user_id=user_id, on=on)
            if payment_id is not None:
                outcome.payment_ids.append(payment_id)

        after = load_status(uow, liability_id, user_id=user_id)
        if not after.is_balanced:
            raise InvariantViolationError(
                "Settlement left a residual",
                liability_id=liability_id,
                remaining_owed=after.remaining_owed,
                tagged_funds=after.tagged_funds,
            )

        outcome.cancelled_entries = uow.schedules.cancel_upcoming(liability_id, user_id=user_id)
        liability = uow.liabilities.require(liability_id, user_id=user_id)
        deleted = uow.liabilities.soft_delete(liability.id, liability.version, user_id=user_id)
        outcome.deleted_at = deleted.deleted_at

    logger.info(
        "Liability settled and deleted",
        extra={
            "liability_id": liability_id,
            "steps": [step.kind.value for step in plan.steps],
            "forgiven": str(plan.forgiven),
            "erased": str(plan.erased),
        },
    )
    return outcome


__all__ = [
    "AdjustmentType",
    "FinalAction",
    "PlannedStep",
    "SettlementAdjustment",
    "SettlementOutcome",
    "SettlementPlan",
    "SettlementStatus",
    "check_settlement_status",
    "execute_settlement",
    "load_status",
    "plan_settlement",
    "preview_settlement",
]
