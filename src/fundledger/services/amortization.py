"""Amortization math: payment schedules and loan calculators.

All amounts are cent-quantized ``Decimal`` values. Interest for a period is
``round(balance * period_rate, 2)`` and the last generated row absorbs the
rounding residual, so the principal column always sums to the principal.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Sequence

from ..domain.errors import DateOutOfRangeError, InvariantViolationError, ValidationError
from ..domain.money import CENT, ZERO, Number, money_sum, to_money, within_tolerance
from ..models.liability import PaymentFrequency

DEFAULT_MAX_PERIODS = 1200

PERIODS_PER_YEAR = {
    PaymentFrequency.DAILY: 365,
    PaymentFrequency.WEEKLY: 52,
    PaymentFrequency.BIWEEKLY: 26,
    PaymentFrequency.MONTHLY: 12,
    PaymentFrequency.QUARTERLY: 4,
    PaymentFrequency.YEARLY: 1,
}

_DAY_STEPS = {
    PaymentFrequency.DAILY: 1,
    PaymentFrequency.WEEKLY: 7,
    PaymentFrequency.BIWEEKLY: 14,
}

_MONTH_STEPS = {
    PaymentFrequency.MONTHLY: 1,
    PaymentFrequency.QUARTERLY: 3,
    PaymentFrequency.YEARLY: 12,
}


class ExtraPaymentStrategy(str, Enum):
    REDUCE_PAYMENT = "reduce_payment"
    REDUCE_TERM = "reduce_term"
    SKIP_PAYMENTS = "skip_payments"
    REDUCE_PRINCIPAL = "reduce_principal"


@dataclass(slots=True)
class ScheduleRow:
    """A single projected payment."""

    payment_number: int
    due_date: date
    amount: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal


@dataclass(slots=True)
class PaymentBreakdown:
    total: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal


@dataclass(slots=True)
class ExtraPaymentOption:
    """Preview of what one extra-payment strategy would do."""

    strategy: ExtraPaymentStrategy
    new_payment: Decimal
    new_end_date: Optional[date]
    periods_saved: int = 0
    periods_skipped: int = 0
    interest_saved: Decimal = ZERO


def _frequency(value: PaymentFrequency | str) -> PaymentFrequency:
    try:
        return PaymentFrequency(value)
    except ValueError as exc:
        raise ValidationError(f"Unsupported payment frequency: {value!r}", frequency=value) from exc


def add_months(value: date, months: int) -> date:
    """Shift *value* by whole calendar months, clamping to the month's last day."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def advance_date(anchor: date, frequency: PaymentFrequency | str, steps: int) -> date:
    """Return the due date *steps* periods after *anchor*.

    Month-based frequencies are computed from the anchor each time so a
    31st-of-month schedule returns to the 31st after a short month.
    """

    freq = _frequency(frequency)
    if freq in _DAY_STEPS:
        return anchor + timedelta(days=_DAY_STEPS[freq] * steps)
    return add_months(anchor, _MONTH_STEPS[freq] * steps)


def count_periods(
    start_date: date,
    end_date: date,
    frequency: PaymentFrequency | str,
    max_periods: int = DEFAULT_MAX_PERIODS,
) -> int:
    """Number of due dates from *start_date* through *end_date* inclusive."""

    count = 0
    while count < max_periods and advance_date(start_date, frequency, count) <= end_date:
        count += 1
    return count


def period_rate(annual_rate_pct: Number, frequency: PaymentFrequency | str) -> Decimal:
    """Convert an annual percentage into the per-period fraction."""

    rate = Decimal(str(annual_rate_pct or 0))
    if rate < 0:
        raise ValidationError("Interest rate must not be negative", interest_rate=rate)
    return rate / Decimal(100) / Decimal(PERIODS_PER_YEAR[_frequency(frequency)])


def calculate_payment_amount(
    principal: Number,
    annual_rate_pct: Number,
    periods: int,
    frequency: PaymentFrequency | str = PaymentFrequency.MONTHLY,
) -> Decimal:
    """Standard annuity payment for *periods* payments, rounded to cents."""

    if periods <= 0:
        raise ValidationError("Number of periods must be positive", periods=periods)
    amount = to_money(principal)
    rate = period_rate(annual_rate_pct, frequency)
    if rate == 0:
        return to_money(amount / periods)
    factor = (1 + rate) ** periods
    return to_money(amount * rate * factor / (factor - 1))


def calculate_loan_term(
    principal: Number,
    annual_rate_pct: Number,
    payment_amount: Number,
    frequency: PaymentFrequency | str = PaymentFrequency.MONTHLY,
) -> Optional[int]:
    """Number of payments needed to retire *principal*; ``None`` if it never ends."""

    amount = float(to_money(principal))
    payment = float(to_money(payment_amount))
    if amount <= 0:
        return 0
    if payment <= 0:
        return None
    rate = float(period_rate(annual_rate_pct, frequency))
    if rate == 0:
        return math.ceil(round(amount / payment, 9))
    if payment <= amount * rate:
        return None
    periods = math.log(payment / (payment - amount * rate)) / math.log(1 + rate)
    return math.ceil(round(periods, 9))


def calculate_interest_rate(
    principal: Number,
    payment_amount: Number,
    periods: int,
    frequency: PaymentFrequency | str = PaymentFrequency.MONTHLY,
    *,
    max_iterations: int = 100,
) -> Decimal:
    """Solve the annual percentage rate implied by a payment (Newton iteration)."""

    amount = float(to_money(principal))
    payment = float(to_money(payment_amount))
    if periods <= 0 or amount <= 0:
        raise ValidationError("Principal and number of periods must be positive")
    if payment * periods <= amount:
        return Decimal("0.00")

    per_year = PERIODS_PER_YEAR[_frequency(frequency)]

    def payment_at(annual: float) -> float:
        r = annual / per_year
        factor = (1 + r) ** periods
        return amount * r * factor / (factor - 1)

    annual = 0.1
    step = 0.001
    for _ in range(max_iterations):
        diff = payment_at(annual) - payment
        if abs(diff) < 0.0001:
            return to_money(annual * 100)
        low, high = max(annual - step, 1e-9), annual + step
        derivative = (payment_at(high) - payment_at(low)) / (high - low)
        if abs(derivative) < 1e-9:
            break
        annual = min(max(annual - diff / derivative, 1e-6), 10.0)
    raise ValidationError("Interest rate calculation did not converge", principal=amount, payment=payment)


def generate_schedule(
    principal: Number,
    annual_rate_pct: Number,
    payment_amount: Number | None,
    start_date: date,
    frequency: PaymentFrequency | str = PaymentFrequency.MONTHLY,
    interest_included: bool = True,
    starting_payment_number: int = 1,
    end_date: Optional[date] = None,
    periods: Optional[int] = None,
    max_periods: int = DEFAULT_MAX_PERIODS,
) -> list[ScheduleRow]:
    """Generate an amortization schedule.

    Generation stops when the balance reaches zero, after ``periods`` rows, or
    at ``end_date`` (rows due after it are dropped), whichever comes first.
    When a bound cuts the schedule short the final row carries the remaining
    balance as a balloon. Without ``payment_amount`` the annuity payment for
    ``periods`` is used.

    With ``interest_included=False`` each row's amount is its principal and
    interest is reported alongside without being part of the payment.
    """

    balance = to_money(principal)
    if balance <= 0:
        return []
    freq = _frequency(frequency)
    rate = period_rate(annual_rate_pct, freq)

    if periods is not None and periods <= 0:
        raise ValidationError("Number of periods must be positive", periods=periods)
    if payment_amount is None:
        if periods is None:
            raise ValidationError("Either a payment amount or a number of periods is required")
        payment = calculate_payment_amount(balance, annual_rate_pct, periods, freq)
    else:
        payment = to_money(payment_amount)
    if payment <= 0:
        raise ValidationError("Payment amount must be positive", payment_amount=payment)

    bounded = periods is not None or end_date is not None
    if interest_included and not bounded and payment <= to_money(balance * rate):
        raise ValidationError(
            "Payment does not cover the periodic interest; the schedule would never end",
            payment_amount=payment,
            interest=to_money(balance * rate),
        )

    limit = periods if periods is not None else max_periods
    rows: list[ScheduleRow] = []
    step = 0
    while balance > 0 and step < limit:
        due = advance_date(start_date, freq, step)
        if end_date is not None and due > end_date:
            break
        interest = to_money(balance * rate)
        principal_part = payment - interest if interest_included else payment
        if principal_part >= balance:
            principal_part = balance
        balance -= principal_part
        amount = principal_part + interest if interest_included else principal_part
        rows.append(
            ScheduleRow(
                payment_number=starting_payment_number + step,
                due_date=due,
                amount=amount,
                principal=principal_part,
                interest=interest,
                remaining_balance=balance,
            )
        )
        step += 1

    if balance > 0:
        if not rows:
            raise DateOutOfRangeError(
                "End date falls before the first payment date",
                start_date=start_date.isoformat(),
                end_date=end_date.isoformat() if end_date else None,
            )
        if not bounded:
            raise ValidationError(
                f"Schedule would exceed {max_periods} payments",
                payment_amount=payment,
                max_periods=max_periods,
            )
        last = rows[-1]
        last.principal += balance
        last.amount += balance
        last.remaining_balance = ZERO

    return rows


def verify_principal_sum(
    rows: Iterable[object], expected: Number, tolerance: Number = CENT
) -> None:
    """Raise ``InvariantViolationError`` unless the principal column sums to *expected*.

    Accepts ``ScheduleRow`` objects or anything with a ``principal_component``.
    """

    total = money_sum(
        row.principal if isinstance(row, ScheduleRow) else getattr(row, "principal_component")
        for row in rows
    )
    if not within_tolerance(total, expected, tolerance):
        raise InvariantViolationError(
            "Schedule principal does not add up to the loan principal",
            principal_total=total,
            expected=to_money(expected),
            discrepancy=to_money(total) - to_money(expected),
        )


def total_interest(rows: Iterable[ScheduleRow]) -> Decimal:
    return money_sum(row.interest for row in rows)


def schedule_summary(rows: Sequence[ScheduleRow]) -> tuple[Optional[date], Decimal, int]:
    """Return (payoff_date, total_interest, payments)."""

    if not rows:
        return None, ZERO, 0
    return rows[-1].due_date, total_interest(rows), len(rows)


def calculate_payment_breakdown(
    payment_amount: Number,
    current_balance: Number,
    annual_rate_pct: Number,
    frequency: PaymentFrequency | str = PaymentFrequency.MONTHLY,
) -> PaymentBreakdown:
    """Split one payment made against *current_balance* into principal and interest."""

    payment = to_money(payment_amount)
    balance = to_money(current_balance)
    if payment <= 0:
        return PaymentBreakdown(ZERO, ZERO, ZERO, balance)
    interest = to_money(balance * period_rate(annual_rate_pct, frequency))
    if payment >= balance + interest:
        return PaymentBreakdown(balance + interest, balance, interest, ZERO)
    interest = min(interest, payment)
    principal = payment - interest
    return PaymentBreakdown(payment, principal, interest, balance - principal)


def extra_payment_options(
    *,
    balance: Number,
    annual_rate_pct: Number,
    payment_amount: Number,
    first_due_date: date,
    remaining_periods: int,
    extra_amount: Number,
    frequency: PaymentFrequency | str = PaymentFrequency.MONTHLY,
    end_date: Optional[date] = None,
) -> list[ExtraPaymentOption]:
    """Preview each extra-payment strategy against the current remaining schedule."""

    if remaining_periods <= 0:
        return []
    freq = _frequency(frequency)
    payment = to_money(payment_amount)
    extra = to_money(extra_amount)
    new_balance = max(to_money(balance) - extra, ZERO)
    current = generate_schedule(
        balance, annual_rate_pct, payment, first_due_date, freq, periods=remaining_periods
    )
    current_interest = total_interest(current)
    options: list[ExtraPaymentOption] = []

    if new_balance > 0:
        reduced = calculate_payment_amount(new_balance, annual_rate_pct, remaining_periods, freq)
        if reduced < payment:
            rows = generate_schedule(
                new_balance, annual_rate_pct, reduced, first_due_date, freq, periods=remaining_periods
            )
            options.append(
                ExtraPaymentOption(
                    strategy=ExtraPaymentStrategy.REDUCE_PAYMENT,
                    new_payment=reduced,
                    new_end_date=end_date,
                    interest_saved=current_interest - total_interest(rows),
                )
            )

    term = calculate_loan_term(new_balance, annual_rate_pct, payment, freq)
    if term is not None and term < remaining_periods:
        rows = generate_schedule(
            new_balance, annual_rate_pct, payment, first_due_date, freq, periods=max(term, 1)
        )
        options.append(
            ExtraPaymentOption(
                strategy=ExtraPaymentStrategy.REDUCE_TERM,
                new_payment=payment,
                new_end_date=rows[-1].due_date if rows else first_due_date,
                periods_saved=remaining_periods - term,
                interest_saved=current_interest - total_interest(rows),
            )
        )

    skipped = int(extra // payment) if payment > 0 else 0
    if 0 < skipped < remaining_periods:
        options.append(
            ExtraPaymentOption(
                strategy=ExtraPaymentStrategy.SKIP_PAYMENTS,
                new_payment=payment,
                new_end_date=end_date,
                periods_skipped=skipped,
            )
        )

    options.append(
        ExtraPaymentOption(
            strategy=ExtraPaymentStrategy.REDUCE_PRINCIPAL,
            new_payment=payment,
            new_end_date=end_date,
        )
    )
    return options


__all__ = [
    "DEFAULT_MAX_PERIODS",
    "ExtraPaymentOption",
    "ExtraPaymentStrategy",
    "PERIODS_PER_YEAR",
    "PaymentBreakdown",
    "ScheduleRow",
    "add_months",
    "advance_date",
    "calculate_interest_rate",
    "calculate_loan_term",
    "calculate_payment_amount",
    "calculate_payment_breakdown",
    "count_periods",
    "extra_payment_options",
    "generate_schedule",
    "period_rate",
    "schedule_summary",
    "total_interest",
    "verify_principal_sum",
]
