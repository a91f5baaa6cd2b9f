"""Tests for the amortization engine.

Covers:
- Annuity payment and the 12000 @ 12% reference loan
- Date stepping with end-of-month clamping
- Balloon rows when a bound cuts the schedule short
- Non-converging schedules
- Loan term, implied rate and extra-payment previews
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from fundledger.domain.errors import DateOutOfRangeError, InvariantViolationError, ValidationError
from fundledger.models.liability import PaymentFrequency
from fundledger.services.amortization import (
    ExtraPaymentStrategy,
    add_months,
    advance_date,
    calculate_interest_rate,
    calculate_loan_term,
    calculate_payment_amount,
    calculate_payment_breakdown,
    count_periods,
    extra_payment_options,
    generate_schedule,
    period_rate,
    schedule_summary,
    total_interest,
    verify_principal_sum,
)

START = date(2030, 1, 15)


class TestReferenceLoan:
    """12000 borrowed at 12% for 12 monthly payments."""

    def test_annuity_payment(self):
        assert calculate_payment_amount(12000, 12, 12) == Decimal("1066.19")

    def test_first_row_split(self):
        rows = generate_schedule(12000, 12, None, START, periods=12)
        first = rows[0]
        assert first.amount == Decimal("1066.19")
        assert first.interest == Decimal("120.00")
        assert first.principal == Decimal("946.19")
        assert first.remaining_balance == Decimal("11053.81")

    def test_last_row_clears_balance(self):
        rows = generate_schedule(12000, 12, None, START, periods=12)
        assert len(rows) == 12
        assert rows[-1].remaining_balance == Decimal("0.00")
        assert sum(r.principal for r in rows) == Decimal("12000.00")

    def test_numbering_and_dates(self):
        rows = generate_schedule(12000, 12, None, START, periods=12, starting_payment_number=5)
        assert [r.payment_number for r in rows] == list(range(5, 17))
        assert rows[0].due_date == START
        assert rows[-1].due_date == date(2030, 12, 15)

    def test_summary(self):
        rows = generate_schedule(12000, 12, None, START, periods=12)
        payoff, interest, count = schedule_summary(rows)
        assert payoff == date(2030, 12, 15)
        assert count == 12
        assert interest == total_interest(rows)
        assert interest > Decimal("790")


@pytest.mark.parametrize(
    "principal,rate,periods,frequency",
    [
        ("5000.00", "0", 7, PaymentFrequency.MONTHLY),
        ("2500.55", "5.5", 26, PaymentFrequency.BIWEEKLY),
        ("250000.00", "6.75", 360, PaymentFrequency.MONTHLY),
        ("999.99", "24", 52, PaymentFrequency.WEEKLY),
    ],
)
def test_principal_column_adds_up(principal, rate, periods, frequency):
    """Whatever the rounding, principal components sum to the loan amount."""
    rows = generate_schedule(Decimal(principal), Decimal(rate), None, START, frequency, periods=periods)
    assert len(rows) == periods
    verify_principal_sum(rows, Decimal(principal))
    assert rows[-1].remaining_balance == Decimal("0.00")


class TestDates:
    def test_month_end_is_clamped(self):
        assert add_months(date(2030, 1, 31), 1) == date(2030, 2, 28)
        assert add_months(date(2032, 1, 31), 1) == date(2032, 2, 29)

    def test_month_steps_return_to_anchor_day(self):
        assert advance_date(date(2030, 1, 31), PaymentFrequency.MONTHLY, 2) == date(2030, 3, 31)

    def test_day_based_steps(self):
        assert advance_date(START, PaymentFrequency.DAILY, 3) == date(2030, 1, 18)
        assert advance_date(START, PaymentFrequency.WEEKLY, 1) == date(2030, 1, 22)
        assert advance_date(START, "bi-weekly", 2) == date(2030, 2, 12)

    def test_quarterly_and_yearly(self):
        assert advance_date(START, PaymentFrequency.QUARTERLY, 1) == date(2030, 4, 15)
        assert advance_date(START, PaymentFrequency.YEARLY, 2) == date(2032, 1, 15)

    def test_count_periods_inclusive(self):
        assert count_periods(START, date(2030, 12, 15), PaymentFrequency.MONTHLY) == 12
        assert count_periods(START, date(2030, 1, 1), PaymentFrequency.MONTHLY) == 0

    def test_unknown_frequency(self):
        with pytest.raises(ValidationError):
            advance_date(START, "fortnightly", 1)


class TestBounds:
    def test_end_date_makes_balloon(self):
        rows = generate_schedule(1200, 0, 100, START, end_date=date(2030, 6, 30))
        assert len(rows) == 6
        assert rows[-1].principal == Decimal("700.00")
        assert rows[-1].amount == Decimal("700.00")
        assert rows[-1].remaining_balance == Decimal("0.00")

    def test_period_bound_makes_balloon(self):
        rows = generate_schedule(1200, 0, 100, START, periods=3)
        assert [r.principal for r in rows] == [Decimal("100.00"), Decimal("100.00"), Decimal("1000.00")]

    def test_end_date_before_first_due_date(self):
        with pytest.raises(DateOutOfRangeError):
            generate_schedule(1200, 0, 100, START, end_date=date(2030, 1, 1))

    def test_payment_not_covering_interest(self):
        with pytest.raises(ValidationError):
            generate_schedule(1000, 12, 10, START)

    def test_bounded_negative_amortization_is_allowed(self):
        rows = generate_schedule(1000, 12, 5, START, periods=3)
        verify_principal_sum(rows, Decimal("1000.00"))
        assert rows[0].principal < 0

    def test_period_cap(self):
        with pytest.raises(ValidationError):
            generate_schedule(100000, 0, 1, START, max_periods=50)

    def test_payment_or_periods_required(self):
        with pytest.raises(ValidationError):
            generate_schedule(1000, 5, None, START)

    def test_zero_principal(self):
        assert generate_schedule(0, 5, 100, START) == []

    def test_interest_excluded(self):
        rows = generate_schedule(1200, 12, 100, START, interest_included=False)
        assert len(rows) == 12
        assert all(r.amount == r.principal for r in rows)
        assert rows[0].interest == Decimal("12.00")


class TestCalculators:
    def test_period_rate(self):
        assert period_rate(12, PaymentFrequency.MONTHLY) == Decimal("0.01")
        with pytest.raises(ValidationError):
            period_rate(-1, PaymentFrequency.MONTHLY)

    def test_zero_rate_payment(self):
        assert calculate_payment_amount(1200, 0, 12) == Decimal("100.00")

    def test_loan_term(self):
        assert calculate_loan_term(12000, 12, Decimal("1066.19")) == 12
        assert calculate_loan_term(1200, 0, 100) == 12
        assert calculate_loan_term(0, 12, 100) == 0

    def test_loan_term_never_ends(self):
        assert calculate_loan_term(1000, 12, 10) is None

    def test_implied_rate(self):
        assert calculate_interest_rate(12000, Decimal("1066.19"), 12) == Decimal("12.00")
        assert calculate_interest_rate(1200, 100, 12) == Decimal("0.00")

    def test_payment_breakdown(self):
        split = calculate_payment_breakdown(Decimal("1066.19"), 12000, 12)
        assert split.interest == Decimal("120.00")
        assert split.principal == Decimal("946.19")
        assert split.remaining_balance == Decimal("11053.81")

    def test_payment_breakdown_pays_off(self):
        split = calculate_payment_breakdown(500, 100, 12)
        assert split.total == Decimal("101.00")
        assert split.remaining_balance == Decimal("0.00")

    def test_verify_principal_sum_detects_drift(self):
        rows = generate_schedule(1200, 0, 100, START)
        rows[3].principal += Decimal("0.05")
        with pytest.raises(InvariantViolationError):
            verify_principal_sum(rows, Decimal("1200.00"))


def test_extra_payment_options_cover_every_strategy():
    options = extra_payment_options(
        balance=12000,
        annual_rate_pct=12,
        payment_amount=Decimal("1066.19"),
        first_due_date=START,
        remaining_periods=12,
        extra_amount=2000,
        end_date=date(2030, 12, 15),
    )
    by_strategy = {o.strategy: o for o in options}
    assert set(by_strategy) == set(ExtraPaymentStrategy)
    assert by_strategy[ExtraPaymentStrategy.REDUCE_PAYMENT].new_payment < Decimal("1066.19")
    assert by_strategy[ExtraPaymentStrategy.REDUCE_TERM].periods_saved >= 1
    assert by_strategy[ExtraPaymentStrategy.REDUCE_TERM].interest_saved > 0
    assert by_strategy[ExtraPaymentStrategy.SKIP_PAYMENTS].periods_skipped == 1
