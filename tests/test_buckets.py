"""Tests for the bucket accessor (personal, borrowed and goal portions)."""

from __future__ import annotations

from decimal import Decimal

from fundledger.domain.buckets import BucketRef, BucketType
from fundledger.models import FundBucket
from fundledger.services.buckets import (
    accounts_with_liability_funds,
    bucket_balance,
    get_breakdown,
    personal_balance,
    tagged_total_for_liability,
)
from fundledger.services.liabilities import fund_goal


def test_untagged_account_is_all_personal(store, user, account_factory):
    account = account_factory(balance="500.00")

    view = get_breakdown(store, account.id, user_id=user.id).unwrap()

    assert view.total == Decimal("500.00")
    assert view.personal == Decimal("500.00")
    assert view.borrowed_portions == []
    assert view.goal_portions == []
    assert view.tagged_total == Decimal("0.00")


def test_breakdown_sums_to_total(store, user, account_factory, goal_factory, liability_factory):
    """personal + borrowed + goal always equals the account balance."""
    account = account_factory(balance="500.00")
    created = liability_factory(disburse_to={account.id: "300.00"})
    goal = goal_factory()
    fund_goal(store, account.id, goal.id, "120.00", user_id=user.id).unwrap()

    view = get_breakdown(store, account.id, user_id=user.id).unwrap()

    assert view.total == Decimal("800.00")
    assert view.personal == Decimal("380.00")
    assert [(p.reference_id, p.amount, p.name) for p in view.borrowed_portions] == [
        (created.liability.id, Decimal("300.00"), "Car loan")
    ]
    assert [(p.reference_id, p.amount) for p in view.goal_portions] == [(goal.id, Decimal("120.00"))]
    assert view.personal + view.tagged_total == view.total


def test_personal_balance_and_single_bucket(store, user, account_factory, liability_factory):
    account = account_factory(balance="50.00")
    created = liability_factory(disburse_to={account.id: "200.00"})

    assert personal_balance(store, account.id, user_id=user.id).unwrap() == Decimal("50.00")
    borrowed = BucketRef.borrowed(account.id, created.liability.id)
    assert bucket_balance(store, borrowed, user_id=user.id).unwrap() == Decimal("200.00")
    assert bucket_balance(store, BucketRef.goal(account.id, 999), user_id=user.id).unwrap() == Decimal("0.00")


def test_liability_funds_across_accounts(store, user, account_factory, liability_factory):
    checking = account_factory(name="Checking")
    savings = account_factory(name="Savings")
    created = liability_factory(disburse_to={checking.id: "400.00", savings.id: "250.00"})
    liability_id = created.liability.id

    assert tagged_total_for_liability(store, liability_id, user_id=user.id).unwrap() == Decimal("650.00")
    portions = accounts_with_liability_funds(store, liability_id, user_id=user.id).unwrap()
    assert {(p.name, p.amount) for p in portions} == {
        ("Checking", Decimal("400.00")),
        ("Savings", Decimal("250.00")),
    }


def test_negative_personal_is_reported_not_clamped(store, user, account_factory):
    account = account_factory(balance="100.00")
    with store.unit_of_work() as uow:
        uow.session.add(
            FundBucket(
                user_id=user.id,
                account_id=account.id,
                bucket_type=BucketType.GOAL.value,
                reference_id=1,
                amount=Decimal("150.00"),
            )
        )

    result = get_breakdown(store, account.id, user_id=user.id)

    assert not result.ok
    assert result.code == "invariant_violation"


def test_other_users_account_is_not_found(store, user, other_user, account_factory):
    account = account_factory(balance="100.00", owner=other_user)

    result = get_breakdown(store, account.id, user_id=user.id)

    assert not result.ok
    assert result.code == "not_found"


def test_missing_account(store, user):
    assert get_breakdown(store, 12345, user_id=user.id).code == "not_found"
