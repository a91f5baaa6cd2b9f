"""Tests for the transfer validator and bucket-to-bucket transfers.

Covers:
- The full source/destination/account rule table
- Account totals on same-account and cross-account transfers
- Rejections leave every balance untouched
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from fundledger.domain.buckets import BucketRef, BucketType
from fundledger.domain.errors import InsufficientFundsError, TransferNotAllowedError, ValidationError
from fundledger.services.liabilities import fund_goal
from fundledger.services.transfers import check_transfer, transfer_allowed, transfer_funds

LIABILITY_ID = 7
GOAL_ID = 3

_REFS = {BucketType.PERSONAL: None, BucketType.BORROWED: LIABILITY_ID, BucketType.GOAL: GOAL_ID}


def _ref(account_id: int, bucket_type: BucketType) -> BucketRef:
    return BucketRef(account_id, bucket_type, _REFS[bucket_type])


# (source, destination, same_account) -> allowed
TRANSFER_TABLE = [
    (BucketType.PERSONAL, BucketType.PERSONAL, True, True),
    (BucketType.PERSONAL, BucketType.PERSONAL, False, True),
    (BucketType.PERSONAL, BucketType.BORROWED, True, False),
    (BucketType.PERSONAL, BucketType.BORROWED, False, False),
    (BucketType.PERSONAL, BucketType.GOAL, True, True),
    (BucketType.PERSONAL, BucketType.GOAL, False, True),
    (BucketType.GOAL, BucketType.PERSONAL, True, True),
    (BucketType.GOAL, BucketType.PERSONAL, False, True),
    (BucketType.GOAL, BucketType.BORROWED, True, False),
    (BucketType.GOAL, BucketType.BORROWED, False, False),
    (BucketType.GOAL, BucketType.GOAL, True, False),
    (BucketType.GOAL, BucketType.GOAL, False, False),
    (BucketType.BORROWED, BucketType.PERSONAL, True, True),
    (BucketType.BORROWED, BucketType.PERSONAL, False, True),
    (BucketType.BORROWED, BucketType.BORROWED, True, True),
    (BucketType.BORROWED, BucketType.BORROWED, False, True),
    (BucketType.BORROWED, BucketType.GOAL, True, False),
    (BucketType.BORROWED, BucketType.GOAL, False, False),
]


@pytest.mark.parametrize("source,destination,same_account,allowed", TRANSFER_TABLE)
def test_transfer_rule_table(source, destination, same_account, allowed):
    src = _ref(1, source)
    dst = _ref(1 if same_account else 2, destination)
    assert transfer_allowed(src, dst).allowed is allowed


def test_borrowed_only_moves_within_its_liability():
    decision = transfer_allowed(BucketRef.borrowed(1, 7), BucketRef.borrowed(2, 8))
    assert not decision.allowed
    assert decision.reason


class TestCheckTransfer:
    def test_returns_cent_amount(self):
        assert check_transfer(BucketRef.personal(1), BucketRef.goal(1, 3), "10.005", 50) == Decimal("10.01")

    def test_identical_bucket_rejected(self):
        with pytest.raises(TransferNotAllowedError):
            check_transfer(BucketRef.personal(1), BucketRef.personal(1), 10, 50)

    def test_non_positive_amount(self):
        with pytest.raises(ValidationError):
            check_transfer(BucketRef.personal(1), BucketRef.personal(2), 0, 50)

    def test_insufficient_source(self):
        with pytest.raises(InsufficientFundsError):
            check_transfer(BucketRef.personal(1), BucketRef.personal(2), "50.01", 50)

    def test_rule_checked_before_funds(self):
        with pytest.raises(TransferNotAllowedError):
            check_transfer(BucketRef.goal(1, 3), BucketRef.borrowed(1, 7), 100, 0)


class TestTransferFunds:
    def test_same_account_keeps_total(self, store, user, account_factory, goal_factory, account_total, balance_of):
        account = account_factory(balance="300.00")
        goal = goal_factory()

        receipt = transfer_funds(
            store, BucketRef.personal(account.id), BucketRef.goal(account.id, goal.id), 125, user_id=user.id
        ).unwrap()

        assert receipt.amount == Decimal("125.00")
        assert account_total(account.id) == Decimal("300.00")
        assert balance_of(BucketRef.personal(account.id)) == Decimal("175.00")
        assert balance_of(BucketRef.goal(account.id, goal.id)) == Decimal("125.00")

    def test_cross_account_moves_totals(self, store, user, account_factory, account_total):
        checking = account_factory(name="Checking", balance="300.00")
        savings = account_factory(name="Savings", balance="10.00")

        transfer_funds(
            store, BucketRef.personal(checking.id), BucketRef.personal(savings.id), 100, user_id=user.id
        ).unwrap()

        assert account_total(checking.id) == Decimal("200.00")
        assert account_total(savings.id) == Decimal("110.00")

    def test_writes_one_transaction_per_side(self, store, user, account_factory):
        checking = account_factory(name="Checking", balance="300.00")
        savings = account_factory(name="Savings")

        receipt = transfer_funds(
            store,
            BucketRef.personal(checking.id),
            BucketRef.personal(savings.id),
            40,
            user_id=user.id,
            on=date(2030, 2, 1),
        ).unwrap()

        with store.unit_of_work() as uow:
            out = uow.transactions.filter_by_account(checking.id, user_id=user.id)
            into = uow.transactions.filter_by_account(savings.id, user_id=user.id)
        assert [(t.id, t.amount, t.occurred_on) for t in out] == [
            (receipt.source_transaction_id, Decimal("-40.00"), date(2030, 2, 1))
        ]
        assert [(t.id, t.amount) for t in into] == [(receipt.destination_transaction_id, Decimal("40.00"))]

    def test_goal_to_borrowed_rejected_without_side_effects(
        self, store, user, account_factory, goal_factory, liability_factory, account_total, balance_of
    ):
        account = account_factory(balance="500.00")
        goal = goal_factory()
        fund_goal(store, account.id, goal.id, 200, user_id=user.id).unwrap()
        created = liability_factory(disburse_to={account.id: "100.00"})
        goal_bucket = BucketRef.goal(account.id, goal.id)
        borrowed = BucketRef.borrowed(account.id, created.liability.id)

        result = transfer_funds(store, goal_bucket, borrowed, 100, user_id=user.id)

        assert not result.ok
        assert result.code == "transfer_not_allowed"
        assert balance_of(goal_bucket) == Decimal("200.00")
        assert balance_of(borrowed) == Decimal("100.00")
        assert account_total(account.id) == Decimal("600.00")

    def test_borrowed_money_moves_with_its_liability(
        self, store, user, account_factory, liability_factory, account_total, balance_of
    ):
        checking = account_factory(name="Checking")
        savings = account_factory(name="Savings")
        created = liability_factory(disburse_to={checking.id: "500.00"})
        liability_id = created.liability.id

        transfer_funds(
            store,
            BucketRef.borrowed(checking.id, liability_id),
            BucketRef.borrowed(savings.id, liability_id),
            "150.00",
            user_id=user.id,
        ).unwrap()

        assert balance_of(BucketRef.borrowed(checking.id, liability_id)) == Decimal("350.00")
        assert balance_of(BucketRef.borrowed(savings.id, liability_id)) == Decimal("150.00")
        assert account_total(savings.id) == Decimal("150.00")
        assert balance_of(BucketRef.personal(savings.id)) == Decimal("0.00")

    def test_cannot_spend_tagged_money_as_personal(self, store, user, account_factory, liability_factory, account_total):
        checking = account_factory(name="Checking", balance="20.00")
        savings = account_factory(name="Savings")
        liability_factory(disburse_to={checking.id: "500.00"})

        result = transfer_funds(
            store, BucketRef.personal(checking.id), BucketRef.personal(savings.id), 100, user_id=user.id
        )

        assert result.code == "insufficient_funds"
        assert account_total(checking.id) == Decimal("520.00")
        assert account_total(savings.id) == Decimal("0.00")

    def test_emptied_bucket_row_is_removed(self, store, user, account_factory, goal_factory):
        account = account_factory(balance="100.00")
        goal = goal_factory()
        fund_goal(store, account.id, goal.id, 60, user_id=user.id).unwrap()

        transfer_funds(
            store, BucketRef.goal(account.id, goal.id), BucketRef.personal(account.id), 60, user_id=user.id
        ).unwrap()

        with store.unit_of_work() as uow:
            assert uow.funds.get(BucketRef.goal(account.id, goal.id), user_id=user.id) is None

    def test_foreign_destination_is_not_found(self, store, user, other_user, account_factory, account_total):
        mine = account_factory(balance="100.00")
        theirs = account_factory(balance="0.00", owner=other_user)

        result = transfer_funds(store, BucketRef.personal(mine.id), BucketRef.personal(theirs.id), 10, user_id=user.id)

        assert result.code == "not_found"
        assert account_total(mine.id) == Decimal("100.00")
