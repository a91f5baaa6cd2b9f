"""Pytest configuration and shared fixtures for fundledger tests.

Each test gets its own temporary SQLite file so the store-side UPDATE
arithmetic runs against a real database, plus factories for users,
accounts, goals and liabilities.
"""

from __future__ import annotations

import tempfile
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from sqlmodel import Session, SQLModel, create_engine

from fundledger import models  # noqa: F401  registers every table
from fundledger.domain.buckets import BucketRef
from fundledger.infra import SQLModelLedgerStore, create_session_factory
from fundledger.models import Account, Goal, User
from fundledger.models.liability import PaymentFrequency
from fundledger.services.liabilities import Disbursement, LiabilityDraft, create_liability

# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db_engine():
    """Create an isolated SQLite database file for each test.

    Yields:
        Engine: SQLModel engine connected to the test database
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    engine = create_engine(f"sqlite:///{db_path}", echo=False)
    SQLModel.metadata.create_all(engine)

    yield engine

    engine.dispose()
    db_path.unlink(missing_ok=True)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """Commit-or-rollback session factory, as used in production."""

    return create_session_factory(db_engine)


@pytest.fixture(scope="function")
def store(session_factory) -> SQLModelLedgerStore:
    return SQLModelLedgerStore(session_factory)


# =============================================================================
# Test Data Factories
# =============================================================================


@pytest.fixture
def user_factory(db_engine):
    def _create_user(username: str = "tester") -> User:
        with Session(db_engine, expire_on_commit=False) as session:
            row = User(username=username)
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    return _create_user


@pytest.fixture
def user(user_factory) -> User:
    """Default owner for scoped data."""

    return user_factory("tester")


@pytest.fixture
def other_user(user_factory) -> User:
    return user_factory("intruder")


@pytest.fixture
def account_factory(store, user):
    """Factory for accounts; the opening balance is personal money.

    Returns:
        Callable: Function that creates and persists Account instances
    """

    def _create_account(
        name: str = "Checking",
        balance: str | Decimal = "0.00",
        owner: User | None = None,
    ) -> Account:
        owner = owner or user
        with store.unit_of_work() as uow:
            return uow.accounts.create(Account(name=name, balance=Decimal(balance)), user_id=owner.id)

    return _create_account


@pytest.fixture
def goal_factory(store, user):
    def _create_goal(name: str = "Vacation", target: str = "1000.00", owner: User | None = None) -> Goal:
        owner = owner or user
        with store.unit_of_work() as uow:
            return uow.goals.create(Goal(name=name, target_amount=Decimal(target)), user_id=owner.id)

    return _create_goal


@pytest.fixture
def liability_factory(store, user):
    """Factory for liabilities created through the lifecycle service.

    Returns:
        Callable: Function returning ``LiabilityCreated``
    """

    def _create_liability(
        name: str = "Car loan",
        amount: str = "1200.00",
        rate: str = "0",
        periods: int | None = 12,
        payment: str | None = None,
        start: date = date(2030, 1, 15),
        target: date | None = None,
        frequency: PaymentFrequency = PaymentFrequency.MONTHLY,
        disburse_to: dict[int, str] | None = None,
        interest_included: bool = True,
        owner: User | None = None,
    ):
        owner = owner or user
        draft = LiabilityDraft(
            name=name,
            original_amount=Decimal(amount),
            start_date=start,
            interest_rate=Decimal(rate),
            payment_amount=Decimal(payment) if payment is not None else None,
            frequency=frequency,
            periods=periods,
            target_payoff_date=target,
            interest_included=interest_included,
        )
        disbursements = [
            Disbursement(account_id=account_id, amount=Decimal(value))
            for account_id, value in (disburse_to or {}).items()
        ]
        return create_liability(store, draft, user_id=owner.id, disbursements=disbursements).unwrap()

    return _create_liability


# =============================================================================
# Helper Utilities
# =============================================================================


@pytest.fixture
def balance_of(store, user):
    """Read one bucket's current amount."""

    def _balance(bucket: BucketRef, owner: User | None = None) -> Decimal:
        with store.unit_of_work() as uow:
            return uow.funds.available(bucket, user_id=(owner or user).id)

    return _balance


@pytest.fixture
def account_total(store, user):
    def _total(account_id: int, owner: User | None = None) -> Decimal:
        with store.unit_of_work() as uow:
            return Decimal(uow.accounts.get_by_id(account_id, user_id=(owner or user).id).balance)

    return _total
