"""Unit of work binding every SQLModel repository to one database transaction."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlmodel import Session

from .database import SessionFactory
from .repositories import (
    SQLModelAccountRepository,
    SQLModelFundRepository,
    SQLModelGoalRepository,
    SQLModelLiabilityRepository,
    SQLModelPaymentRepository,
    SQLModelScheduleRepository,
    SQLModelTransactionRepository,
)


def _bound_factory(session: Session) -> SessionFactory:
    """Factory handing out an already-open session; the outer scope commits."""

    @contextmanager
    def factory() -> Iterator[Session]:
        yield session
        session.flush()

    return factory


class LedgerUnitOfWork:
    """All repositories for one transaction."""

    def __init__(self, session: Session):
        self.session = session
        factory = _bound_factory(session)
        self.accounts = SQLModelAccountRepository(factory)
        self.goals = SQLModelGoalRepository(factory)
        self.funds = SQLModelFundRepository(factory)
        self.liabilities = SQLModelLiabilityRepository(factory)
        self.schedules = SQLModelScheduleRepository(factory)
        self.payments = SQLModelPaymentRepository(factory)
        self.transactions = SQLModelTransactionRepository(factory)


class SQLModelLedgerStore:
    """Ledger store backed by a commit-or-rollback session factory."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    @contextmanager
    def unit_of_work(self) -> Iterator[LedgerUnitOfWork]:
        with self.session_factory() as session:
            yield LedgerUnitOfWork(session)
