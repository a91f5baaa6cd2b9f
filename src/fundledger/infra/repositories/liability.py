"""SQLModel implementation of Liability repository."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, ContextManager, Optional

from sqlalchemy import func, update
from sqlmodel import Session, select

from ...domain.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from ...domain.money import STORE_EPSILON, to_money
from ...models.liability import Liability, LiabilityStatus
from ._base import execute_write, fetch_fresh


class SQLModelLiabilityRepository:
    """SQLModel-based liability repository implementation."""

    def __init__(self, session_factory: Callable[[], ContextManager[Session]]):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def get_by_id(
        self, liability_id: int, *, user_id: int, include_deleted: bool = False
    ) -> Optional[Liability]:
        """Retrieve a liability by ID."""
        with self.session_factory() as session:
            criteria = [Liability.id == liability_id, Liability.user_id == user_id]
            if not include_deleted:
                criteria.append(Liability.status != LiabilityStatus.DELETED.value)
            return fetch_fresh(session, Liability, *criteria)

    def require(self, liability_id: int, *, user_id: int) -> Liability:
        liability = self.get_by_id(liability_id, user_id=user_id)
        if liability is None:
            raise NotFoundError("liability", liability_id)
        return liability

    def list_active(self, *, user_id: int) -> list[Liability]:
        """List liabilities that still carry a balance."""
        with self.session_factory() as session:
            statement = (
                select(Liability)
                .where(Liability.user_id == user_id)
                .where(Liability.status == LiabilityStatus.ACTIVE.value)
                .order_by(Liability.name)  # type: ignore
                .execution_options(populate_existing=True)
            )
            return list(session.exec(statement).all())

    def create(self, liability: Liability, *, user_id: int) -> Liability:
        """Create a new liability."""
        with self.session_factory() as session:
            liability.user_id = user_id
            session.add(liability)
            session.flush()
            session.refresh(liability)
            return liability

    def adjust_balance(self, liability_id: int, delta: Decimal, *, user_id: int) -> Liability:
        """Add *delta* to ``current_balance`` store-side; refuses to go below zero."""
        delta = to_money(delta)
        with self.session_factory() as session:
            statement = (
                update(Liability)
                .where(
                    Liability.id == liability_id,
                    Liability.user_id == user_id,
                    Liability.status != LiabilityStatus.DELETED.value,
                    Liability.current_balance + delta >= -STORE_EPSILON,
                )
                .values(current_balance=Liability.current_balance + delta, version=Liability.version + 1)
            )
            if execute_write(session, statement) != 1:
                current = fetch_fresh(session, Liability, Liability.id == liability_id, Liability.user_id == user_id)
                if current is None or current.status == LiabilityStatus.DELETED:
                    raise NotFoundError("liability", liability_id)
                raise ValidationError(
                    "Payment principal exceeds the remaining liability balance",
                    liability_id=liability_id,
                    current_balance=to_money(current.current_balance),
                    requested=-delta,
                )
            return fetch_fresh(session, Liability, Liability.id == liability_id)

    def add_disbursed(self, liability_id: int, amount: Decimal, *, user_id: int) -> Liability:
        """Record principal paid out into accounts; never beyond the original amount."""
        amount = to_money(amount)
        with self.session_factory() as session:
            statement = (
                update(Liability)
                .where(
                    Liability.id == liability_id,
                    Liability.user_id == user_id,
                    Liability.status == LiabilityStatus.ACTIVE.value,
                    Liability.disbursed_amount + amount <= Liability.original_amount + STORE_EPSILON,
                )
                .values(disbursed_amount=Liability.disbursed_amount + amount, version=Liability.version + 1)
            )
            if execute_write(session, statement) != 1:
                if fetch_fresh(session, Liability, Liability.id == liability_id, Liability.user_id == user_id) is None:
                    raise NotFoundError("liability", liability_id)
                raise ValidationError(
                    "Disbursement exceeds the undisbursed principal",
                    liability_id=liability_id,
                    requested=amount,
                )
            return fetch_fresh(session, Liability, Liability.id == liability_id)

    def update_fields(
        self, liability_id: int, expected_version: int, *, user_id: int, **fields: Any
    ) -> Liability:
        """Compare-and-swap update guarded by the row version."""
        with self.session_factory() as session:
            statement = (
                update(Liability)
                .where(
                    Liability.id == liability_id,
                    Liability.user_id == user_id,
                    Liability.version == expected_version,
                )
                .values(version=Liability.version + 1, **fields)
            )
            if execute_write(session, statement) != 1:
                if fetch_fresh(session, Liability, Liability.id == liability_id, Liability.user_id == user_id) is None:
                    raise NotFoundError("liability", liability_id)
                raise ConcurrencyConflictError(
                    "Liability was modified concurrently", liability_id=liability_id
                )
            return fetch_fresh(session, Liability, Liability.id == liability_id)

    def soft_delete(self, liability_id: int, expected_version: int, *, user_id: int) -> Liability:
        """Mark a liability deleted; rows stay for history."""
        return self.update_fields(
            liability_id,
            expected_version,
            user_id=user_id,
            status=LiabilityStatus.DELETED.value,
            deleted_at=datetime.now(timezone.utc),
        )

    def get_total_debt(self, *, user_id: int) -> Decimal:
        """Calculate total outstanding debt."""
        with self.session_factory() as session:
            total = session.exec(
                select(func.coalesce(func.sum(Liability.current_balance), 0)).where(
                    Liability.user_id == user_id,
                    Liability.status == LiabilityStatus.ACTIVE.value,
                )
            ).one()
            return to_money(total)
