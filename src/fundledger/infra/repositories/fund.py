"""SQLModel implementation of the fund bucket repository.

Every balance change happens as arithmetic inside the UPDATE statement with
the sufficiency check in its WHERE clause, so concurrent writers cannot lose
each other's updates and a failed check leaves nothing half-applied.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, ContextManager, Optional

from sqlalchemy import delete, func, update
from sqlmodel import Session, select

from ...domain.buckets import BucketRef, BucketType
from ...domain.errors import InsufficientFundsError, InvariantViolationError, NotFoundError
from ...domain.money import STORE_EPSILON, ZERO, to_money
from ...models.account import Account
from ...models.fund import FundBucket
from ._base import execute_write, fetch_fresh


def _tagged_sum(account_id: int):
    return (
        select(func.coalesce(func.sum(FundBucket.amount), 0))
        .where(FundBucket.account_id == account_id)
        .scalar_subquery()
    )


def _bucket_criteria(bucket: BucketRef, user_id: int) -> tuple:
    return (
        FundBucket.user_id == user_id,
        FundBucket.account_id == bucket.account_id,
        FundBucket.bucket_type == bucket.bucket_type.value,
        FundBucket.reference_id == bucket.reference_id,
    )


class SQLModelFundRepository:
    """SQLModel-based fund bucket repository implementation."""

    def __init__(self, session_factory: Callable[[], ContextManager[Session]]):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def get(self, bucket: BucketRef, *, user_id: int) -> Optional[FundBucket]:
        """Return the stored row for a tagged bucket (never for personal)."""
        if bucket.is_personal:
            return None
        with self.session_factory() as session:
            return fetch_fresh(session, FundBucket, *_bucket_criteria(bucket, user_id))

    def list_for_account(self, account_id: int, *, user_id: int) -> list[FundBucket]:
        """List tagged buckets held in one account."""
        with self.session_factory() as session:
            statement = (
                select(FundBucket)
                .where(FundBucket.user_id == user_id, FundBucket.account_id == account_id)
                .order_by(FundBucket.bucket_type, FundBucket.reference_id)  # type: ignore
                .execution_options(populate_existing=True)
            )
            return list(session.exec(statement).all())

    def list_for_reference(
        self, bucket_type: BucketType, reference_id: int, *, user_id: int
    ) -> list[FundBucket]:
        """List buckets tagged for one liability or goal across all accounts."""
        with self.session_factory() as session:
            statement = (
                select(FundBucket)
                .where(
                    FundBucket.user_id == user_id,
                    FundBucket.bucket_type == bucket_type.value,
                    FundBucket.reference_id == reference_id,
                )
                .order_by(FundBucket.account_id)  # type: ignore
                .execution_options(populate_existing=True)
            )
            return list(session.exec(statement).all())

    def available(self, bucket: BucketRef, *, user_id: int) -> Decimal:
        """Current amount in a bucket; personal is derived from the account."""
        with self.session_factory() as session:
            if bucket.is_personal:
                statement = select(Account.balance - _tagged_sum(bucket.account_id)).where(
                    Account.id == bucket.account_id, Account.user_id == user_id
                )
                value = session.exec(statement).first()
                if value is None:
                    raise NotFoundError("account", bucket.account_id)
                return to_money(value)
            row = fetch_fresh(session, FundBucket, *_bucket_criteria(bucket, user_id))
            return to_money(row.amount) if row else ZERO

    def adjust(
        self,
        bucket: BucketRef,
        *,
        bucket_delta: Decimal,
        account_delta: Decimal,
        user_id: int,
    ) -> Account:
        """Apply a bucket delta and the owning account's balance delta together.

        Personal buckets have no row, so only ``account_delta`` applies and a
        debit is checked against the derived personal amount. Must run inside
        a unit of work so both writes commit or roll back as one.
        """
        bucket_delta = to_money(bucket_delta)
        account_delta = to_money(account_delta)
        with self.session_factory() as session:
            account = fetch_fresh(
                session, Account, Account.id == bucket.account_id, Account.user_id == user_id
            )
            if account is None or not account.is_active:
                raise NotFoundError("account", bucket.account_id)

            if account_delta != ZERO:
                statement = update(Account).where(
                    Account.id == bucket.account_id, Account.user_id == user_id
                )
                if account_delta < ZERO and bucket.is_personal:
                    statement = statement.where(
                        Account.balance + account_delta - _tagged_sum(bucket.account_id)
                        >= -STORE_EPSILON
                    )
                elif account_delta < ZERO:
                    statement = statement.where(Account.balance + account_delta >= -STORE_EPSILON)
                statement = statement.values(balance=Account.balance + account_delta)
                if execute_write(session, statement) != 1:
                    raise InsufficientFundsError(
                        f"Insufficient funds in {bucket.label()}",
                        account_id=bucket.account_id,
                        requested=-account_delta,
                    )

            if bucket.bucket_type.is_tagged and bucket_delta != ZERO:
                self._apply_bucket_delta(session, bucket, bucket_delta, user_id)

            personal = session.exec(
                select(Account.balance - _tagged_sum(bucket.account_id)).where(
                    Account.id == bucket.account_id
                )
            ).one()
            if to_money(personal) < -STORE_EPSILON:
                raise InvariantViolationError(
                    "Tagged buckets exceed the account balance",
                    account_id=bucket.account_id,
                    personal=to_money(personal),
                )
            return fetch_fresh(session, Account, Account.id == bucket.account_id)

    def _apply_bucket_delta(
        self, session: Session, bucket: BucketRef, delta: Decimal, user_id: int
    ) -> None:
        criteria = _bucket_criteria(bucket, user_id)
        now = datetime.now(timezone.utc)
        if delta > ZERO:
            statement = (
                update(FundBucket)
                .where(*criteria)
                .values(amount=FundBucket.amount + delta, updated_at=now)
            )
            if execute_write(session, statement) == 0:
                session.add(
                    FundBucket(
                        user_id=user_id,
                        account_id=bucket.account_id,
                        bucket_type=bucket.bucket_type.value,
                        reference_id=bucket.reference_id,
                        amount=delta,
                    )
                )
                session.flush()
            return

        statement = (
            update(FundBucket)
            .where(*criteria, FundBucket.amount + delta >= -STORE_EPSILON)
            .values(amount=FundBucket.amount + delta, updated_at=now)
        )
        if execute_write(session, statement) != 1:
            raise InsufficientFundsError(
                f"Insufficient funds in {bucket.label()}",
                account_id=bucket.account_id,
                requested=-delta,
            )
        # Rows never linger at zero.
        execute_write(
            session, delete(FundBucket).where(*criteria, FundBucket.amount <= STORE_EPSILON)
        )
