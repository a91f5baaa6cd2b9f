"""SQLModel implementation of the liability payment repository."""

from __future__ import annotations

from typing import Callable, ContextManager, Optional

from sqlmodel import Session, select

from ...models.payment import LiabilityPayment


class SQLModelPaymentRepository:
    def __init__(self, session_factory: Callable[[], ContextManager[Session]]):
        self.session_factory = session_factory

    def record(self, payment: LiabilityPayment, *, user_id: int) -> LiabilityPayment:
        """Insert a payment record; records are never updated afterwards."""
        with self.session_factory() as session:
            payment.user_id = user_id
            session.add(payment)
            session.flush()
            session.refresh(payment)
            return payment

    def find_by_idempotency_key(self, key: str, *, user_id: int) -> Optional[LiabilityPayment]:
        with self.session_factory() as session:
            return session.exec(
                select(LiabilityPayment).where(
                    LiabilityPayment.idempotency_key == key, LiabilityPayment.user_id == user_id
                )
            ).first()

    def list_for_liability(self, liability_id: int, *, user_id: int) -> list[LiabilityPayment]:
        with self.session_factory() as session:
            statement = (
                select(LiabilityPayment)
                .where(
                    LiabilityPayment.liability_id == liability_id,
                    LiabilityPayment.user_id == user_id,
                )
                .order_by(LiabilityPayment.paid_on, LiabilityPayment.id)  # type: ignore
            )
            return list(session.exec(statement).all())
