"""Liability payment repository protocol."""

from __future__ import annotations

from typing import Optional, Protocol

from ...models.payment import LiabilityPayment


class PaymentRepository(Protocol):
    def record(self, payment: LiabilityPayment, *, user_id: int) -> LiabilityPayment:
        ...

    def find_by_idempotency_key(self, key: str, *, user_id: int) -> Optional[LiabilityPayment]:
        ...

    def list_for_liability(self, liability_id: int, *, user_id: int) -> list[LiabilityPayment]:
        ...
