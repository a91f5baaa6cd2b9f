"""Liability repository protocol."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Protocol

from ...models.liability import Liability


class LiabilityRepository(Protocol):
    """Repository for managing liability entities."""

    def get_by_id(
        self, liability_id: int, *, user_id: int, include_deleted: bool = False
    ) -> Optional[Liability]:
        """Retrieve a liability by ID."""
        ...

    def require(self, liability_id: int, *, user_id: int) -> Liability:
        """Retrieve a liability or raise ``NotFoundError``."""
        ...

    def list_active(self, *, user_id: int) -> list[Liability]:
        """List liabilities with non-zero balances."""
        ...

    def create(self, liability: Liability, *, user_id: int) -> Liability:
        """Create a new liability."""
        ...

    def adjust_balance(self, liability_id: int, delta: Decimal, *, user_id: int) -> Liability:
        """Add a (usually negative) delta to the current balance."""
        ...

    def add_disbursed(self, liability_id: int, amount: Decimal, *, user_id: int) -> Liability:
        """Record principal paid out into accounts."""
        ...

    def update_fields(
        self, liability_id: int, expected_version: int, *, user_id: int, **fields: Any
    ) -> Liability:
        """Version-guarded update."""
        ...

    def soft_delete(self, liability_id: int, expected_version: int, *, user_id: int) -> Liability:
        """Mark a liability deleted."""
        ...

    def get_total_debt(self, *, user_id: int) -> Decimal:
        """Calculate total outstanding debt."""
        ...
