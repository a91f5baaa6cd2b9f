"""Fund bucket repository protocol."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol

from ...models.account import Account
from ...models.fund import FundBucket
from ..buckets import BucketRef, BucketType


class FundRepository(Protocol):
    """Reads tagged buckets and applies bucket + account deltas atomically."""

    def get(self, bucket: BucketRef, *, user_id: int) -> Optional[FundBucket]:
        """Stored row for a tagged bucket; personal buckets have none."""
        ...

    def list_for_account(self, account_id: int, *, user_id: int) -> list[FundBucket]:
        """Tagged buckets held in one account."""
        ...

    def list_for_reference(
        self, bucket_type: BucketType, reference_id: int, *, user_id: int
    ) -> list[FundBucket]:
        """Buckets tagged for one liability or goal, across accounts."""
        ...

    def available(self, bucket: BucketRef, *, user_id: int) -> Decimal:
        """Amount currently held in a bucket."""
        ...

    def adjust(
        self,
        bucket: BucketRef,
        *,
        bucket_delta: Decimal,
        account_delta: Decimal,
        user_id: int,
    ) -> Account:
        """Apply a bucket delta and an account balance delta as one write."""
        ...
