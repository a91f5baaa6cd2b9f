"""Fund bucket identities.

A bucket is a labeled slice of one account's balance. ``personal`` is what is
left after the tagged slices are taken out, so it has no reference id and no
stored row. ``borrowed`` slices point at a liability, ``goal`` slices at a
savings goal.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class BucketType(str, Enum):
    PERSONAL = "personal"
    BORROWED = "borrowed"
    GOAL = "goal"

    @property
    def is_tagged(self) -> bool:
        return self is not BucketType.PERSONAL


@dataclass(frozen=True, slots=True)
class BucketRef:
    """Identifies one bucket: account + type + optional reference id."""

    account_id: int
    bucket_type: BucketType
    reference_id: Optional[int] = None

    def __post_init__(self) -> None:
        if not isinstance(self.bucket_type, BucketType):
            object.__setattr__(self, "bucket_type", BucketType(self.bucket_type))
        if self.bucket_type is BucketType.PERSONAL and self.reference_id is not None:
            raise ValueError("personal buckets do not carry a reference id")
        if self.bucket_type.is_tagged and self.reference_id is None:
            raise ValueError(f"{self.bucket_type.value} buckets require a reference id")

    @classmethod
    def personal(cls, account_id: int) -> "BucketRef":
        return cls(account_id, BucketType.PERSONAL)

    @classmethod
    def borrowed(cls, account_id: int, liability_id: int) -> "BucketRef":
        return cls(account_id, BucketType.BORROWED, liability_id)

    @classmethod
    def goal(cls, account_id: int, goal_id: int) -> "BucketRef":
        return cls(account_id, BucketType.GOAL, goal_id)

    @property
    def is_personal(self) -> bool:
        return self.bucket_type is BucketType.PERSONAL

    def label(self) -> str:
        if self.is_personal:
            return f"account {self.account_id} personal"
        return f"account {self.account_id} {self.bucket_type.value}:{self.reference_id}"
