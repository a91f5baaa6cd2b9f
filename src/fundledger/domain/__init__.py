"""Domain types: bucket identities, money helpers, errors and results."""

from .buckets import BucketRef, BucketType
from .errors import (
    AllocationMismatchError,
    ConcurrencyConflictError,
    DateOutOfRangeError,
    EntryNotMutableError,
    InsufficientFundsError,
    InvariantViolationError,
    LedgerError,
    NotFoundError,
    TransferNotAllowedError,
    ValidationError,
)
from .results import Failure, Result, Success, ledger_operation

__all__ = [
    "AllocationMismatchError",
    "BucketRef",
    "BucketType",
    "ConcurrencyConflictError",
    "DateOutOfRangeError",
    "EntryNotMutableError",
    "Failure",
    "InsufficientFundsError",
    "InvariantViolationError",
    "LedgerError",
    "NotFoundError",
    "Result",
    "Success",
    "TransferNotAllowedError",
    "ValidationError",
    "ledger_operation",
]
