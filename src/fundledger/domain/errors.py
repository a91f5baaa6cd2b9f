"""Typed ledger errors.

Every error carries a stable ``code`` so callers can map failures to messages
without parsing text. Validation and not-found errors are raised before any
write happens; invariant violations abort the unit of work that detected them.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class LedgerError(Exception):
    """Base class for every failure the ledger reports to its callers."""

    code = "ledger_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(LedgerError):
    code = "validation_error"


class InsufficientFundsError(ValidationError):
    code = "insufficient_funds"


class TransferNotAllowedError(ValidationError):
    code = "transfer_not_allowed"


class AllocationMismatchError(ValidationError):
    code = "allocation_mismatch"

    def __init__(self, message: str, *, discrepancy: Decimal, **details: Any) -> None:
        super().__init__(message, discrepancy=discrepancy, **details)
        self.discrepancy = discrepancy


class DateOutOfRangeError(ValidationError):
    code = "date_out_of_range"


class EntryNotMutableError(ValidationError):
    code = "entry_not_mutable"


class NotFoundError(LedgerError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any, **details: Any) -> None:
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id, **details)
        self.entity = entity
        self.entity_id = entity_id


class InvariantViolationError(LedgerError):
    code = "invariant_violation"


class ConcurrencyConflictError(LedgerError):
    """A version-guarded update lost a race with another writer."""

    code = "concurrency_conflict"
