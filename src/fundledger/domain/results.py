"""Typed operation results returned across the ledger boundary."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

from .errors import LedgerError

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Failure:
    error: LedgerError

    @property
    def ok(self) -> bool:
        return False

    @property
    def code(self) -> str:
        return self.error.code

    def unwrap(self):
        raise self.error


Result = Union[Success[T], Failure]


def ledger_operation(func: Callable[..., T]) -> Callable[..., Result[T]]:
    """Run *func* and wrap its outcome in a ``Success`` or ``Failure``.

    Only ``LedgerError`` is converted; anything else is a bug or a driver
    failure and propagates to the caller.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Result[T]:
        try:
            return Success(func(*args, **kwargs))
        except LedgerError as exc:
            logger.warning(
                "%s failed: %s",
                func.__name__,
                exc.message,
                extra={"operation": func.__name__, "error_code": exc.code, "details": exc.details},
            )
            return Failure(exc)

    wrapper.raw = func  # type: ignore[attr-defined]
    return wrapper
