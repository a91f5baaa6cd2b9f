"""Shared helpers for SQLModel repositories."""

from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

from sqlalchemy.sql.dml import UpdateBase
from sqlmodel import Session, SQLModel, select

ModelT = TypeVar("ModelT", bound=SQLModel)


def execute_write(session: Session, statement: UpdateBase, *, synchronize: bool = False) -> int:
    """Run a store-side UPDATE/DELETE and return the affected row count.

    Unless *synchronize* is set, objects already loaded in the session are not
    updated; read them back with :func:`fetch_fresh`. Deletes of loaded rows
    should synchronize so the session forgets them.
    """

    result = session.exec(  # type: ignore[call-overload]
        statement.execution_options(synchronize_session="fetch" if synchronize else False)
    )
    return result.rowcount


def fetch_fresh(session: Session, model: Type[ModelT], *criteria: Any) -> Optional[ModelT]:
    """Select one row, overwriting any stale copy held by the session."""

    statement = select(model).where(*criteria).execution_options(populate_existing=True)
    return session.exec(statement).first()
