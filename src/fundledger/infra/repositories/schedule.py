"""SQLModel implementation of the schedule entry repository."""

from __future__ import annotations

from typing import Any, Callable, ContextManager, Iterable, Optional

from sqlalchemy import delete, update
from sqlmodel import Session, select

from ...domain.errors import ConcurrencyConflictError, EntryNotMutableError, NotFoundError
from ...models.schedule import ScheduleEntry, ScheduleStatus
from ._base import execute_write, fetch_fresh


class SQLModelScheduleRepository:
    """SQLModel-based schedule repository implementation."""

    def __init__(self, session_factory: Callable[[], ContextManager[Session]]):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def get(self, entry_id: int, *, user_id: int) -> Optional[ScheduleEntry]:
        """Retrieve one entry owned by *user_id*."""
        with self.session_factory() as session:
            return fetch_fresh(
                session, ScheduleEntry, ScheduleEntry.id == entry_id, ScheduleEntry.user_id == user_id
            )

    def list_for_liability(
        self,
        liability_id: int,
        *,
        user_id: int,
        status: ScheduleStatus | Iterable[ScheduleStatus] | None = None,
    ) -> list[ScheduleEntry]:
        """List a liability's entries in due order, optionally filtered by status."""
        with self.session_factory() as session:
            statement = select(ScheduleEntry).where(
                ScheduleEntry.liability_id == liability_id, ScheduleEntry.user_id == user_id
            )
            if isinstance(status, ScheduleStatus):
                statement = statement.where(ScheduleEntry.status == status.value)
            elif status is not None:
                statement = statement.where(
                    ScheduleEntry.status.in_([s.value for s in status])  # type: ignore[attr-defined]
                )
            statement = statement.order_by(
                ScheduleEntry.due_date, ScheduleEntry.payment_number, ScheduleEntry.id  # type: ignore
            ).execution_options(populate_existing=True)
            return list(session.exec(statement).all())

    def insert_many(self, entries: Iterable[ScheduleEntry], *, user_id: int) -> list[ScheduleEntry]:
        """Persist new entries and return them with ids assigned."""
        with self.session_factory() as session:
            rows = list(entries)
            for row in rows:
                row.user_id = user_id
                session.add(row)
            session.flush()
            for row in rows:
                session.refresh(row)
            return rows

    def update(
        self, entry_id: int, expected_version: int, *, user_id: int, **patch: Any
    ) -> ScheduleEntry:
        """Patch an upcoming entry if nobody changed it since *expected_version*.

        Paid and cancelled entries are terminal; the status guard lives in the
        same statement as the version check.
        """
        with self.session_factory() as session:
            statement = (
                update(ScheduleEntry)
                .where(
                    ScheduleEntry.id == entry_id,
                    ScheduleEntry.user_id == user_id,
                    ScheduleEntry.version == expected_version,
                    ScheduleEntry.status == ScheduleStatus.UPCOMING.value,
                )
                .values(version=ScheduleEntry.version + 1, **patch)
            )
            if execute_write(session, statement) != 1:
                current = fetch_fresh(
                    session, ScheduleEntry, ScheduleEntry.id == entry_id, ScheduleEntry.user_id == user_id
                )
                if current is None:
                    raise NotFoundError("schedule entry", entry_id)
                if current.status != ScheduleStatus.UPCOMING:
                    raise EntryNotMutableError(
                        f"Schedule entry {entry_id} is {current.status} and can no longer change",
                        entry_id=entry_id,
                        status=current.status,
                    )
                raise ConcurrencyConflictError(
                    "Schedule entry was modified concurrently", entry_id=entry_id
                )
            return fetch_fresh(session, ScheduleEntry, ScheduleEntry.id == entry_id)

    def delete_upcoming(self, liability_id: int, *, user_id: int) -> int:
        """Drop every upcoming entry of a liability (before regenerating the tail)."""
        with self.session_factory() as session:
            statement = delete(ScheduleEntry).where(
                ScheduleEntry.liability_id == liability_id,
                ScheduleEntry.user_id == user_id,
                ScheduleEntry.status == ScheduleStatus.UPCOMING.value,
            )
            return execute_write(session, statement, synchronize=True)

    def cancel_upcoming(self, liability_id: int, *, user_id: int) -> int:
        """Cancel every upcoming entry of a liability (used on deletion)."""
        with self.session_factory() as session:
            statement = (
                update(ScheduleEntry)
                .where(
                    ScheduleEntry.liability_id == liability_id,
                    ScheduleEntry.user_id == user_id,
                    ScheduleEntry.status == ScheduleStatus.UPCOMING.value,
                )
                .values(status=ScheduleStatus.CANCELLED.value, version=ScheduleEntry.version + 1)
            )
            return execute_write(session, statement)
