"""Schedule entry repository protocol."""

from __future__ import annotations

from typing import Any, Iterable, Optional, Protocol

from ...models.schedule import ScheduleEntry, ScheduleStatus


class ScheduleRepository(Protocol):
    def get(self, entry_id: int, *, user_id: int) -> Optional[ScheduleEntry]:
        ...

    def list_for_liability(
        self,
        liability_id: int,
        *,
        user_id: int,
        status: ScheduleStatus | Iterable[ScheduleStatus] | None = None,
    ) -> list[ScheduleEntry]:
        """Entries in due order, optionally filtered by status."""
        ...

    def insert_many(self, entries: Iterable[ScheduleEntry], *, user_id: int) -> list[ScheduleEntry]:
        ...

    def update(
        self, entry_id: int, expected_version: int, *, user_id: int, **patch: Any
    ) -> ScheduleEntry:
        """Patch an upcoming entry, guarded by its version."""
        ...

    def delete_upcoming(self, liability_id: int, *, user_id: int) -> int:
        ...

    def cancel_upcoming(self, liability_id: int, *, user_id: int) -> int:
        ...
