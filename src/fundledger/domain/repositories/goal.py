"""Goal repository protocol."""

from __future__ import annotations

from typing import Optional, Protocol

from ...models.goal import Goal


class GoalRepository(Protocol):
    def get_by_id(self, goal_id: int, *, user_id: int) -> Optional[Goal]:
        ...

    def create(self, goal: Goal, *, user_id: int) -> Goal:
        ...
