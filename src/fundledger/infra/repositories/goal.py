"""SQLModel implementation of Goal repository."""

from __future__ import annotations

from typing import Callable, ContextManager, Optional

from sqlmodel import Session

from ...models.goal import Goal
from ._base import fetch_fresh


class SQLModelGoalRepository:
    def __init__(self, session_factory: Callable[[], ContextManager[Session]]):
        self.session_factory = session_factory

    def get_by_id(self, goal_id: int, *, user_id: int) -> Optional[Goal]:
        with self.session_factory() as session:
            return fetch_fresh(session, Goal, Goal.id == goal_id, Goal.user_id == user_id)

    def create(self, goal: Goal, *, user_id: int) -> Goal:
        with self.session_factory() as session:
            goal.user_id = user_id
            session.add(goal)
            session.flush()
            session.refresh(goal)
            return goal
