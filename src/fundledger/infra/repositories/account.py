"""SQLModel implementation of Account repository."""

from __future__ import annotations

from typing import Callable, ContextManager, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from ...models.account import Account
from ._base import execute_write, fetch_fresh


class SQLModelAccountRepository:
    """SQLModel-based account repository implementation."""

    def __init__(self, session_factory: Callable[[], ContextManager[Session]]):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def get_by_id(self, account_id: int, *, user_id: int) -> Optional[Account]:
        """Retrieve an account owned by *user_id*."""
        with self.session_factory() as session:
            return fetch_fresh(session, Account, Account.id == account_id, Account.user_id == user_id)

    def list_all(self, *, user_id: int, include_archived: bool = False) -> list[Account]:
        """List accounts for a user."""
        with self.session_factory() as session:
            statement = select(Account).where(Account.user_id == user_id)
            if not include_archived:
                statement = statement.where(Account.is_active == True)  # noqa: E712
            statement = statement.order_by(Account.name)  # type: ignore
            return list(session.exec(statement).all())

    def create(self, account: Account, *, user_id: int) -> Account:
        """Create a new account."""
        with self.session_factory() as session:
            account.user_id = user_id
            session.add(account)
            session.flush()
            session.refresh(account)
            return account

    def archive(self, account_id: int, *, user_id: int) -> bool:
        """Soft-delete an account; returns False when nothing matched."""
        with self.session_factory() as session:
            statement = (
                update(Account)
                .where(Account.id == account_id, Account.user_id == user_id)
                .values(is_active=False)
            )
            return execute_write(session, statement) == 1
