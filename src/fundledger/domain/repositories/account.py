"""Account repository protocol."""

from __future__ import annotations

from typing import Optional, Protocol

from ...models.account import Account


class AccountRepository(Protocol):
    """Repository for managing account entities."""

    def get_by_id(self, account_id: int, *, user_id: int) -> Optional[Account]:
        """Retrieve an account by ID."""
        ...

    def list_all(self, *, user_id: int, include_archived: bool = False) -> list[Account]:
        """List all accounts."""
        ...

    def create(self, account: Account, *, user_id: int) -> Account:
        """Create a new account."""
        ...

    def archive(self, account_id: int, *, user_id: int) -> bool:
        """Soft-delete an account."""
        ...
