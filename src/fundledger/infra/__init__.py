"""Persistence infrastructure: engine setup, SQLModel repositories, unit of work."""

from .database import bootstrap_database, create_db_engine, create_session_factory, init_database
from .store import LedgerUnitOfWork, SQLModelLedgerStore

__all__ = [
    "LedgerUnitOfWork",
    "SQLModelLedgerStore",
    "bootstrap_database",
    "create_db_engine",
    "create_session_factory",
    "init_database",
]
