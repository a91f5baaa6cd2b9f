"""Fund-bucket ledger with liability amortization and settlement."""

from __future__ import annotations

from .config import BaseConfig, DevConfig, TestConfig
from .infra import SQLModelLedgerStore, bootstrap_database

__version__ = "0.1.0"

__all__ = ["BaseConfig", "DevConfig", "SQLModelLedgerStore", "TestConfig", "bootstrap_database"]
