"""Configuration objects and helpers."""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    """Interpret environment variable values as booleans."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "fundledger"
    DB_FILENAME = "fundledger.db"
    SQLITE_PRAGMAS = {"journal_mode": "wal", "foreign_keys": "on"}

    def __init__(self) -> None:
        self.DATA_DIR = self._resolve_data_dir()
        self.DEV_MODE = _env_bool("FUNDLEDGER_DEV_MODE", default=True)
        self.LOG_LEVEL = os.getenv("FUNDLEDGER_LOG_LEVEL", "INFO").upper()
        self.DATABASE_URL = os.getenv("FUNDLEDGER_DATABASE_URL", self._build_sqlite_url())
        self.MONEY_TOLERANCE = Decimal(os.getenv("FUNDLEDGER_MONEY_TOLERANCE", "0.01"))
        self.MAX_SCHEDULE_PERIODS = _env_int("FUNDLEDGER_MAX_SCHEDULE_PERIODS", 1200)
        if self.MONEY_TOLERANCE < 0:
            raise ValueError("FUNDLEDGER_MONEY_TOLERANCE must not be negative.")
        if self.MAX_SCHEDULE_PERIODS <= 0:
            raise ValueError("FUNDLEDGER_MAX_SCHEDULE_PERIODS must be positive.")

    def _resolve_data_dir(self) -> Path:
        """Return the directory where the SQLite file and logs live."""

        data_root = os.getenv("FUNDLEDGER_DATA_DIR", "instance")
        path = Path(data_root).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _build_sqlite_url(self) -> str:
        db_path = self.DATA_DIR / self.DB_FILENAME
        return f"sqlite:///{db_path}"

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        """Expose engine kwargs for SQLModel to consume."""

        engine_options: dict[str, Any] = {}
        if self.DATABASE_URL.startswith("sqlite"):
            engine_options["connect_args"] = {"check_same_thread": False}
        return engine_options


class DevConfig(BaseConfig):
    """Development configuration using local SQLite."""

    DEBUG = True
    TESTING = False


class TestConfig(BaseConfig):
    """Configuration for tests: in-memory database, no dev console noise."""

    DEBUG = False
    TESTING = True

    def __init__(self) -> None:
        super().__init__()
        self.DEV_MODE = False
        self.DATABASE_URL = "sqlite://"

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        from sqlalchemy.pool import StaticPool

        return {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
