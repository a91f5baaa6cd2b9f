"""Tests for environment-driven configuration."""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool

from fundledger import config as config_module
from fundledger.infra import bootstrap_database


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    for name in (
        "FUNDLEDGER_DATABASE_URL",
        "FUNDLEDGER_DEV_MODE",
        "FUNDLEDGER_LOG_LEVEL",
        "FUNDLEDGER_MONEY_TOLERANCE",
        "FUNDLEDGER_MAX_SCHEDULE_PERIODS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("FUNDLEDGER_DATA_DIR", str(tmp_path / "data"))


def test_defaults(tmp_path):
    config = config_module.BaseConfig()

    assert config.DATA_DIR == (tmp_path / "data").resolve()
    assert config.DATA_DIR.is_dir()
    assert config.DATABASE_URL == f"sqlite:///{config.DATA_DIR / 'fundledger.db'}"
    assert config.DEV_MODE is True
    assert config.LOG_LEVEL == "INFO"
    assert config.MONEY_TOLERANCE == Decimal("0.01")
    assert config.MAX_SCHEDULE_PERIODS == 1200
    assert config.sqlalchemy_engine_options() == {"connect_args": {"check_same_thread": False}}


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FUNDLEDGER_DATABASE_URL", "postgresql://ledger@localhost/ledger")
    monkeypatch.setenv("FUNDLEDGER_DEV_MODE", "off")
    monkeypatch.setenv("FUNDLEDGER_LOG_LEVEL", "debug")
    monkeypatch.setenv("FUNDLEDGER_MONEY_TOLERANCE", "0.05")
    monkeypatch.setenv("FUNDLEDGER_MAX_SCHEDULE_PERIODS", "360")

    config = config_module.DevConfig()

    assert config.DATABASE_URL == "postgresql://ledger@localhost/ledger"
    assert config.DEV_MODE is False
    assert config.LOG_LEVEL == "DEBUG"
    assert config.MONEY_TOLERANCE == Decimal("0.05")
    assert config.MAX_SCHEDULE_PERIODS == 360
    assert config.sqlalchemy_engine_options() == {}


@pytest.mark.parametrize(
    "name, value",
    [
        ("FUNDLEDGER_MONEY_TOLERANCE", "-0.01"),
        ("FUNDLEDGER_MAX_SCHEDULE_PERIODS", "0"),
        ("FUNDLEDGER_MAX_SCHEDULE_PERIODS", "many"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError):
        config_module.BaseConfig()


def test_test_config_uses_shared_memory_database():
    config = config_module.TestConfig()

    assert config.TESTING is True
    assert config.DEV_MODE is False
    assert config.DATABASE_URL == "sqlite://"
    assert config.sqlalchemy_engine_options()["poolclass"] is StaticPool


def test_bootstrap_creates_schema():
    engine, session_factory = bootstrap_database(config_module.TestConfig())

    tables = set(inspect(engine).get_table_names())

    assert {"account", "fund_bucket", "liability", "schedule_entry", "transaction"} <= tables
    with session_factory() as session:
        assert session.is_active
    engine.dispose()
