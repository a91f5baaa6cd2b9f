"""Tests for the command-line interface."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

import pytest
from click.testing import CliRunner

from fundledger.cli import cli, parse_money
from fundledger.config import DevConfig
from fundledger.infra import SQLModelLedgerStore, bootstrap_database
from fundledger.models import Account, User
from fundledger.services.liabilities import Disbursement, LiabilityDraft, create_liability


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.setenv("FUNDLEDGER_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("FUNDLEDGER_DATABASE_URL", raising=False)
    yield CliRunner()
    logging.getLogger("fundledger").handlers.clear()


@pytest.fixture
def seeded(runner):
    """A user with a funded checking account and two liabilities in the CLI database."""

    engine, session_factory = bootstrap_database(DevConfig())
    store = SQLModelLedgerStore(session_factory)
    with session_factory() as session:
        owner = User(username="cli")
        session.add(owner)
        session.flush()
        session.refresh(owner)
    with store.unit_of_work() as uow:
        account = uow.accounts.create(Account(name="Checking", balance=Decimal("1000.00")), user_id=owner.id)
    loans = [
        create_liability(
            store,
            LiabilityDraft(name=name, original_amount=Decimal(amount), start_date=date(2030, 1, 15), periods=12),
            user_id=owner.id,
            disbursements=[Disbursement(account.id, Decimal("120.00"))],
        ).unwrap().liability
        for name, amount in (("Car loan", "1200.00"), ("Laptop", "2400.00"))
    ]
    yield owner, account, loans
    engine.dispose()


@pytest.mark.parametrize(
    "text, expected",
    [("12000", "12000"), ("12,000.50", "12000.50"), ("12k", "12000"), ("1.5K", "1500.0")],
)
def test_parse_money(text, expected):
    assert parse_money(text) == Decimal(expected)


def test_init_db_reports_database(runner, tmp_path):
    result = runner.invoke(cli, ["init-db"], obj={})

    assert result.exit_code == 0
    assert "fundledger.db" in result.output
    assert (tmp_path / "fundledger.db").exists()


def test_schedule_prints_table_and_summary(runner):
    result = runner.invoke(
        cli, ["schedule", "-p", "12k", "-r", "12", "-n", "12", "-s", "2030-01-15"], obj={}
    )

    assert result.exit_code == 0
    assert "1066.19" in result.output
    assert "12 payments" in result.output
    assert "paid off 2030-12-15" in result.output


def test_schedule_requires_payment_or_periods(runner):
    result = runner.invoke(cli, ["schedule", "-p", "1000", "-s", "2030-01-15"], obj={})

    assert result.exit_code == 2
    assert "--payment" in result.output


def test_schedule_reports_ledger_errors(runner):
    result = runner.invoke(
        cli, ["schedule", "-p", "1000", "-r", "24", "--payment", "10", "-s", "2030-01-15"], obj={}
    )

    assert result.exit_code == 1
    assert "validation_error" in result.output


def test_breakdown_lists_tagged_money(runner, seeded):
    owner, account, _ = seeded

    result = runner.invoke(cli, ["breakdown", str(account.id), "--user-id", str(owner.id)], obj={})

    assert result.exit_code == 0
    assert "1240.00" in result.output
    assert result.output.count("borrowed") == 2


def test_pay_splits_proportionally(runner, seeded):
    owner, account, (car, laptop) = seeded

    result = runner.invoke(
        cli,
        ["pay", str(car.id), str(laptop.id), "--total", "300", "--account", str(account.id),
         "--user-id", str(owner.id), "--on", "2030-01-15"],
        obj={},
    )

    assert result.exit_code == 0
    assert "balance 1100.00" in result.output
    assert "balance 2200.00" in result.output


def test_pay_rejects_mismatched_amounts(runner, seeded):
    owner, account, (car, laptop) = seeded

    result = runner.invoke(
        cli,
        ["pay", f"{car.id}=100", f"{laptop.id}=150", "--total", "300", "--account", str(account.id),
         "--user-id", str(owner.id)],
        obj={},
    )

    assert result.exit_code == 1
    assert "allocation_mismatch" in result.output


def test_settlement_status(runner, seeded):
    owner, _, (car, _) = seeded

    result = runner.invoke(cli, ["settlement-status", str(car.id), "--user-id", str(owner.id)], obj={})

    assert result.exit_code == 0
    assert "remaining owed       1200.00" in result.output
    assert "needs settlement" in result.output


def test_unknown_liability_fails(runner, seeded):
    owner, _, _ = seeded

    result = runner.invoke(cli, ["settlement-status", "999", "--user-id", str(owner.id)], obj={})

    assert result.exit_code == 1
    assert "not_found" in result.output
