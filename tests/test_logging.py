"""Tests for structured logging functionality."""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from datetime import date
from decimal import Decimal

import pytest

from fundledger.config import BaseConfig
from fundledger.domain.buckets import BucketRef
from fundledger.logging_config import JSONFormatter, get_logger, setup_logging
from fundledger.models.schedule import SkipPolicy
from fundledger.services.transfers import transfer_funds


def _record(**kwargs) -> logging.LogRecord:
    options = dict(
        name="fundledger.services",
        level=logging.INFO,
        pathname="ledger.py",
        lineno=42,
        msg="Funds moved",
        args=(),
        exc_info=None,
    )
    options.update(kwargs)
    record = logging.LogRecord(**options)
    record.module = "ledger"
    record.funcName = "transfer"
    return record


def test_json_formatter():
    """JSONFormatter emits the standard fields as JSON."""
    log_data = json.loads(JSONFormatter().format(_record()))

    assert log_data["level"] == "INFO"
    assert log_data["logger"] == "fundledger.services"
    assert log_data["message"] == "Funds moved"
    assert log_data["module"] == "ledger"
    assert log_data["function"] == "transfer"
    assert log_data["line"] == 42
    assert "timestamp" in log_data


def test_json_formatter_collects_extra_fields():
    record = _record()
    record.account_id = 7
    record.amount = "12.50"

    log_data = json.loads(JSONFormatter().format(record))

    assert log_data["extra"] == {"account_id": 7, "amount": "12.50"}


def test_json_formatter_writes_ledger_values():
    """Money stays exact and ledger types render readably."""
    record = _record()
    record.amount = Decimal("1066.19")
    record.source = BucketRef.borrowed(3, 9)
    record.due_date = date(2030, 1, 15)
    record.policy = SkipPolicy.ADD_TO_END

    log_data = json.loads(JSONFormatter().format(record))

    assert log_data["extra"] == {
        "amount": "1066.19",
        "source": "account 3 borrowed:9",
        "due_date": "2030-01-15",
        "policy": "add_to_end",
    }


def test_json_formatter_with_exception():
    """JSONFormatter serializes exception details."""
    try:
        raise ValueError("Test error")
    except ValueError:
        exc_info = sys.exc_info()

    log_data = json.loads(JSONFormatter().format(_record(level=logging.ERROR, exc_info=exc_info)))

    assert log_data["exception"]["type"] == "ValueError"
    assert "Test error" in log_data["exception"]["message"]
    assert log_data["exception"]["traceback"] is not None


@pytest.fixture
def logging_config(tmp_path, monkeypatch):
    monkeypatch.setenv("FUNDLEDGER_DATA_DIR", str(tmp_path))
    config = BaseConfig()
    yield config
    logging.getLogger("fundledger").handlers.clear()


def test_setup_logging(logging_config, tmp_path):
    """Setup creates a rotating JSON log file under the data directory."""
    logger = setup_logging(logging_config)

    assert logger.name == "fundledger"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 2

    log_file = tmp_path / "logs" / "fundledger.log"
    assert log_file.exists()

    logger.warning("Test warning message")
    for handler in logger.handlers:
        handler.flush()

    lines = [line for line in log_file.read_text().splitlines() if line.strip()]
    assert len(lines) >= 2
    for line in lines:
        log_entry = json.loads(line)
        assert {"timestamp", "level", "message"} <= log_entry.keys()


def test_ledger_failures_reach_the_log_file(logging_config, tmp_path, store, user, account_factory):
    setup_logging(logging_config)
    account = account_factory(balance="10.00")

    result = transfer_funds(
        store, BucketRef.personal(account.id), BucketRef.personal(account.id), "5", user_id=user.id
    )
    for handler in logging.getLogger("fundledger").handlers:
        handler.flush()

    assert not result.ok
    entries = [json.loads(line) for line in (tmp_path / "logs" / "fundledger.log").read_text().splitlines()]
    failures = [e for e in entries if e.get("extra", {}).get("operation") == "transfer_funds"]
    assert failures
    assert failures[-1]["extra"]["error_code"] == result.code


def test_get_logger():
    """get_logger nests names under the package logger."""
    assert get_logger("module1").name == "fundledger.module1"
    assert get_logger("fundledger.services").name == "fundledger.services"
    assert get_logger("module1") is not get_logger("module2")


@pytest.mark.parametrize("dev_mode", [True, False])
def test_logging_levels_by_mode(logging_config, dev_mode):
    """Console logging level adjusts to the dev mode."""
    logging_config.DEV_MODE = dev_mode

    logger = setup_logging(logging_config)

    console = [
        h
        for h in logger.handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.handlers.RotatingFileHandler)
    ]
    assert len(console) == 1
    assert console[0].level == (logging.INFO if dev_mode else logging.WARNING)
