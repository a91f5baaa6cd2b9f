"""Ledger logging: a readable console plus a rotating JSON audit file.

Services log committed operations at INFO and failed ones at WARNING, with
ledger ids and amounts passed through ``extra``. The JSON file keeps those
fields under ``"extra"`` with amounts written as exact decimal strings.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any

from .config import BaseConfig
from .domain.buckets import BucketRef

LOGGER_NAME = "fundledger"
LOG_FILE_NAME = "fundledger.log"

_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def _ledger_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BucketRef):
        return value.label()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra`` fields are nested under ``"extra"``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            error_type, error, _ = record.exc_info
            entry["exception"] = {
                "type": error_type.__name__ if error_type else None,
                "message": str(error) if error else None,
                "traceback": self.formatException(record.exc_info),
            }

        extra = {key: value for key, value in vars(record).items() if key not in _RESERVED}
        if extra:
            entry["extra"] = extra
        return json.dumps(entry, default=_ledger_value)


def _console_handler(config: BaseConfig) -> logging.Handler:
    handler = logging.StreamHandler()
    if config.DEV_MODE:
        handler.setLevel(logging.INFO)
        handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    else:
        handler.setLevel(logging.WARNING)
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
    return handler


def _audit_file_handler(log_file: Path) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(config: BaseConfig) -> logging.Logger:
    """Attach the console and JSON audit handlers to the ``fundledger`` logger.

    Calling it again replaces the handlers rather than stacking them.

    Args:
        config: supplies ``DATA_DIR`` (logs go to ``<DATA_DIR>/logs``),
            ``DEV_MODE`` and ``LOG_LEVEL``

    Returns:
        The package logger
    """
    logs_dir = Path(config.DATA_DIR) / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / LOG_FILE_NAME

    ledger_logger = logging.getLogger(LOGGER_NAME)
    ledger_logger.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    ledger_logger.handlers.clear()
    ledger_logger.addHandler(_console_handler(config))
    ledger_logger.addHandler(_audit_file_handler(log_file))

    ledger_logger.info(
        "Ledger logging ready",
        extra={
            "dev_mode": config.DEV_MODE,
            "log_file": str(log_file),
            "data_dir": config.DATA_DIR,
        },
    )
    return ledger_logger


def get_logger(name: str) -> logging.Logger:
    """Return *name* as a child of the ``fundledger`` logger."""
    if name == LOGGER_NAME or name.startswith(f"{LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


__all__ = ["JSONFormatter", "LOGGER_NAME", "get_logger", "setup_logging"]
