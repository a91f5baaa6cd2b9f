"""Service module exports."""

from . import (
    allocation,
    amortization,
    buckets,
    liabilities,
    schedules,
    settlement,
    transfers,
)

__all__ = [
    "allocation",
    "amortization",
    "buckets",
    "liabilities",
    "schedules",
    "settlement",
    "transfers",
]
