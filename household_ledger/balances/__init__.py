"""Balance engine package."""

from household_ledger.balances.engine import (
    BalanceComputationError,
    BalanceSheet,
    compute_balances,
    split_evenly,
)
from household_ledger.balances.suggestions import suggest_direction, suggest_settlements

__all__ = [
    "BalanceComputationError",
    "BalanceSheet",
    "compute_balances",
    "split_evenly",
    "suggest_direction",
    "suggest_settlements",
]
