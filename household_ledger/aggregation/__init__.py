"""Dashboard aggregation package."""

from household_ledger.aggregation.engine import (
    compute_category_breakdown,
    compute_monthly_summary,
    compute_yearly_series,
    compute_yearly_summary,
)

__all__ = [
    "compute_category_breakdown",
    "compute_monthly_summary",
    "compute_yearly_series",
    "compute_yearly_summary",
]
