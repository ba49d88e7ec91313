"""Recurring expense package."""

from household_ledger.recurring.scheduler import (
    due_date_for,
    materialize_fixed_expenses,
    variable_expense_reminders,
)

__all__ = [
    "due_date_for",
    "materialize_fixed_expenses",
    "variable_expense_reminders",
]
