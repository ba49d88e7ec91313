"""
Derived Result Models

Everything here is computed on demand from Transactions and Settlements
and is never persisted. Recompute after every mutating event.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from household_ledger.models.category import Category, ExpenseCategory


ZERO = Decimal("0")


class HouseholdBalance(BaseModel):
    """
    One member's net position.

    Positive: the member is owed money. Negative: the member owes money.
    """

    user_id: str
    user_name: Optional[str] = None
    balance_amount: Decimal = ZERO


class MonthlySummary(BaseModel):
    """Income vs outflow over a period (a month or a whole year)."""

    income_total: Decimal = ZERO
    expense_total: Decimal = ZERO
    balance: Decimal = ZERO


class CategoryBreakdownItem(BaseModel):
    """Total spent in one expense category."""

    key: ExpenseCategory
    category: Category
    amount: Decimal
    ratio: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Share of the breakdown total (0-1)"
    )


class CategoryBreakdown(BaseModel):
    """Expense totals per category, largest first."""

    total: Decimal = ZERO
    items: list[CategoryBreakdownItem] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.items


class MonthlyDifference(BaseModel):
    """One calendar month in a yearly series."""

    month: int = Field(..., ge=1, le=12)
    income_total: Decimal = ZERO
    expense_total: Decimal = ZERO
    balance: Decimal = ZERO
    cumulative_balance: Decimal = Field(
        default=ZERO,
        description="Running balance from January through this month"
    )


class SettlementSuggestion(BaseModel):
    """A payment that would move balances toward zero."""

    from_user_id: str
    to_user_id: str
    amount: Decimal = Field(..., gt=0)


class MonthlyDashboard(BaseModel):
    """Everything the monthly dashboard shows."""

    year: int
    month: int = Field(..., ge=1, le=12)
    summary: MonthlySummary
    breakdown: CategoryBreakdown


class YearlyDashboard(BaseModel):
    """Year totals plus the month-by-month chart data."""

    year: int
    summary: MonthlySummary
    breakdown: CategoryBreakdown
    series: list[MonthlyDifference]
