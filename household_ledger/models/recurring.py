"""
Recurring Expense Models

A recurring expense is a monthly template. Fixed templates turn into
expense transactions on their due date; variable templates only produce
a reminder so someone can enter the real amount by hand.

The ledger only consumes what these produce.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from household_ledger.models.category import ExpenseCategory
from household_ledger.models.ledger import utcnow


class RecurringExpenseType(str, Enum):
    """How a template is turned into ledger entries."""
    FIXED = "fixed"        # Materialized automatically
    VARIABLE = "variable"  # Reminder only


class RecurringExpense(BaseModel):
    """Monthly expense template."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    household_id: str = Field(..., min_length=1)
    amount: Annotated[
        Decimal,
        Field(gt=0, le=Decimal("999999999.99"), decimal_places=2)
    ]
    day_of_month: int = Field(
        ...,
        ge=1,
        le=31,
        description="Due day; clamped to the last day in shorter months"
    )
    category: ExpenseCategory
    note: Optional[str] = Field(default=None, max_length=120)
    payer_user_id: str = Field(..., min_length=1)
    is_active: bool = True
    expense_type: RecurringExpenseType = RecurringExpenseType.FIXED

    created_by: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class VariableExpenseReminder(BaseModel):
    """A prompt to enter this month's amount for a variable template."""

    recurring_expense_id: UUID
    amount: Decimal = Field(..., description="Estimated amount from the template")
    day_of_month: int
    due_on: date
    category: ExpenseCategory
    note: Optional[str] = None
    payer_user_id: str
