"""
Category Model

Static taxonomy of transaction categories.

DESIGN DECISION: Categories are closed enums, one per transaction-type family.
Expenses and advances share ExpenseCategory; income uses IncomeCategory.
The two key sets are disjoint, so a bare key always identifies its family.

Lookups by key never fail: unknown keys degrade to the "other" category
so a single bad record cannot break a dashboard.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


class TransactionType(str, Enum):
    """Kinds of money movement recorded in the ledger."""
    EXPENSE = "expense"
    INCOME = "income"
    ADVANCE = "advance"


class ExpenseCategory(str, Enum):
    """Categories usable by expenses and advances."""
    GROCERIES = "groceries"
    DINING = "dining"
    DAILY = "daily"
    MEDICAL = "medical"
    HOME = "home"
    KIDS = "kids"
    TRANSPORTATION = "transportation"
    OTHER = "other"


class IncomeCategory(str, Enum):
    """Categories usable by income."""
    SALARY = "salary"
    SIDELINE = "sideline"
    WINDFALL = "windfall"
    SUBSIDY = "subsidy"


CategoryKey = Union[ExpenseCategory, IncomeCategory]

EXPENSE_TYPES = frozenset({TransactionType.EXPENSE, TransactionType.ADVANCE})
INCOME_TYPES = frozenset({TransactionType.INCOME})


class Category(BaseModel):
    """Display information for one category key."""

    model_config = ConfigDict(frozen=True)

    key: CategoryKey
    label: str
    types: frozenset[TransactionType]

    @property
    def is_expense(self) -> bool:
        return isinstance(self.key, ExpenseCategory)


_EXPENSE_LABELS: dict[ExpenseCategory, str] = {
    ExpenseCategory.GROCERIES: "Groceries",
    ExpenseCategory.DINING: "Dining out",
    ExpenseCategory.DAILY: "Daily necessities",
    ExpenseCategory.MEDICAL: "Medical",
    ExpenseCategory.HOME: "Furniture & appliances",
    ExpenseCategory.KIDS: "Kids",
    ExpenseCategory.TRANSPORTATION: "Transportation",
    ExpenseCategory.OTHER: "Other",
}

_INCOME_LABELS: dict[IncomeCategory, str] = {
    IncomeCategory.SALARY: "Salary",
    IncomeCategory.SIDELINE: "Side job",
    IncomeCategory.WINDFALL: "Windfall",
    IncomeCategory.SUBSIDY: "Subsidy",
}

TRANSACTION_CATEGORIES: tuple[Category, ...] = tuple(
    [
        Category(key=key, label=_EXPENSE_LABELS[key], types=EXPENSE_TYPES)
        for key in ExpenseCategory
    ]
    + [
        Category(key=key, label=_INCOME_LABELS[key], types=INCOME_TYPES)
        for key in IncomeCategory
    ]
)

_CATEGORY_MAP: dict[str, Category] = {
    category.key.value: category for category in TRANSACTION_CATEGORIES
}

OTHER_CATEGORY = _CATEGORY_MAP[ExpenseCategory.OTHER.value]


def categories_for_type(transaction_type: TransactionType) -> list[Category]:
    """Return the categories a transaction type may use, in display order."""
    transaction_type = TransactionType(transaction_type)
    return [
        category
        for category in TRANSACTION_CATEGORIES
        if transaction_type in category.types
    ]


def resolve_category(key: Optional[Union[CategoryKey, str]]) -> Category:
    """
    Look up a category by key.

    Missing or unrecognized keys fall back to the "other" category.
    """
    if key is None:
        return OTHER_CATEGORY
    raw = key.value if isinstance(key, Enum) else str(key)
    return _CATEGORY_MAP.get(raw, OTHER_CATEGORY)


def parse_category_key(key: Union[CategoryKey, str, None]) -> Optional[CategoryKey]:
    """Return the enum member for a key, or None if it is not a known key."""
    if key is None:
        return None
    raw = key.value if isinstance(key, Enum) else str(key)
    category = _CATEGORY_MAP.get(raw)
    return category.key if category else None


def is_category_allowed(
    key: Union[CategoryKey, str, None],
    transaction_type: TransactionType,
) -> bool:
    """Check that a category key exists and belongs to the type's family."""
    parsed = parse_category_key(key)
    if parsed is None:
        return False
    return TransactionType(transaction_type) in _CATEGORY_MAP[parsed.value].types
