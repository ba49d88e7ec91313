"""
Data Models Package

This package contains all Pydantic models used in the household ledger.
All data flowing through the engines must conform to these schemas.
"""

from household_ledger.models.category import (
    OTHER_CATEGORY,
    TRANSACTION_CATEGORIES,
    Category,
    CategoryKey,
    ExpenseCategory,
    IncomeCategory,
    TransactionType,
    categories_for_type,
    is_category_allowed,
    parse_category_key,
    resolve_category,
)
from household_ledger.models.ledger import (
    HouseholdParty,
    Member,
    MemberParty,
    Party,
    Settlement,
    SettlementDirection,
    SettlementInput,
    Transaction,
    TransactionInput,
    household_party,
    member_party,
    party_from_user_id,
)
from household_ledger.models.recurring import (
    RecurringExpense,
    RecurringExpenseType,
    VariableExpenseReminder,
)
from household_ledger.models.results import (
    CategoryBreakdown,
    CategoryBreakdownItem,
    HouseholdBalance,
    MonthlyDashboard,
    MonthlyDifference,
    MonthlySummary,
    SettlementSuggestion,
    YearlyDashboard,
)
from household_ledger.models.validation import ValidationIssue, ValidationResult
from household_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Category model
    "OTHER_CATEGORY",
    "TRANSACTION_CATEGORIES",
    "Category",
    "CategoryKey",
    "ExpenseCategory",
    "IncomeCategory",
    "TransactionType",
    "categories_for_type",
    "is_category_allowed",
    "parse_category_key",
    "resolve_category",
    # Ledger models
    "HouseholdParty",
    "Member",
    "MemberParty",
    "Party",
    "Settlement",
    "SettlementDirection",
    "SettlementInput",
    "Transaction",
    "TransactionInput",
    "household_party",
    "member_party",
    "party_from_user_id",
    # Recurring expenses
    "RecurringExpense",
    "RecurringExpenseType",
    "VariableExpenseReminder",
    # Derived results
    "CategoryBreakdown",
    "CategoryBreakdownItem",
    "HouseholdBalance",
    "MonthlyDashboard",
    "MonthlyDifference",
    "MonthlySummary",
    "SettlementSuggestion",
    "YearlyDashboard",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
