"""Input validation package."""

from household_ledger.validation.validator import (
    LedgerValidationError,
    SettlementValidator,
    TransactionValidator,
    get_user_friendly_summary,
    is_valid_civil_date,
    parse_amount,
    parse_civil_date,
    validate_settlement,
    validate_transaction,
)

__all__ = [
    "LedgerValidationError",
    "SettlementValidator",
    "TransactionValidator",
    "get_user_friendly_summary",
    "is_valid_civil_date",
    "parse_amount",
    "parse_civil_date",
    "validate_settlement",
    "validate_transaction",
]
