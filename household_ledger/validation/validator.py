"""
Ledger Input Validation

DESIGN DECISION: Validation is fail-fast and happens before any write.
Raw form values (TransactionInput, SettlementInput) are checked field by
field, and every problem is reported as a field-attributed ValidationIssue
so the caller can re-prompt the user. Nothing is partially written.

Only when a request has no error-level issues is it turned into a strict
Transaction or Settlement model.

IMPORTANT: Validation NEVER silently fixes issues. The only normalization
is the one the forms have always done: trimming whitespace, dropping
thousands separators from amounts, and blank notes becoming None.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Union

from pydantic import ValidationError

from household_ledger.config import LedgerSettings, get_settings
from household_ledger.models.category import (
    TransactionType,
    is_category_allowed,
    parse_category_key,
)
from household_ledger.models.ledger import (
    Settlement,
    SettlementInput,
    Transaction,
    TransactionInput,
    party_from_user_id,
    utcnow,
)
from household_ledger.models.validation import ValidationIssue, ValidationResult


_CIVIL_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


class LedgerValidationError(ValueError):
    """A transaction or settlement request was rejected before any write."""

    def __init__(self, result: ValidationResult):
        self.result = result
        self.issues = result.issues
        message = "; ".join(
            f"{issue.field}: {issue.message}"
            for issue in result.issues
            if issue.severity == "error"
        )
        super().__init__(message or f"Invalid {result.subject}")


def parse_civil_date(value: Union[date, str, None]) -> Optional[date]:
    """
    Parse a YYYY-MM-DD civil date.

    Returns None for anything that is not both syntactically and
    calendrically valid (e.g. "2024-02-30").
    """
    if isinstance(value, datetime):
        return None
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    match = _CIVIL_DATE.match(value.strip())
    if not match:
        return None

    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def is_valid_civil_date(value: Union[date, str, None]) -> bool:
    return parse_civil_date(value) is not None


def parse_amount(value: Union[Decimal, int, float, str, None]) -> Optional[Decimal]:
    """Parse a raw amount; returns None if it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            return None
    elif isinstance(value, str):
        normalized = value.strip().replace(",", "")
        if not normalized:
            return None
        try:
            amount = Decimal(normalized)
        except InvalidOperation:
            return None
    else:
        return None

    if not amount.is_finite():
        return None
    return amount


def _clean_note(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    note = note.strip()
    return note or None


def _clean_id(user_id: Optional[str]) -> Optional[str]:
    if user_id is None:
        return None
    user_id = user_id.strip()
    return user_id or None


class _BaseValidator:
    """Checks shared by transactions and settlements."""

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    def _check_amount(
        self,
        raw: Union[Decimal, int, float, str, None],
        issues: list[ValidationIssue],
    ) -> Optional[Decimal]:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Please enter an amount",
            ))
            return None

        amount = parse_amount(raw)
        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_format",
                message="Amount must be a number",
            ))
            return None

        if amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
            ))
            return None

        if amount > self._settings.max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message=f"Amount cannot exceed {self._settings.max_amount:,}",
            ))
            return None

        if amount.as_tuple().exponent < -2:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount can have at most two decimal places",
            ))
            return None

        return amount

    def _check_date(
        self,
        field: str,
        raw: Union[date, str, None],
        issues: list[ValidationIssue],
    ) -> Optional[date]:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            issues.append(ValidationIssue(
                field=field,
                issue_type="missing",
                message="Please enter a date",
            ))
            return None

        parsed = parse_civil_date(raw)
        if parsed is None:
            issues.append(ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message="Enter a valid date in YYYY-MM-DD format",
            ))
        return parsed

    def _check_note(
        self,
        note: Optional[str],
        max_length: int,
        issues: list[ValidationIssue],
    ) -> Optional[str]:
        note = _clean_note(note)
        if note is not None and len(note) > max_length:
            issues.append(ValidationIssue(
                field="note",
                issue_type="too_long",
                message=f"Note must be {max_length} characters or fewer",
            ))
        return note

    @staticmethod
    def _check_membership(
        field: str,
        user_id: Optional[str],
        member_ids: Optional[set[str]],
        issues: list[ValidationIssue],
    ) -> None:
        if member_ids is None or user_id is None:
            return
        if user_id not in member_ids:
            issues.append(ValidationIssue(
                field=field,
                issue_type="not_member",
                message="Selected member does not belong to this household",
            ))


class TransactionValidator(_BaseValidator):
    """
    Validates transaction form input.

    Rules:
    - type, amount, date and category are required
    - expenses and advances use expense categories; income uses income categories
    - expenses and advances need a payer
    - only advances may name a member who owes the payer, and it cannot be the payer
    - an expense flagged as a household advance becomes a household-wide advance
    """

    def _resolve_type(
        self,
        data: TransactionInput,
        issues: list[ValidationIssue],
    ) -> Optional[TransactionType]:
        if not data.type:
            issues.append(ValidationIssue(
                field="type",
                issue_type="missing",
                message="Please choose expense, income or advance",
            ))
            return None
        try:
            return TransactionType(data.type.strip().lower())
        except ValueError:
            issues.append(ValidationIssue(
                field="type",
                issue_type="invalid_value",
                message=f"Unknown transaction type: {data.type}",
            ))
            return None

    def validate(
        self,
        data: TransactionInput,
        member_ids: Optional[Iterable[str]] = None,
    ) -> ValidationResult:
        """Check a transaction request; never raises for bad input."""
        issues, _ = self._run(data, member_ids)
        return ValidationResult(subject="transaction", issues=issues)

    def _run(
        self,
        data: TransactionInput,
        member_ids: Optional[Iterable[str]],
    ) -> tuple[list[ValidationIssue], dict]:
        issues: list[ValidationIssue] = []
        members = set(member_ids) if member_ids is not None else None

        submitted_type = self._resolve_type(data, issues)
        amount = self._check_amount(data.amount, issues)
        occurred_on = self._check_date("occurred_on", data.occurred_on, issues)
        note = self._check_note(
            data.note, self._settings.transaction_note_max_length, issues
        )
        payer = _clean_id(data.payer_user_id)
        advance_to = _clean_id(data.advance_to_user_id)

        category = parse_category_key(data.category)
        if not data.category:
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Please choose a category",
            ))
        elif category is None:
            issues.append(ValidationIssue(
                field="category",
                issue_type="invalid_value",
                message=f"Unknown category: {data.category}",
            ))
        elif submitted_type is not None and not is_category_allowed(category, submitted_type):
            if submitted_type == TransactionType.INCOME:
                message = "Income needs an income category"
            else:
                message = "Expenses and advances need an expense category"
            issues.append(ValidationIssue(
                field="category",
                issue_type="not_allowed",
                message=message,
            ))

        needs_payer = submitted_type in (TransactionType.EXPENSE, TransactionType.ADVANCE)
        if needs_payer and not payer:
            issues.append(ValidationIssue(
                field="payer_user_id",
                issue_type="missing",
                message="Please choose who paid",
            ))

        if submitted_type is not None and submitted_type != TransactionType.ADVANCE and advance_to:
            issues.append(ValidationIssue(
                field="advance_to_user_id",
                issue_type="not_allowed",
                message="Only advances can name a member who owes the payer",
            ))

        if (
            submitted_type == TransactionType.ADVANCE
            and payer
            and advance_to
            and payer == advance_to
        ):
            issues.append(ValidationIssue(
                field="advance_to_user_id",
                issue_type="invalid_value",
                message="The payer and the member who owes must be different",
            ))

        resolved_type = submitted_type
        if submitted_type == TransactionType.EXPENSE and data.is_household_advance:
            resolved_type = TransactionType.ADVANCE
            advance_to = None

        if resolved_type == TransactionType.INCOME:
            payer = None
        else:
            self._check_membership("payer_user_id", payer, members, issues)
        if resolved_type == TransactionType.ADVANCE:
            self._check_membership("advance_to_user_id", advance_to, members, issues)

        resolved = {
            "type": resolved_type,
            "amount": amount,
            "occurred_on": occurred_on,
            "category": category,
            "note": note,
            "payer_user_id": payer,
            "advance_to_user_id": advance_to if resolved_type == TransactionType.ADVANCE else None,
        }
        return issues, resolved

    def to_transaction(
        self,
        data: TransactionInput,
        created_by: str,
        member_ids: Optional[Iterable[str]] = None,
        existing: Optional[Transaction] = None,
    ) -> Transaction:
        """
        Validate and build a Transaction.

        When `existing` is given the result keeps its identity and
        provenance and only the editable fields change.

        Raises:
            LedgerValidationError: If any error-level issue was found
        """
        issues, resolved = self._run(data, member_ids)
        result = ValidationResult(subject="transaction", issues=issues)
        if result.has_errors:
            raise LedgerValidationError(result)

        identity: dict
        if existing is not None:
            identity = {
                "id": existing.id,
                "created_by": existing.created_by,
                "created_at": existing.created_at,
                "updated_at": utcnow(),
                "recurring_expense_id": existing.recurring_expense_id,
            }
        else:
            identity = {
                "created_by": created_by,
                "recurring_expense_id": data.recurring_expense_id,
            }

        try:
            return Transaction(
                household_id=data.household_id,
                **resolved,
                **identity,
            )
        except ValidationError as e:
            raise LedgerValidationError(ValidationResult(
                subject="transaction",
                issues=[
                    ValidationIssue(
                        field=".".join(str(part) for part in err["loc"]) or "transaction",
                        issue_type="invalid_value",
                        message=err["msg"],
                    )
                    for err in e.errors()
                ],
            )) from e


class SettlementValidator(_BaseValidator):
    """
    Validates settlement requests (the Settlement Recorder's gate).

    Rules:
    - amount is a positive number
    - settled_on is a real YYYY-MM-DD date
    - at least one side is a concrete member
    - the two sides differ
    - the acting member, when known, is one of the sides
    """

    def validate(
        self,
        data: SettlementInput,
        acting_user_id: Optional[str] = None,
        member_ids: Optional[Iterable[str]] = None,
    ) -> ValidationResult:
        """Check a settlement request; never raises for bad input."""
        issues, _ = self._run(data, acting_user_id, member_ids)
        return ValidationResult(subject="settlement", issues=issues)

    def _run(
        self,
        data: SettlementInput,
        acting_user_id: Optional[str],
        member_ids: Optional[Iterable[str]],
    ) -> tuple[list[ValidationIssue], dict]:
        issues: list[ValidationIssue] = []
        members = set(member_ids) if member_ids is not None else None

        amount = self._check_amount(data.amount, issues)
        settled_on = self._check_date("settled_on", data.settled_on, issues)
        note = self._check_note(
            data.note, self._settings.settlement_note_max_length, issues
        )

        from_user_id = _clean_id(data.from_user_id)
        to_user_id = _clean_id(data.to_user_id)

        if from_user_id is None and to_user_id is None:
            issues.append(ValidationIssue(
                field="parties",
                issue_type="missing",
                message="A settlement needs at least one member side",
            ))
        elif from_user_id is not None and from_user_id == to_user_id:
            issues.append(ValidationIssue(
                field="to_user_id",
                issue_type="invalid_value",
                message="Payer and receiver must be different",
            ))
        elif acting_user_id is not None and acting_user_id not in (from_user_id, to_user_id):
            issues.append(ValidationIssue(
                field="parties",
                issue_type="not_allowed",
                message="You can only record settlements you paid or received",
            ))

        self._check_membership("from_user_id", from_user_id, members, issues)
        self._check_membership("to_user_id", to_user_id, members, issues)

        resolved = {
            "amount": amount,
            "settled_on": settled_on,
            "note": note,
            "from_user_id": from_user_id,
            "to_user_id": to_user_id,
        }
        return issues, resolved

    def to_settlement(
        self,
        data: SettlementInput,
        acting_user_id: Optional[str] = None,
        member_ids: Optional[Iterable[str]] = None,
        created_by: Optional[str] = None,
    ) -> Settlement:
        """
        Validate and build a Settlement.

        Raises:
            LedgerValidationError: If any error-level issue was found
        """
        issues, resolved = self._run(data, acting_user_id, member_ids)
        result = ValidationResult(subject="settlement", issues=issues)
        if result.has_errors:
            raise LedgerValidationError(result)

        creator = (
            created_by
            or acting_user_id
            or resolved["from_user_id"]
            or resolved["to_user_id"]
        )
        return Settlement(
            household_id=data.household_id,
            from_party=party_from_user_id(resolved["from_user_id"]),
            to_party=party_from_user_id(resolved["to_user_id"]),
            amount=resolved["amount"],
            settled_on=resolved["settled_on"],
            note=resolved["note"],
            created_by=creator,
        )


def validate_transaction(
    data: TransactionInput,
    created_by: str,
    member_ids: Optional[Iterable[str]] = None,
) -> Transaction:
    """Validate a transaction request and build the Transaction, or raise."""
    return TransactionValidator().to_transaction(data, created_by, member_ids)


def validate_settlement(
    data: SettlementInput,
    acting_user_id: Optional[str] = None,
    member_ids: Optional[Iterable[str]] = None,
) -> Settlement:
    """Validate a settlement request and build the Settlement, or raise."""
    return SettlementValidator().to_settlement(data, acting_user_id, member_ids)


def get_user_friendly_summary(result: ValidationResult) -> str:
    """
    Generate a user-friendly summary of validation results.

    This is what a form shows above the fields.
    """
    if result.is_valid and not result.issues:
        return "All checks passed."

    lines = []
    errors = [issue for issue in result.issues if issue.severity == "error"]
    warnings = [issue for issue in result.issues if issue.severity == "warning"]

    if errors:
        lines.append(f"Please fix the following before saving this {result.subject}:")
        for issue in errors:
            lines.append(f"   • {issue.message}")

    if warnings:
        if lines:
            lines.append("")
        lines.append("Please double-check:")
        for issue in warnings:
            lines.append(f"   • {issue.message}")

    return "\n".join(lines)
