"""
Audit Models for Household Ledger

Every ledger mutation and every balance recomputation is logged for audit
purposes. Balances are never stored, so the audit trail is the only
record of what a member saw at a given moment.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from household_ledger.models.ledger import Settlement, Transaction, utcnow
from household_ledger.models.results import HouseholdBalance
from household_ledger.models.validation import ValidationIssue


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Settlements
    SETTLEMENT_RECORDED = "settlement_recorded"
    SETTLEMENT_DELETED = "settlement_deleted"

    # Validation
    VALIDATION_FAILED = "validation_failed"
    PERMISSION_DENIED = "permission_denied"

    # Balances
    BALANCES_RECOMPUTED = "balances_recomputed"
    BALANCE_COMPUTATION_FAILED = "balance_computation_failed"

    # Recurring expenses
    RECURRING_TRANSACTIONS_GENERATED = "recurring_transactions_generated"

    # Storage
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every ledger write and every recomputation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which household and entity is this about?
    household_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'settlement', 'balance')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    actor_user_id: Optional[str] = Field(
        default=None,
        description="Member who triggered the event, if any"
    )

    # Correlation - for tracking the write and the recompute it triggers
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a write and its recompute)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "household_id": self.household_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "actor_user_id": self.actor_user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, household_id, entity_type,
         entity_id, actor_user_id, correlation_id, description, details_json,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.household_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            self.actor_user_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
        ]


def _party_label(user_id: Optional[str]) -> str:
    return user_id if user_id is not None else "household"


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(transaction, correlation_id)
        event = AuditEventBuilder.balances_recomputed(household_id, balances, ...)
    """

    @staticmethod
    def transaction_created(
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            household_id=transaction.household_id,
            entity_type="transaction",
            entity_id=transaction.id,
            actor_user_id=transaction.created_by,
            correlation_id=correlation_id,
            description=(
                f"{transaction.type.value.capitalize()} recorded: "
                f"{transaction.amount} ({transaction.category.value})"
            ),
            details={
                "type": transaction.type.value,
                "amount": str(transaction.amount),
                "occurred_on": transaction.occurred_on.isoformat(),
                "payer_user_id": transaction.payer_user_id,
                "advance_to": (
                    _party_label(transaction.advance_to_user_id)
                    if transaction.is_advance else None
                ),
            },
        )

    @staticmethod
    def transaction_updated(
        transaction: Transaction,
        actor_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            household_id=transaction.household_id,
            entity_type="transaction",
            entity_id=transaction.id,
            actor_user_id=actor_user_id,
            correlation_id=correlation_id,
            description=f"Transaction updated: {transaction.amount}",
            details={
                "type": transaction.type.value,
                "amount": str(transaction.amount),
            },
        )

    @staticmethod
    def transaction_deleted(
        transaction: Transaction,
        actor_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            household_id=transaction.household_id,
            entity_type="transaction",
            entity_id=transaction.id,
            actor_user_id=actor_user_id,
            correlation_id=correlation_id,
            description=f"Transaction deleted: {transaction.amount}",
            details={
                "type": transaction.type.value,
                "amount": str(transaction.amount),
            },
        )

    @staticmethod
    def settlement_recorded(
        settlement: Settlement,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_RECORDED,
            household_id=settlement.household_id,
            entity_type="settlement",
            entity_id=settlement.id,
            actor_user_id=settlement.created_by,
            correlation_id=correlation_id,
            description=(
                f"Settlement recorded: {_party_label(settlement.from_user_id)} "
                f"paid {_party_label(settlement.to_user_id)} {settlement.amount}"
            ),
            details={
                "from": _party_label(settlement.from_user_id),
                "to": _party_label(settlement.to_user_id),
                "amount": str(settlement.amount),
                "settled_on": settlement.settled_on.isoformat(),
            },
        )

    @staticmethod
    def settlement_deleted(
        settlement: Settlement,
        actor_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_DELETED,
            household_id=settlement.household_id,
            entity_type="settlement",
            entity_id=settlement.id,
            actor_user_id=actor_user_id,
            correlation_id=correlation_id,
            description=f"Settlement undone: {settlement.amount}",
            details={
                "from": _party_label(settlement.from_user_id),
                "to": _party_label(settlement.to_user_id),
                "amount": str(settlement.amount),
            },
        )

    @staticmethod
    def validation_failed(
        subject: str,
        household_id: str,
        issues: list[ValidationIssue],
        actor_user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            household_id=household_id,
            entity_type=subject,
            actor_user_id=actor_user_id,
            correlation_id=correlation_id,
            description=f"{subject.capitalize()} rejected with {len(issues)} issues",
            details={
                "issues": [
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in issues
                ],
            },
        )

    @staticmethod
    def permission_denied(
        entity_type: str,
        entity_id: Optional[UUID],
        household_id: str,
        actor_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERMISSION_DENIED,
            severity=AuditSeverity.WARNING,
            household_id=household_id,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_user_id=actor_user_id,
            correlation_id=correlation_id,
            description=(
                f"Only the creator can change this {entity_type}"
                if entity_id else f"Not a member of this household ({entity_type})"
            ),
        )

    @staticmethod
    def balances_recomputed(
        household_id: str,
        balances: list[HouseholdBalance],
        advance_count: int,
        settlement_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_RECOMPUTED,
            household_id=household_id,
            entity_type="balance",
            correlation_id=correlation_id,
            description=(
                f"Balances recomputed from {advance_count} advances "
                f"and {settlement_count} settlements"
            ),
            details={
                "balances": {
                    balance.user_id: str(balance.balance_amount)
                    for balance in balances
                },
            },
        )

    @staticmethod
    def balance_computation_failed(
        household_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_COMPUTATION_FAILED,
            severity=AuditSeverity.ERROR,
            household_id=household_id,
            entity_type="balance",
            correlation_id=correlation_id,
            description="Balance computation rejected inconsistent history",
            error_message=error_message,
        )

    @staticmethod
    def recurring_transactions_generated(
        household_id: str,
        target_date: date,
        transactions: list[Transaction],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_TRANSACTIONS_GENERATED,
            household_id=household_id,
            entity_type="recurring_expense",
            correlation_id=correlation_id,
            description=(
                f"{len(transactions)} fixed expenses generated for "
                f"{target_date.isoformat()}"
            ),
            details={
                "transaction_ids": [str(t.id) for t in transactions],
            },
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        household_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            household_id=household_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
            correlation_id=correlation_id,
        )
