"""
Audit Logger

DESIGN DECISION: Every ledger mutation, rejection and balance refresh is
logged. This gives the household a history of who recorded or undid what,
and makes a surprising balance traceable back to the events behind it.

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (a failed audit write never undoes a
  ledger write)
- Supports correlation IDs to trace related events
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from household_ledger.config import get_settings
from household_ledger.models.audit import AuditEvent, AuditEventBuilder
from household_ledger.models.ledger import Settlement, Transaction
from household_ledger.models.results import HouseholdBalance
from household_ledger.models.validation import ValidationIssue
from household_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: Optional[str] = None) -> None:
    """Set the stdlib level that filter_by_level checks for ledger loggers."""
    level = level or get_settings().app.log_level
    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger("household_ledger").setLevel(level)


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit storage backend (for persistence and household visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_created(
            transaction=transaction,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        transaction: Transaction,
        actor_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction=transaction,
            actor_user_id=actor_user_id,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction: Transaction,
        actor_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction=transaction,
            actor_user_id=actor_user_id,
            correlation_id=correlation_id,
        ))

    async def log_settlement_recorded(
        self,
        settlement: Settlement,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_recorded(
            settlement=settlement,
            correlation_id=correlation_id,
        ))

    async def log_settlement_deleted(
        self,
        settlement: Settlement,
        actor_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_deleted(
            settlement=settlement,
            actor_user_id=actor_user_id,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        subject: str,
        household_id: str,
        issues: list[ValidationIssue],
        actor_user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rejected transaction or settlement."""
        await self.log(AuditEventBuilder.validation_failed(
            subject=subject,
            household_id=household_id,
            issues=issues,
            actor_user_id=actor_user_id,
            correlation_id=correlation_id,
        ))

    async def log_permission_denied(
        self,
        entity_type: str,
        entity_id: Optional[UUID],
        household_id: str,
        actor_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.permission_denied(
            entity_type=entity_type,
            entity_id=entity_id,
            household_id=household_id,
            actor_user_id=actor_user_id,
            correlation_id=correlation_id,
        ))

    async def log_balances_recomputed(
        self,
        household_id: str,
        balances: list[HouseholdBalance],
        advance_count: int,
        settlement_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a balance refresh."""
        await self.log(AuditEventBuilder.balances_recomputed(
            household_id=household_id,
            balances=balances,
            advance_count=advance_count,
            settlement_count=settlement_count,
            correlation_id=correlation_id,
        ))

    async def log_balance_computation_failed(
        self,
        household_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_computation_failed(
            household_id=household_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_recurring_generated(
        self,
        household_id: str,
        target_date: date,
        transactions: list[Transaction],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.recurring_transactions_generated(
            household_id=household_id,
            target_date=target_date,
            transactions=transactions,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        household_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed storage operation."""
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            household_id=household_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., recording a
    settlement). Pass it through all subsequent operations.
    """
    return uuid4()
