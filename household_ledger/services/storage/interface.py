"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the engines decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger flows need. Filtering happens here;
aggregation and balance math never do.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from household_ledger.models.audit import AuditEvent
from household_ledger.models.category import TransactionType
from household_ledger.models.ledger import Member, Settlement, Transaction
from household_ledger.models.recurring import RecurringExpense


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> bool:
        """
        Save a new transaction.

        Returns:
            True if saved successfully

        Raises:
            DuplicateError: If a transaction with the same id exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_transaction_by_id(self, transaction_id: UUID) -> Optional[Transaction]:
        """Retrieve a transaction by its ID, or None."""
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> bool:
        """
        Replace an existing transaction.

        Raises:
            NotFoundError: If the transaction doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        household_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        """
        List a household's transactions with optional filters.

        Args:
            household_id: Household to list
            date_from: Only transactions on or after this date
            date_to: Only transactions on or before this date
            transaction_type: Only this type

        Returns:
            Matching transactions, oldest first
        """
        pass

    async def list_advances(self, household_id: str) -> list[Transaction]:
        """
        Every advance of the household, whatever its date.

        Unlike list_transactions, implementations must not skip advances
        they cannot read.

        Raises:
            CorruptRecordError: If a stored advance cannot be read
        """
        return await self.list_transactions(
            household_id,
            transaction_type=TransactionType.ADVANCE,
        )


class SettlementStorageInterface(ABC):
    """Abstract interface for settlement storage."""

    @abstractmethod
    async def save_settlement(self, settlement: Settlement) -> bool:
        """
        Save a new settlement.

        Raises:
            DuplicateError: If a settlement with the same id exists
        """
        pass

    @abstractmethod
    async def get_settlement_by_id(self, settlement_id: UUID) -> Optional[Settlement]:
        pass

    @abstractmethod
    async def delete_settlement(self, settlement_id: UUID) -> bool:
        """Delete (undo) a settlement. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def list_settlements(self, household_id: str) -> list[Settlement]:
        """
        All settlements of the household, oldest first.

        Raises:
            CorruptRecordError: If a stored settlement cannot be read
        """
        pass


class MembershipDirectoryInterface(ABC):
    """Who belongs to which household."""

    @abstractmethod
    async def list_members(self, household_id: str) -> list[Member]:
        """
        Current members of the household.

        Returns:
            Members sorted by user_id
        """
        pass

    async def member_ids(self, household_id: str) -> set[str]:
        members = await self.list_members(household_id)
        return {member.user_id for member in members}


class RecurringExpenseStorageInterface(ABC):
    """Abstract interface for recurring expense templates."""

    @abstractmethod
    async def save_recurring_expense(self, template: RecurringExpense) -> bool:
        pass

    @abstractmethod
    async def list_recurring_expenses(self, household_id: str) -> list[RecurringExpense]:
        """All templates of the household, active or not."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one write and its recompute).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'transaction', 'settlement')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class CorruptRecordError(StorageError):
    """A stored record that balances depend on no longer parses."""
    pass
