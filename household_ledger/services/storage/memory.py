"""
In-Memory Storage Implementation

Dict-backed implementations of every storage interface. Used for tests
and as the fallback when Google Sheets is not configured.

Stored models are copied on the way in and out, so callers can never
mutate the "database" by holding on to a returned object.
"""

from datetime import date
from typing import Iterable, Optional
from uuid import UUID

from household_ledger.models.audit import AuditEvent
from household_ledger.models.category import TransactionType
from household_ledger.models.ledger import Member, Settlement, Transaction
from household_ledger.models.recurring import RecurringExpense
from household_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    MembershipDirectoryInterface,
    NotFoundError,
    RecurringExpenseStorageInterface,
    SettlementStorageInterface,
    TransactionStorageInterface,
)


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Transactions kept in a dict keyed by id."""

    def __init__(self, transactions: Iterable[Transaction] = ()):
        self._transactions: dict[UUID, Transaction] = {
            transaction.id: transaction.model_copy() for transaction in transactions
        }

    async def save_transaction(self, transaction: Transaction) -> bool:
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._transactions[transaction.id] = transaction.model_copy()
        return True

    async def get_transaction_by_id(self, transaction_id: UUID) -> Optional[Transaction]:
        transaction = self._transactions.get(transaction_id)
        return transaction.model_copy() if transaction else None

    async def update_transaction(self, transaction: Transaction) -> bool:
        if transaction.id not in self._transactions:
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        self._transactions[transaction.id] = transaction.model_copy()
        return True

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    async def list_transactions(
        self,
        household_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        transactions = []
        for transaction in self._transactions.values():
            if transaction.household_id != household_id:
                continue
            if date_from and transaction.occurred_on < date_from:
                continue
            if date_to and transaction.occurred_on > date_to:
                continue
            if transaction_type and transaction.type != transaction_type:
                continue
            transactions.append(transaction.model_copy())

        transactions.sort(key=lambda t: (t.occurred_on, t.created_at))
        return transactions


class InMemorySettlementStorage(SettlementStorageInterface):
    """Settlements kept in a dict keyed by id."""

    def __init__(self, settlements: Iterable[Settlement] = ()):
        self._settlements: dict[UUID, Settlement] = {
            settlement.id: settlement.model_copy() for settlement in settlements
        }

    async def save_settlement(self, settlement: Settlement) -> bool:
        if settlement.id in self._settlements:
            raise DuplicateError(f"Settlement already exists: {settlement.id}")
        self._settlements[settlement.id] = settlement.model_copy()
        return True

    async def get_settlement_by_id(self, settlement_id: UUID) -> Optional[Settlement]:
        settlement = self._settlements.get(settlement_id)
        return settlement.model_copy() if settlement else None

    async def delete_settlement(self, settlement_id: UUID) -> bool:
        return self._settlements.pop(settlement_id, None) is not None

    async def list_settlements(self, household_id: str) -> list[Settlement]:
        settlements = [
            settlement.model_copy()
            for settlement in self._settlements.values()
            if settlement.household_id == household_id
        ]
        settlements.sort(key=lambda s: (s.settled_on, s.created_at))
        return settlements


class InMemoryMembershipDirectory(MembershipDirectoryInterface):
    """Static household -> members mapping."""

    def __init__(self, households: Optional[dict[str, list[Member]]] = None):
        self._households: dict[str, list[Member]] = {
            household_id: list(members)
            for household_id, members in (households or {}).items()
        }

    def add_member(self, household_id: str, member: Member) -> None:
        members = self._households.setdefault(household_id, [])
        if any(existing.user_id == member.user_id for existing in members):
            raise DuplicateError(
                f"{member.user_id} already belongs to household {household_id}"
            )
        members.append(member)

    async def list_members(self, household_id: str) -> list[Member]:
        members = self._households.get(household_id, [])
        return sorted(members, key=lambda m: m.user_id)


class InMemoryRecurringExpenseStorage(RecurringExpenseStorageInterface):

    def __init__(self, templates: Iterable[RecurringExpense] = ()):
        self._templates: dict[UUID, RecurringExpense] = {
            template.id: template.model_copy() for template in templates
        }

    async def save_recurring_expense(self, template: RecurringExpense) -> bool:
        if template.id in self._templates:
            raise DuplicateError(f"Recurring expense already exists: {template.id}")
        self._templates[template.id] = template.model_copy()
        return True

    async def list_recurring_expenses(self, household_id: str) -> list[RecurringExpense]:
        return [
            template.model_copy()
            for template in self._templates.values()
            if template.household_id == household_id
        ]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
