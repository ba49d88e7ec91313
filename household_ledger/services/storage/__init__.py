"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the persistent backend; the in-memory backend serves tests
and unconfigured installs.
"""

from household_ledger.services.storage.interface import (
    AuditStorageInterface,
    CorruptRecordError,
    DuplicateError,
    MembershipDirectoryInterface,
    NotFoundError,
    RecurringExpenseStorageInterface,
    SettlementStorageInterface,
    StorageConnectionError,
    StorageError,
    TransactionStorageInterface,
)
from household_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryMembershipDirectory,
    InMemoryRecurringExpenseStorage,
    InMemorySettlementStorage,
    InMemoryTransactionStorage,
)
from household_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsMembershipDirectory,
    GoogleSheetsRecurringExpenseStorage,
    GoogleSheetsSettlementStorage,
    GoogleSheetsTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "MembershipDirectoryInterface",
    "RecurringExpenseStorageInterface",
    "SettlementStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "CorruptRecordError",
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryMembershipDirectory",
    "InMemoryRecurringExpenseStorage",
    "InMemorySettlementStorage",
    "InMemoryTransactionStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsMembershipDirectory",
    "GoogleSheetsRecurringExpenseStorage",
    "GoogleSheetsSettlementStorage",
    "GoogleSheetsTransactionStorage",
]
