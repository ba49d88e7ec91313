"""Services package."""

from household_ledger.services.storage import (
    AuditStorageInterface,
    CorruptRecordError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsMembershipDirectory,
    GoogleSheetsRecurringExpenseStorage,
    GoogleSheetsSettlementStorage,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryMembershipDirectory,
    InMemoryRecurringExpenseStorage,
    InMemorySettlementStorage,
    InMemoryTransactionStorage,
    MembershipDirectoryInterface,
    NotFoundError,
    RecurringExpenseStorageInterface,
    SettlementStorageInterface,
    StorageConnectionError,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "CorruptRecordError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsMembershipDirectory",
    "GoogleSheetsRecurringExpenseStorage",
    "GoogleSheetsSettlementStorage",
    "GoogleSheetsTransactionStorage",
    "InMemoryAuditStorage",
    "InMemoryMembershipDirectory",
    "InMemoryRecurringExpenseStorage",
    "InMemorySettlementStorage",
    "InMemoryTransactionStorage",
    "MembershipDirectoryInterface",
    "NotFoundError",
    "RecurringExpenseStorageInterface",
    "SettlementStorageInterface",
    "StorageConnectionError",
    "StorageError",
    "TransactionStorageInterface",
]
