"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the initial storage backend because:
1. Household members can view the ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for one household)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

Rows are plain strings written with value_input_option="RAW" so amounts
and dates round-trip exactly. A row that no longer parses (hand edits in
the sheet) is skipped with a warning on dashboard reads. Advances and
settlements feed the balances, so there an unreadable row raises
CorruptRecordError instead.
"""

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from household_ledger.config import get_settings
from household_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from household_ledger.models.category import TransactionType, parse_category_key
from household_ledger.models.ledger import (
    Member,
    Settlement,
    Transaction,
    party_from_user_id,
)
from household_ledger.models.recurring import RecurringExpense, RecurringExpenseType
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


logger = structlog.get_logger(__name__)


# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "household_id",
    "type",
    "amount",
    "occurred_on",
    "category",
    "note",
    "payer_user_id",
    "advance_to_user_id",
    "recurring_expense_id",
    "created_by",
    "created_at",
    "updated_at",
]

# Empty from/to cells mean the household
SETTLEMENT_COLUMNS = [
    "id",
    "household_id",
    "from_user_id",
    "to_user_id",
    "amount",
    "settled_on",
    "note",
    "created_by",
    "created_at",
]

MEMBER_COLUMNS = [
    "household_id",
    "user_id",
    "display_name",
]

RECURRING_COLUMNS = [
    "id",
    "household_id",
    "amount",
    "day_of_month",
    "category",
    "note",
    "payer_user_id",
    "is_active",
    "expense_type",
    "created_by",
    "created_at",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "household_id",
    "entity_type",
    "entity_id",
    "actor_user_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]


# Rows of these types never touch balances
_NON_ADVANCE_TYPES = {TransactionType.EXPENSE.value, TransactionType.INCOME.value}


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS
        )

    def get_settlements_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.settlements_sheet_name, SETTLEMENT_COLUMNS
        )

    def get_members_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.members_sheet_name, MEMBER_COLUMNS)

    def get_recurring_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.recurring_sheet_name, RECURRING_COLUMNS
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One transaction per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, transaction: Transaction) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            str(transaction.id),
            transaction.household_id,
            transaction.type.value,
            str(transaction.amount),
            transaction.occurred_on.isoformat(),
            transaction.category.value,
            transaction.note or "",
            transaction.payer_user_id or "",
            transaction.advance_to_user_id or "",
            str(transaction.recurring_expense_id) if transaction.recurring_expense_id else "",
            transaction.created_by,
            transaction.created_at.isoformat(),
            transaction.updated_at.isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        """Convert a spreadsheet row to a Transaction."""
        category = parse_category_key(_cell(row, 5))
        if category is None:
            raise ValueError(f"Unknown category: {_cell(row, 5)!r}")

        return Transaction(
            id=UUID(_cell(row, 0)),
            household_id=_cell(row, 1),
            type=TransactionType(_cell(row, 2)),
            amount=Decimal(_cell(row, 3)),
            occurred_on=date.fromisoformat(_cell(row, 4)),
            category=category,
            note=_cell(row, 6) or None,
            payer_user_id=_cell(row, 7) or None,
            advance_to_user_id=_cell(row, 8) or None,
            recurring_expense_id=UUID(_cell(row, 9)) if _cell(row, 9) else None,
            created_by=_cell(row, 10),
            created_at=datetime.fromisoformat(_cell(row, 11)),
            updated_at=datetime.fromisoformat(_cell(row, 12)),
        )

    def _read_rows(self) -> list[list]:
        sheet = self._client.get_transactions_sheet()
        return sheet.get_all_values()[1:]  # Skip header

    @retry(
        retry=retry_if_not_exception_type(DuplicateError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_transaction(self, transaction: Transaction) -> bool:
        """Append a transaction row."""
        try:
            sheet = self._client.get_transactions_sheet()
            ids = sheet.col_values(1)[1:]
            if str(transaction.id) in ids:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            sheet.append_row(
                self._transaction_to_row(transaction),
                value_input_option="RAW",
            )
            return True
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get_transaction_by_id(self, transaction_id: UUID) -> Optional[Transaction]:
        try:
            for row in self._read_rows():
                if row and row[0] == str(transaction_id):
                    return self._row_to_transaction(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def update_transaction(self, transaction: Transaction) -> bool:
        """Rewrite the row holding this transaction."""
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if row and row[0] == str(transaction.id):
                    sheet.update(
                        range_name=f"A{idx}",
                        values=[self._transaction_to_row(transaction)],
                        value_input_option="RAW",
                    )
                    return True

            raise NotFoundError(f"Transaction not found: {transaction.id}")
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(transaction_id):
                    sheet.delete_rows(idx)
                    return True

            return False
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    async def list_transactions(
        self,
        household_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        transaction_type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        try:
            all_rows = self._read_rows()
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            if _cell(row, 1) != household_id:
                continue

            try:
                transaction = self._row_to_transaction(row)
            except (ValueError, InvalidOperation) as e:
                logger.warning(
                    "malformed_transaction_row_skipped",
                    transaction_id=row[0],
                    error=str(e),
                )
                continue

            if date_from and transaction.occurred_on < date_from:
                continue
            if date_to and transaction.occurred_on > date_to:
                continue
            if transaction_type and transaction.type != transaction_type:
                continue

            transactions.append(transaction)

        transactions.sort(key=lambda t: (t.occurred_on, t.created_at))
        return transactions

    async def list_advances(self, household_id: str) -> list[Transaction]:
        """
        Every advance of the household.

        Unlike list_transactions, an unreadable row that is (or may be) an
        advance is an error: balances computed without it would be wrong.
        """
        try:
            all_rows = self._read_rows()
        except Exception as e:
            raise StorageError(f"Failed to list advances: {e}")

        advances = []
        for row in all_rows:
            if not row or not row[0] or _cell(row, 1) != household_id:
                continue
            if _cell(row, 2) in _NON_ADVANCE_TYPES:
                continue

            try:
                advances.append(self._row_to_transaction(row))
            except (ValueError, InvalidOperation) as e:
                logger.error(
                    "corrupt_advance_row",
                    transaction_id=row[0],
                    error=str(e),
                )
                raise CorruptRecordError(f"Advance {row[0]} cannot be read: {e}")

        advances.sort(key=lambda t: (t.occurred_on, t.created_at))
        return advances


class GoogleSheetsSettlementStorage(SettlementStorageInterface):
    """Google Sheets implementation of settlement storage."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _settlement_to_row(self, settlement: Settlement) -> list:
        return [
            str(settlement.id),
            settlement.household_id,
            settlement.from_user_id or "",
            settlement.to_user_id or "",
            str(settlement.amount),
            settlement.settled_on.isoformat(),
            settlement.note or "",
            settlement.created_by,
            settlement.created_at.isoformat(),
        ]

    def _row_to_settlement(self, row: list) -> Settlement:
        return Settlement(
            id=UUID(_cell(row, 0)),
            household_id=_cell(row, 1),
            from_party=party_from_user_id(_cell(row, 2) or None),
            to_party=party_from_user_id(_cell(row, 3) or None),
            amount=Decimal(_cell(row, 4)),
            settled_on=date.fromisoformat(_cell(row, 5)),
            note=_cell(row, 6) or None,
            created_by=_cell(row, 7),
            created_at=datetime.fromisoformat(_cell(row, 8)),
        )

    @retry(
        retry=retry_if_not_exception_type(DuplicateError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_settlement(self, settlement: Settlement) -> bool:
        try:
            sheet = self._client.get_settlements_sheet()
            if str(settlement.id) in sheet.col_values(1)[1:]:
                raise DuplicateError(f"Settlement already exists: {settlement.id}")
            sheet.append_row(
                self._settlement_to_row(settlement),
                value_input_option="RAW",
            )
            return True
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save settlement: {e}")

    async def get_settlement_by_id(self, settlement_id: UUID) -> Optional[Settlement]:
        try:
            sheet = self._client.get_settlements_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(settlement_id):
                    return self._row_to_settlement(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get settlement: {e}")

    async def delete_settlement(self, settlement_id: UUID) -> bool:
        try:
            sheet = self._client.get_settlements_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(settlement_id):
                    sheet.delete_rows(idx)
                    return True

            return False
        except Exception as e:
            raise StorageError(f"Failed to delete settlement: {e}")

    async def list_settlements(self, household_id: str) -> list[Settlement]:
        try:
            sheet = self._client.get_settlements_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list settlements: {e}")

        settlements = []
        for row in all_rows:
            if not row or not row[0] or _cell(row, 1) != household_id:
                continue
            try:
                settlements.append(self._row_to_settlement(row))
            except (ValueError, InvalidOperation) as e:
                logger.error(
                    "corrupt_settlement_row",
                    settlement_id=row[0],
                    error=str(e),
                )
                raise CorruptRecordError(f"Settlement {row[0]} cannot be read: {e}")

        settlements.sort(key=lambda s: (s.settled_on, s.created_at))
        return settlements


class GoogleSheetsMembershipDirectory(MembershipDirectoryInterface):
    """Members are maintained by hand in the Members sheet."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def list_members(self, household_id: str) -> list[Member]:
        try:
            sheet = self._client.get_members_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list members: {e}")

        members = {}
        for row in all_rows:
            if _cell(row, 0) != household_id or not _cell(row, 1).strip():
                continue
            user_id = _cell(row, 1).strip()
            members[user_id] = Member(
                user_id=user_id,
                display_name=_cell(row, 2) or None,
            )

        return [members[user_id] for user_id in sorted(members)]


class GoogleSheetsRecurringExpenseStorage(RecurringExpenseStorageInterface):

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _template_to_row(self, template: RecurringExpense) -> list:
        return [
            str(template.id),
            template.household_id,
            str(template.amount),
            str(template.day_of_month),
            template.category.value,
            template.note or "",
            template.payer_user_id,
            str(template.is_active),
            template.expense_type.value,
            template.created_by,
            template.created_at.isoformat(),
            template.updated_at.isoformat(),
        ]

    def _row_to_template(self, row: list) -> RecurringExpense:
        return RecurringExpense(
            id=UUID(_cell(row, 0)),
            household_id=_cell(row, 1),
            amount=Decimal(_cell(row, 2)),
            day_of_month=int(_cell(row, 3)),
            category=_cell(row, 4),
            note=_cell(row, 5) or None,
            payer_user_id=_cell(row, 6),
            is_active=_cell(row, 7, "true").lower() == "true",
            expense_type=RecurringExpenseType(_cell(row, 8, "fixed")),
            created_by=_cell(row, 9),
            created_at=datetime.fromisoformat(_cell(row, 10)),
            updated_at=datetime.fromisoformat(_cell(row, 11)),
        )

    async def save_recurring_expense(self, template: RecurringExpense) -> bool:
        try:
            sheet = self._client.get_recurring_sheet()
            sheet.append_row(self._template_to_row(template), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save recurring expense: {e}")

    async def list_recurring_expenses(self, household_id: str) -> list[RecurringExpense]:
        try:
            sheet = self._client.get_recurring_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list recurring expenses: {e}")

        templates = []
        for row in all_rows:
            if not row or not row[0] or _cell(row, 1) != household_id:
                continue
            try:
                templates.append(self._row_to_template(row))
            except (ValueError, InvalidOperation) as e:
                logger.warning(
                    "malformed_recurring_row_skipped",
                    recurring_expense_id=row[0],
                    error=str(e),
                )
        return templates


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            household_id=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            actor_user_id=_cell(row, 7) or None,
            correlation_id=UUID(_cell(row, 8)) if _cell(row, 8) else None,
            description=_cell(row, 9),
            details=json.loads(_cell(row, 10)) if _cell(row, 10) else {},
            error_message=_cell(row, 11) or None,
        )

    def _read_events(self, keep) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0] or not keep(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, InvalidOperation) as e:
                logger.warning(
                    "malformed_audit_row_skipped",
                    event_id=row[0],
                    error=str(e),
                )
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_event_write_failed",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events(
                lambda row: _cell(row, 8) == str(correlation_id)
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events(
                lambda row: _cell(row, 5) == entity_type and _cell(row, 6) == str(entity_id)
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events(lambda row: True)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
