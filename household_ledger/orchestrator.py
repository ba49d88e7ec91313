"""
Main Orchestrator for Household Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Balances (history → balance engine → balances / suggestions)
2. Transactions (form → validate → save → recompute)
3. Settlements (form → validate → save → recompute)
4. Dashboards (period → aggregation)
5. Recurring expenses (templates → transactions / reminders)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written without passing validation
- Only the member who created an entry may change or delete it
- Every write is followed by a full balance recompute (refresh-after-write)
- Every step is audited

The engines stay pure; all I/O happens here.
"""

import calendar
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, NamedTuple, Optional
from uuid import UUID

import structlog

from household_ledger.aggregation import (
    compute_category_breakdown,
    compute_monthly_summary,
    compute_yearly_series,
    compute_yearly_summary,
)
from household_ledger.audit import AuditLogger, create_correlation_id
from household_ledger.balances import (
    BalanceComputationError,
    compute_balances,
    suggest_direction,
    suggest_settlements,
)
from household_ledger.config import LedgerSettings, get_settings
from household_ledger.models.ledger import (
    Settlement,
    SettlementDirection,
    SettlementInput,
    Transaction,
    TransactionInput,
)
from household_ledger.models.recurring import VariableExpenseReminder
from household_ledger.models.results import (
    HouseholdBalance,
    MonthlyDashboard,
    SettlementSuggestion,
    YearlyDashboard,
)
from household_ledger.recurring import (
    materialize_fixed_expenses,
    variable_expense_reminders,
)
from household_ledger.services.storage import (
    CorruptRecordError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsMembershipDirectory,
    GoogleSheetsRecurringExpenseStorage,
    GoogleSheetsSettlementStorage,
    GoogleSheetsTransactionStorage,
    InMemoryMembershipDirectory,
    InMemoryRecurringExpenseStorage,
    InMemorySettlementStorage,
    InMemoryTransactionStorage,
    MembershipDirectoryInterface,
    NotFoundError,
    RecurringExpenseStorageInterface,
    SettlementStorageInterface,
    StorageError,
    TransactionStorageInterface,
)
from household_ledger.validation import (
    LedgerValidationError,
    SettlementValidator,
    TransactionValidator,
)


logger = structlog.get_logger(__name__)


class PermissionDeniedError(Exception):
    """The acting member may not change this entry."""
    pass


def _month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class BalanceFlow:
    """
    Recomputes balances from the full history.

    Balances are never stored; this is the only place they come from.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        settlement_storage: SettlementStorageInterface,
        member_directory: MembershipDirectoryInterface,
        audit_logger: Optional[AuditLogger] = None,
        quantum: Optional[Decimal] = None,
    ):
        self._transaction_storage = transaction_storage
        self._settlement_storage = settlement_storage
        self._member_directory = member_directory
        self._audit_logger = audit_logger
        self._quantum = quantum or get_settings().ledger.money_quantum

    async def load_balances(
        self,
        household_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[HouseholdBalance]:
        """
        Compute every member's balance.

        Raises:
            BalanceComputationError: If the stored history is inconsistent
                or an advance or settlement cannot be read.
                Nothing partial is returned.
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            advances = await self._transaction_storage.list_advances(household_id)
            settlements = await self._settlement_storage.list_settlements(household_id)
            members = await self._member_directory.list_members(household_id)

            balances = compute_balances(
                advances, settlements, members, quantum=self._quantum
            )
        except (BalanceComputationError, CorruptRecordError) as e:
            if self._audit_logger:
                await self._audit_logger.log_balance_computation_failed(
                    household_id=household_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            if isinstance(e, CorruptRecordError):
                raise BalanceComputationError(str(e)) from e
            raise

        if self._audit_logger:
            await self._audit_logger.log_balances_recomputed(
                household_id=household_id,
                balances=balances,
                advance_count=len(advances),
                settlement_count=len(settlements),
                correlation_id=correlation_id,
            )

        return balances

    async def suggest_settlements(
        self,
        household_id: str,
    ) -> list[SettlementSuggestion]:
        """Payments that would clear every balance."""
        balances = await self.load_balances(household_id)
        return suggest_settlements(balances)

    async def suggest_direction(
        self,
        household_id: str,
        user_id: str,
    ) -> SettlementDirection:
        """Default direction for the settlement form of `user_id`."""
        balances = await self.load_balances(household_id)
        return suggest_direction(balances, user_id)


class _MutationFlow:
    """Shared checks for flows that write ledger entries."""

    def __init__(
        self,
        member_directory: MembershipDirectoryInterface,
        balance_flow: BalanceFlow,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._member_directory = member_directory
        self._balance_flow = balance_flow
        self._audit_logger = audit_logger

    async def _require_member(
        self,
        household_id: str,
        acting_user_id: str,
        entity_type: str,
        correlation_id: UUID,
    ) -> set[str]:
        """Return the household's member ids, or refuse outsiders."""
        member_ids = await self._member_directory.member_ids(household_id)
        if acting_user_id not in member_ids:
            await self._deny(entity_type, None, household_id, acting_user_id, correlation_id)
            raise PermissionDeniedError(
                f"{acting_user_id} is not a member of household {household_id}"
            )
        return member_ids

    async def _require_owner(
        self,
        entity_type: str,
        entity_id: UUID,
        household_id: str,
        created_by: str,
        acting_user_id: str,
        correlation_id: UUID,
    ) -> None:
        if created_by != acting_user_id:
            await self._deny(entity_type, entity_id, household_id, acting_user_id, correlation_id)
            raise PermissionDeniedError(
                f"Only {created_by} can change {entity_type} {entity_id}"
            )

    async def _deny(
        self,
        entity_type: str,
        entity_id: Optional[UUID],
        household_id: str,
        acting_user_id: str,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_permission_denied(
                entity_type=entity_type,
                entity_id=entity_id,
                household_id=household_id,
                actor_user_id=acting_user_id,
                correlation_id=correlation_id,
            )

    async def _store(
        self,
        operation: str,
        write: Awaitable[Any],
        household_id: str,
        correlation_id: UUID,
    ) -> Any:
        """Await a storage write, auditing a failure before re-raising."""
        try:
            return await write
        except StorageError as e:
            logger.error("storage_write_failed", operation=operation, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation=operation,
                    error_message=str(e),
                    household_id=household_id,
                    correlation_id=correlation_id,
                )
            raise

    async def _reject(
        self,
        error: LedgerValidationError,
        household_id: str,
        acting_user_id: str,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(
                subject=error.result.subject,
                household_id=household_id,
                issues=error.issues,
                actor_user_id=acting_user_id,
                correlation_id=correlation_id,
            )


class TransactionFlow(_MutationFlow):
    """
    Orchestrates transaction writes.

    Flow:
    1. Membership → the acting user must belong to the household
    2. Validate → field-attributed issues, nothing written on failure
    3. Ownership → edits and deletes only by the creator
    4. Save → persist
    5. Recompute → fresh balances returned with the result
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        member_directory: MembershipDirectoryInterface,
        balance_flow: BalanceFlow,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(member_directory, balance_flow, audit_logger)
        self._transaction_storage = transaction_storage
        self._validator = validator or TransactionValidator()

    async def create_transaction(
        self,
        data: TransactionInput,
        acting_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, list[HouseholdBalance]]:
        """
        Record a new transaction.

        Returns:
            (transaction, balances)

        Raises:
            PermissionDeniedError: If the acting user is not a member
            LedgerValidationError: If the request is invalid
        """
        correlation_id = correlation_id or create_correlation_id()
        member_ids = await self._require_member(
            data.household_id, acting_user_id, "transaction", correlation_id
        )

        try:
            transaction = self._validator.to_transaction(
                data, created_by=acting_user_id, member_ids=member_ids
            )
        except LedgerValidationError as e:
            await self._reject(e, data.household_id, acting_user_id, correlation_id)
            raise

        await self._store(
            "save_transaction",
            self._transaction_storage.save_transaction(transaction),
            transaction.household_id,
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                transaction=transaction,
                correlation_id=correlation_id,
            )

        balances = await self._balance_flow.load_balances(
            transaction.household_id, correlation_id
        )
        return transaction, balances

    async def _get_owned(
        self,
        transaction_id: UUID,
        household_id: str,
        acting_user_id: str,
        correlation_id: UUID,
    ) -> Transaction:
        existing = await self._transaction_storage.get_transaction_by_id(transaction_id)
        if existing is None or existing.household_id != household_id:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        await self._require_owner(
            "transaction",
            existing.id,
            household_id,
            existing.created_by,
            acting_user_id,
            correlation_id,
        )
        return existing

    async def update_transaction(
        self,
        transaction_id: UUID,
        data: TransactionInput,
        acting_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, list[HouseholdBalance]]:
        """
        Edit a transaction. The id, creator and creation time never change.

        Raises:
            NotFoundError: If the transaction does not exist in this household
            PermissionDeniedError: If the acting user did not create it
            LedgerValidationError: If the new values are invalid
        """
        correlation_id = correlation_id or create_correlation_id()
        member_ids = await self._require_member(
            data.household_id, acting_user_id, "transaction", correlation_id
        )
        existing = await self._get_owned(
            transaction_id, data.household_id, acting_user_id, correlation_id
        )

        try:
            transaction = self._validator.to_transaction(
                data,
                created_by=acting_user_id,
                member_ids=member_ids,
                existing=existing,
            )
        except LedgerValidationError as e:
            await self._reject(e, data.household_id, acting_user_id, correlation_id)
            raise

        await self._store(
            "update_transaction",
            self._transaction_storage.update_transaction(transaction),
            transaction.household_id,
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(
                transaction=transaction,
                actor_user_id=acting_user_id,
                correlation_id=correlation_id,
            )

        balances = await self._balance_flow.load_balances(
            transaction.household_id, correlation_id
        )
        return transaction, balances

    async def delete_transaction(
        self,
        transaction_id: UUID,
        household_id: str,
        acting_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[HouseholdBalance]:
        """Delete a transaction and return the recomputed balances."""
        correlation_id = correlation_id or create_correlation_id()
        existing = await self._get_owned(
            transaction_id, household_id, acting_user_id, correlation_id
        )

        await self._store(
            "delete_transaction",
            self._transaction_storage.delete_transaction(existing.id),
            household_id,
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                transaction=existing,
                actor_user_id=acting_user_id,
                correlation_id=correlation_id,
            )

        return await self._balance_flow.load_balances(household_id, correlation_id)


class SettlementFlow(_MutationFlow):
    """
    Orchestrates the Settlement Recorder.

    A settlement is accepted only from a member who is one of its sides.
    Recording and undoing both end with a balance recompute.
    """

    def __init__(
        self,
        settlement_storage: SettlementStorageInterface,
        member_directory: MembershipDirectoryInterface,
        balance_flow: BalanceFlow,
        validator: Optional[SettlementValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(member_directory, balance_flow, audit_logger)
        self._settlement_storage = settlement_storage
        self._validator = validator or SettlementValidator()

    async def record_settlement(
        self,
        data: SettlementInput,
        acting_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Settlement, list[HouseholdBalance]]:
        """
        Validate and record a settlement.

        Returns:
            (settlement, balances)

        Raises:
            PermissionDeniedError: If the acting user is not a member
            LedgerValidationError: If the request is invalid
        """
        correlation_id = correlation_id or create_correlation_id()
        member_ids = await self._require_member(
            data.household_id, acting_user_id, "settlement", correlation_id
        )

        try:
            settlement = self._validator.to_settlement(
                data,
                acting_user_id=acting_user_id,
                member_ids=member_ids,
                created_by=acting_user_id,
            )
        except LedgerValidationError as e:
            await self._reject(e, data.household_id, acting_user_id, correlation_id)
            raise

        await self._store(
            "save_settlement",
            self._settlement_storage.save_settlement(settlement),
            settlement.household_id,
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_settlement_recorded(
                settlement=settlement,
                correlation_id=correlation_id,
            )

        balances = await self._balance_flow.load_balances(
            settlement.household_id, correlation_id
        )
        return settlement, balances

    async def delete_settlement(
        self,
        settlement_id: UUID,
        household_id: str,
        acting_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[HouseholdBalance]:
        """Undo a settlement recorded by the acting member."""
        correlation_id = correlation_id or create_correlation_id()

        existing = await self._settlement_storage.get_settlement_by_id(settlement_id)
        if existing is None or existing.household_id != household_id:
            raise NotFoundError(f"Settlement not found: {settlement_id}")

        await self._require_owner(
            "settlement",
            existing.id,
            household_id,
            existing.created_by,
            acting_user_id,
            correlation_id,
        )

        await self._store(
            "delete_settlement",
            self._settlement_storage.delete_settlement(existing.id),
            household_id,
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_settlement_deleted(
                settlement=existing,
                actor_user_id=acting_user_id,
                correlation_id=correlation_id,
            )

        return await self._balance_flow.load_balances(household_id, correlation_id)


class DashboardFlow:
    """
    Read-only dashboard data.

    Storage narrows the period; the aggregation engine does the rest.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        settings: Optional[LedgerSettings] = None,
    ):
        self._transaction_storage = transaction_storage
        self._settings = settings or get_settings().ledger

    async def load_monthly_dashboard(
        self,
        household_id: str,
        year: int,
        month: int,
    ) -> MonthlyDashboard:
        date_from, date_to = _month_bounds(year, month)
        transactions = await self._transaction_storage.list_transactions(
            household_id, date_from=date_from, date_to=date_to
        )

        return MonthlyDashboard(
            year=year,
            month=month,
            summary=compute_monthly_summary(
                transactions,
                include_targeted_advances=self._settings.summary_includes_targeted_advances,
            ),
            breakdown=compute_category_breakdown(
                transactions,
                include_targeted_advances=self._settings.breakdown_includes_targeted_advances,
            ),
        )

    async def load_yearly_dashboard(
        self,
        household_id: str,
        year: int,
    ) -> YearlyDashboard:
        transactions = await self._transaction_storage.list_transactions(
            household_id,
            date_from=date(year, 1, 1),
            date_to=date(year, 12, 31),
        )

        return YearlyDashboard(
            year=year,
            summary=compute_yearly_summary(
                transactions,
                include_targeted_advances=self._settings.summary_includes_targeted_advances,
            ),
            breakdown=compute_category_breakdown(
                transactions,
                include_targeted_advances=self._settings.breakdown_includes_targeted_advances,
            ),
            series=compute_yearly_series(transactions),
        )


class RecurringFlow(_MutationFlow):
    """Turns recurring templates into this month's entries."""

    def __init__(
        self,
        recurring_storage: RecurringExpenseStorageInterface,
        transaction_storage: TransactionStorageInterface,
        member_directory: MembershipDirectoryInterface,
        balance_flow: BalanceFlow,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(member_directory, balance_flow, audit_logger)
        self._recurring_storage = recurring_storage
        self._transaction_storage = transaction_storage

    async def _month_transactions(
        self,
        household_id: str,
        target_date: date,
    ) -> list[Transaction]:
        date_from, date_to = _month_bounds(target_date.year, target_date.month)
        return await self._transaction_storage.list_transactions(
            household_id, date_from=date_from, date_to=date_to
        )

    async def generate_fixed_transactions(
        self,
        household_id: str,
        target_date: date,
        acting_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[list[Transaction], list[HouseholdBalance]]:
        """
        Save the fixed expenses due up to target_date that are still missing.

        Safe to run repeatedly: already generated templates are skipped.

        Raises:
            PermissionDeniedError: If the acting user is not a member
        """
        correlation_id = correlation_id or create_correlation_id()
        await self._require_member(
            household_id, acting_user_id, "recurring_expense", correlation_id
        )

        templates = await self._recurring_storage.list_recurring_expenses(household_id)
        existing = await self._month_transactions(household_id, target_date)
        transactions = materialize_fixed_expenses(
            templates, target_date, existing, created_by=acting_user_id
        )

        for transaction in transactions:
            await self._store(
                "save_transaction",
                self._transaction_storage.save_transaction(transaction),
                household_id,
                correlation_id,
            )

        if self._audit_logger:
            await self._audit_logger.log_recurring_generated(
                household_id=household_id,
                target_date=target_date,
                transactions=transactions,
                correlation_id=correlation_id,
            )

        balances = await self._balance_flow.load_balances(household_id, correlation_id)
        return transactions, balances

    async def variable_reminders(
        self,
        household_id: str,
        target_date: date,
    ) -> list[VariableExpenseReminder]:
        """Variable templates that are due but still need an amount."""
        templates = await self._recurring_storage.list_recurring_expenses(household_id)
        existing = await self._month_transactions(household_id, target_date)
        return variable_expense_reminders(templates, target_date, existing)


class AppComponents(NamedTuple):
    balance_flow: BalanceFlow
    transaction_flow: TransactionFlow
    settlement_flow: SettlementFlow
    dashboard_flow: DashboardFlow
    recurring_flow: RecurringFlow
    sheets_client: Optional[GoogleSheetsClient]


def create_app_components(
    use_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory storage.

    Returns:
        AppComponents with every flow wired to the same storage
    """
    sheets_client = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            transaction_storage = GoogleSheetsTransactionStorage(sheets_client)
            settlement_storage = GoogleSheetsSettlementStorage(sheets_client)
            member_directory = GoogleSheetsMembershipDirectory(sheets_client)
            recurring_storage = GoogleSheetsRecurringExpenseStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            use_storage = False

    if not use_storage:
        transaction_storage = InMemoryTransactionStorage()
        settlement_storage = InMemorySettlementStorage()
        member_directory = InMemoryMembershipDirectory()
        recurring_storage = InMemoryRecurringExpenseStorage()
        audit_logger = AuditLogger()  # Local-only logging

    balance_flow = BalanceFlow(
        transaction_storage=transaction_storage,
        settlement_storage=settlement_storage,
        member_directory=member_directory,
        audit_logger=audit_logger,
    )

    return AppComponents(
        balance_flow=balance_flow,
        transaction_flow=TransactionFlow(
            transaction_storage=transaction_storage,
            member_directory=member_directory,
            balance_flow=balance_flow,
            audit_logger=audit_logger,
        ),
        settlement_flow=SettlementFlow(
            settlement_storage=settlement_storage,
            member_directory=member_directory,
            balance_flow=balance_flow,
            audit_logger=audit_logger,
        ),
        dashboard_flow=DashboardFlow(transaction_storage=transaction_storage),
        recurring_flow=RecurringFlow(
            recurring_storage=recurring_storage,
            transaction_storage=transaction_storage,
            member_directory=member_directory,
            balance_flow=balance_flow,
            audit_logger=audit_logger,
        ),
        sheets_client=sheets_client,
    )
