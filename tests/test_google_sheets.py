"""
Tests for the Google Sheets storage backends.

The gspread worksheet is replaced by a list-of-rows fake, so no network
or credentials are involved.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from household_ledger.audit import AuditLogger
from household_ledger.balances import BalanceComputationError
from household_ledger.models.audit import AuditEventBuilder, AuditEventType
from household_ledger.models.category import ExpenseCategory, TransactionType
from household_ledger.models.ledger import (
    Member,
    Settlement,
    Transaction,
    household_party,
    member_party,
)
from household_ledger.models.recurring import RecurringExpense, RecurringExpenseType
from household_ledger.orchestrator import BalanceFlow
from household_ledger.services.storage import (
    CorruptRecordError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsMembershipDirectory,
    GoogleSheetsRecurringExpenseStorage,
    GoogleSheetsSettlementStorage,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryMembershipDirectory,
    NotFoundError,
)
from household_ledger.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    MEMBER_COLUMNS,
    RECURRING_COLUMNS,
    SETTLEMENT_COLUMNS,
    TRANSACTION_COLUMNS,
)


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage classes."""

    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def col_values(self, col):
        return [row[col - 1] if len(row) >= col else "" for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(value) for value in values])

    def update(self, range_name, values, value_input_option=None):
        index = int(range_name[1:]) - 1
        self.rows[index] = [str(value) for value in values[0]]

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeClient:
    def __init__(self):
        self.transactions = FakeWorksheet(TRANSACTION_COLUMNS)
        self.settlements = FakeWorksheet(SETTLEMENT_COLUMNS)
        self.members = FakeWorksheet(MEMBER_COLUMNS)
        self.recurring = FakeWorksheet(RECURRING_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_transactions_sheet(self):
        return self.transactions

    def get_settlements_sheet(self):
        return self.settlements

    def get_members_sheet(self):
        return self.members

    def get_recurring_sheet(self):
        return self.recurring

    def get_audit_sheet(self):
        return self.audit


@pytest.fixture
def client():
    return FakeClient()


def make_advance(**overrides) -> Transaction:
    data = {
        "household_id": "home",
        "type": TransactionType.ADVANCE,
        "amount": Decimal("1280.50"),
        "occurred_on": date(2024, 3, 10),
        "category": ExpenseCategory.DINING,
        "note": "Birthday dinner",
        "payer_user_id": "alice",
        "advance_to_user_id": "bob",
        "created_by": "alice",
    }
    data.update(overrides)
    return Transaction(**data)


class TestTransactionStorage:
    """Tests for the Transactions sheet."""

    def test_row_round_trip(self, client):
        """Test that amounts, dates and ids survive the sheet exactly."""
        storage = GoogleSheetsTransactionStorage(client)
        advance = make_advance(recurring_expense_id=uuid4())
        asyncio.run(storage.save_transaction(advance))

        loaded = asyncio.run(storage.get_transaction_by_id(advance.id))
        assert loaded == advance
        assert client.transactions.rows[1][3] == "1280.50"

    def test_duplicate_id_rejected(self, client):
        storage = GoogleSheetsTransactionStorage(client)
        advance = make_advance()
        asyncio.run(storage.save_transaction(advance))
        with pytest.raises(DuplicateError):
            asyncio.run(storage.save_transaction(advance))
        assert len(client.transactions.rows) == 2

    def test_filters(self, client):
        storage = GoogleSheetsTransactionStorage(client)
        march = make_advance()
        april = make_advance(occurred_on=date(2024, 4, 1))
        expense = make_advance(
            type=TransactionType.EXPENSE,
            advance_to_user_id=None,
            occurred_on=date(2024, 3, 2),
        )
        elsewhere = make_advance(household_id="other")
        for transaction in (april, march, expense, elsewhere):
            asyncio.run(storage.save_transaction(transaction))

        in_march = asyncio.run(storage.list_transactions(
            "home", date_from=date(2024, 3, 1), date_to=date(2024, 3, 31)
        ))
        assert [t.id for t in in_march] == [expense.id, march.id]

        advances = asyncio.run(storage.list_advances("home"))
        assert [t.id for t in advances] == [march.id, april.id]

    def test_malformed_rows_are_skipped(self, client):
        """Test that a hand-edited row does not break the whole read."""
        storage = GoogleSheetsTransactionStorage(client)
        good = make_advance()
        asyncio.run(storage.save_transaction(good))

        bad_amount = list(client.transactions.rows[1])
        bad_amount[0] = str(uuid4())
        bad_amount[3] = "lots"
        bad_category = list(client.transactions.rows[1])
        bad_category[0] = str(uuid4())
        bad_category[5] = "antiques"
        client.transactions.rows += [bad_amount, bad_category, []]

        assert [t.id for t in asyncio.run(storage.list_transactions("home"))] == [good.id]

    def test_unreadable_advance_is_an_error(self, client):
        """Test that balance reads refuse rows the dashboard would skip."""
        storage = GoogleSheetsTransactionStorage(client)
        good = make_advance()
        asyncio.run(storage.save_transaction(good))

        self_owed = list(client.transactions.rows[1])
        self_owed[0] = str(uuid4())
        self_owed[8] = "alice"
        client.transactions.rows.append(self_owed)

        assert [t.id for t in asyncio.run(storage.list_transactions("home"))] == [good.id]
        with pytest.raises(CorruptRecordError):
            asyncio.run(storage.list_advances("home"))

    def test_unreadable_expense_does_not_block_advances(self, client):
        storage = GoogleSheetsTransactionStorage(client)
        good = make_advance()
        asyncio.run(storage.save_transaction(good))

        broken_expense = list(client.transactions.rows[1])
        broken_expense[0] = str(uuid4())
        broken_expense[2] = "expense"
        broken_expense[3] = "lots"
        client.transactions.rows.append(broken_expense)

        assert [t.id for t in asyncio.run(storage.list_advances("home"))] == [good.id]

    def test_update_and_delete(self, client):
        storage = GoogleSheetsTransactionStorage(client)
        advance = make_advance()
        asyncio.run(storage.save_transaction(advance))

        changed = advance.model_copy(update={"amount": Decimal("99.99")})
        assert asyncio.run(storage.update_transaction(changed))
        assert asyncio.run(storage.get_transaction_by_id(advance.id)).amount == Decimal("99.99")

        assert asyncio.run(storage.delete_transaction(advance.id))
        assert asyncio.run(storage.get_transaction_by_id(advance.id)) is None
        assert not asyncio.run(storage.delete_transaction(advance.id))

    def test_update_missing(self, client):
        storage = GoogleSheetsTransactionStorage(client)
        with pytest.raises(NotFoundError):
            asyncio.run(storage.update_transaction(make_advance()))


class TestSettlementStorage:

    def test_household_side_round_trip(self, client):
        """Test that an empty cell comes back as the household."""
        storage = GoogleSheetsSettlementStorage(client)
        settlement = Settlement(
            household_id="home",
            from_party=member_party("bob"),
            to_party=household_party(),
            amount=Decimal("500"),
            settled_on=date(2024, 3, 31),
            created_by="bob",
        )
        asyncio.run(storage.save_settlement(settlement))
        assert client.settlements.rows[1][3] == ""

        [loaded] = asyncio.run(storage.list_settlements("home"))
        assert loaded == settlement
        assert loaded.to_party.is_household

    def test_corrupt_settlement_raises(self, client):
        """Test that a row with no member side is refused, not dropped."""
        client.settlements.rows.append([
            str(uuid4()), "home", "", "", "10", "2024-03-01", "", "bob",
            "2024-03-01T10:00:00+00:00",
        ])
        storage = GoogleSheetsSettlementStorage(client)
        with pytest.raises(CorruptRecordError, match="cannot be read"):
            asyncio.run(storage.list_settlements("home"))

    def test_other_household_rows_are_not_read(self, client):
        client.settlements.rows.append([
            str(uuid4()), "other", "", "", "10", "2024-03-01", "", "bob",
            "2024-03-01T10:00:00+00:00",
        ])
        storage = GoogleSheetsSettlementStorage(client)
        assert asyncio.run(storage.list_settlements("home")) == []

    def test_delete(self, client):
        storage = GoogleSheetsSettlementStorage(client)
        settlement = Settlement(
            household_id="home",
            from_party=member_party("bob"),
            to_party=member_party("alice"),
            amount=Decimal("20"),
            settled_on=date(2024, 3, 31),
            created_by="bob",
        )
        asyncio.run(storage.save_settlement(settlement))
        assert asyncio.run(storage.delete_settlement(settlement.id))
        assert asyncio.run(storage.get_settlement_by_id(settlement.id)) is None


class TestBalancesFromSheets:
    """Tests for balances computed over the Sheets backend."""

    @pytest.fixture
    def audit(self):
        return InMemoryAuditStorage()

    @pytest.fixture
    def balance_flow(self, client, audit):
        directory = InMemoryMembershipDirectory({
            "home": [Member(user_id="alice"), Member(user_id="bob")],
        })
        return BalanceFlow(
            GoogleSheetsTransactionStorage(client),
            GoogleSheetsSettlementStorage(client),
            directory,
            audit_logger=AuditLogger(audit),
            quantum=Decimal("0.01"),
        )

    def test_hand_edited_rows_fail_the_computation(self, client, audit, balance_flow):
        """Test that unreadable rows never yield partial balances."""
        asyncio.run(GoogleSheetsTransactionStorage(client).save_transaction(
            make_advance(amount=Decimal("100"))
        ))
        self_owed = list(client.transactions.rows[1])
        self_owed[0] = str(uuid4())
        self_owed[8] = "alice"
        client.transactions.rows.append(self_owed)
        client.settlements.rows.append([
            str(uuid4()), "home", "", "", "40", "2024-03-01", "", "bob",
            "2024-03-01T10:00:00+00:00",
        ])

        with pytest.raises(BalanceComputationError, match="cannot be read"):
            asyncio.run(balance_flow.load_balances("home"))
        assert [e.event_type for e in audit.events] == [
            AuditEventType.BALANCE_COMPUTATION_FAILED,
        ]

    def test_corrupt_settlement_alone_fails(self, client, audit, balance_flow):
        asyncio.run(GoogleSheetsTransactionStorage(client).save_transaction(
            make_advance(amount=Decimal("100"))
        ))
        client.settlements.rows.append([
            str(uuid4()), "home", "", "", "40", "2024-03-01", "", "bob",
            "2024-03-01T10:00:00+00:00",
        ])

        with pytest.raises(BalanceComputationError):
            asyncio.run(balance_flow.load_balances("home"))
        assert audit.events[-1].event_type == AuditEventType.BALANCE_COMPUTATION_FAILED

    def test_clean_sheets_compute(self, client, balance_flow):
        asyncio.run(GoogleSheetsTransactionStorage(client).save_transaction(
            make_advance(amount=Decimal("100"))
        ))
        balances = asyncio.run(balance_flow.load_balances("home"))
        assert {b.user_id: b.balance_amount for b in balances} == {
            "alice": Decimal("100"),
            "bob": Decimal("-100"),
        }


class TestMembershipDirectory:

    def test_members_sorted_and_deduplicated(self, client):
        client.members.rows += [
            ["home", "bob", "Bob"],
            ["home", "alice", ""],
            ["other", "carol", "Carol"],
            ["home", "bob", "Bobby"],
            ["home", "  ", "Nobody"],
        ]
        directory = GoogleSheetsMembershipDirectory(client)
        members = asyncio.run(directory.list_members("home"))
        assert [(m.user_id, m.display_name) for m in members] == [
            ("alice", None),
            ("bob", "Bobby"),
        ]
        assert asyncio.run(directory.member_ids("home")) == {"alice", "bob"}


class TestRecurringExpenseStorage:

    def test_round_trip(self, client):
        storage = GoogleSheetsRecurringExpenseStorage(client)
        template = RecurringExpense(
            household_id="home",
            amount=Decimal("8000"),
            day_of_month=27,
            category=ExpenseCategory.HOME,
            payer_user_id="alice",
            created_by="alice",
            is_active=False,
            expense_type=RecurringExpenseType.VARIABLE,
        )
        asyncio.run(storage.save_recurring_expense(template))
        assert asyncio.run(storage.list_recurring_expenses("home")) == [template]


class TestAuditStorage:

    def test_events_by_correlation_and_entity(self, client):
        storage = GoogleSheetsAuditStorage(client)
        advance = make_advance()
        correlation_id = uuid4()

        created = AuditEventBuilder.transaction_created(advance, correlation_id=correlation_id)
        failed = AuditEventBuilder.storage_error(
            operation="save_settlement",
            error_message="quota exceeded",
        )
        assert asyncio.run(storage.append_event(created))
        assert asyncio.run(storage.append_event(failed))

        by_correlation = asyncio.run(storage.get_events_by_correlation_id(correlation_id))
        assert [e.event_id for e in by_correlation] == [created.event_id]
        assert by_correlation[0].details == created.details

        by_entity = asyncio.run(storage.get_events_by_entity("transaction", advance.id))
        assert [e.event_type for e in by_entity] == [AuditEventType.TRANSACTION_CREATED]

        recent = asyncio.run(storage.get_recent_events(limit=1))
        assert len(recent) == 1
