"""
Tests for the balance engine.

The properties here must hold for any history, so several tests build
randomized histories from a fixed seed.
"""

import random
from datetime import date
from decimal import Decimal

import pytest

from household_ledger.balances import (
    BalanceComputationError,
    BalanceSheet,
    compute_balances,
    split_evenly,
    suggest_direction,
    suggest_settlements,
)
from household_ledger.models.category import ExpenseCategory, IncomeCategory, TransactionType
from household_ledger.models.ledger import (
    Member,
    Settlement,
    SettlementDirection,
    Transaction,
    household_party,
    party_from_user_id,
)
from household_ledger.models.results import ZERO, HouseholdBalance


ALICE = Member(user_id="alice", display_name="Alice")
BOB = Member(user_id="bob", display_name="Bob")
CAROL = Member(user_id="carol", display_name="Carol")
DAVE = Member(user_id="dave", display_name="Dave")


def advance(payer, amount, target=None) -> Transaction:
    return Transaction(
        household_id="home",
        type=TransactionType.ADVANCE,
        amount=Decimal(amount),
        occurred_on=date(2024, 3, 1),
        category=ExpenseCategory.DINING,
        payer_user_id=payer,
        advance_to_user_id=target,
        created_by=payer,
    )


def settlement(from_user_id, to_user_id, amount) -> Settlement:
    return Settlement(
        household_id="home",
        from_party=party_from_user_id(from_user_id),
        to_party=party_from_user_id(to_user_id),
        amount=Decimal(amount),
        settled_on=date(2024, 3, 31),
        created_by=from_user_id or to_user_id,
    )


def as_dict(balances: list[HouseholdBalance]) -> dict[str, Decimal]:
    return {balance.user_id: balance.balance_amount for balance in balances}


def random_targeted_history(rng: random.Random, members: list[Member], size: int = 30):
    ids = [member.user_id for member in members]
    advances, settlements = [], []
    for _ in range(size):
        payer, target = rng.sample(ids, 2)
        amount = f"{rng.randint(1, 50000)}.{rng.randint(0, 99):02d}"
        if rng.random() < 0.6:
            advances.append(advance(payer, amount, target))
        else:
            settlements.append(settlement(payer, target, amount))
    return advances, settlements


class TestSplitEvenly:
    """Tests for exact equal splits."""

    def test_even_split(self):
        assert split_evenly(Decimal("100"), ["b", "c"]) == {
            "b": Decimal("50.00"),
            "c": Decimal("50.00"),
        }

    def test_remainder_goes_to_lowest_ids(self):
        shares = split_evenly(Decimal("100"), ["d", "b", "c"])
        assert shares == {
            "b": Decimal("33.34"),
            "c": Decimal("33.33"),
            "d": Decimal("33.33"),
        }
        assert sum(shares.values()) == Decimal("100")

    def test_single_share(self):
        assert split_evenly(Decimal("0.01"), ["b"]) == {"b": Decimal("0.01")}

    def test_no_recipients(self):
        assert split_evenly(Decimal("10"), []) == {}

    def test_sub_quantum_residue(self):
        """Test that the shares still sum exactly when the amount is finer than the quantum."""
        shares = split_evenly(Decimal("0.005"), ["a", "b"])
        assert shares == {"a": Decimal("0.005"), "b": Decimal("0")}


class TestComputeBalances:
    """Tests for the core balance rules."""

    def test_empty_history(self):
        """Test that no history means everyone is even."""
        balances = compute_balances([], [], [BOB, ALICE])
        assert [b.user_id for b in balances] == ["alice", "bob"]
        assert all(b.balance_amount == ZERO for b in balances)
        assert balances[0].user_name == "Alice"

    def test_no_members(self):
        assert compute_balances([], [], []) == []

    def test_targeted_advance(self):
        balances = as_dict(compute_balances([advance("alice", "100", "bob")], [], [ALICE, BOB]))
        assert balances == {"alice": Decimal("100"), "bob": Decimal("-100")}

    def test_settlement_inversion(self):
        """Test that paying back a targeted advance clears it."""
        balances = as_dict(compute_balances(
            [advance("alice", "100", "bob")],
            [settlement("bob", "alice", "100")],
            [ALICE, BOB],
        ))
        assert balances == {"alice": ZERO, "bob": ZERO}

    def test_household_advance_two_members(self):
        """Test that the other member carries the whole household debt."""
        balances = as_dict(compute_balances([advance("alice", "100")], [], [ALICE, BOB]))
        assert balances == {"alice": Decimal("100"), "bob": Decimal("-100")}

    def test_household_advance_three_members(self):
        """Test the equal split among non-payers."""
        balances = as_dict(compute_balances(
            [advance("alice", "100.01")], [], [ALICE, BOB, CAROL]
        ))
        assert balances == {
            "alice": Decimal("100.01"),
            "bob": Decimal("-50.01"),
            "carol": Decimal("-50.00"),
        }
        assert sum(balances.values()) == ZERO

    def test_household_advance_four_members(self):
        balances = as_dict(compute_balances(
            [advance("dave", "100")], [], [ALICE, BOB, CAROL, DAVE]
        ))
        assert balances == {
            "alice": Decimal("-33.34"),
            "bob": Decimal("-33.33"),
            "carol": Decimal("-33.33"),
            "dave": Decimal("100"),
        }

    def test_household_advance_without_other_members(self):
        """Test that a lone member's household advance changes nothing."""
        balances = as_dict(compute_balances([advance("alice", "100")], [], [ALICE]))
        assert balances == {"alice": ZERO}

    def test_member_pays_household(self):
        """Test that paying the household clears a household advance."""
        balances = as_dict(compute_balances(
            [advance("alice", "1000")],
            [settlement("bob", None, "1000")],
            [ALICE, BOB],
        ))
        assert balances == {"alice": ZERO, "bob": ZERO}

    def test_household_pays_member(self):
        balances = as_dict(compute_balances(
            [advance("alice", "1000")],
            [settlement(None, "alice", "1000")],
            [ALICE, BOB],
        ))
        assert balances == {"alice": ZERO, "bob": ZERO}

    def test_household_settlement_three_members(self):
        balances = as_dict(compute_balances(
            [], [settlement("carol", None, "90")], [ALICE, BOB, CAROL]
        ))
        assert balances == {
            "alice": Decimal("-45.00"),
            "bob": Decimal("-45.00"),
            "carol": Decimal("90"),
        }

    def test_non_advances_are_ignored(self):
        expense = Transaction(
            household_id="home",
            type=TransactionType.EXPENSE,
            amount=Decimal("500"),
            occurred_on=date(2024, 3, 1),
            category=ExpenseCategory.GROCERIES,
            payer_user_id="alice",
            created_by="alice",
        )
        pay = Transaction(
            household_id="home",
            type=TransactionType.INCOME,
            amount=Decimal("500"),
            occurred_on=date(2024, 3, 1),
            category=IncomeCategory.SALARY,
            created_by="alice",
        )
        balances = as_dict(compute_balances([expense, pay], [], [ALICE, BOB]))
        assert balances == {"alice": ZERO, "bob": ZERO}

    def test_unknown_member_gets_unnamed_entry(self):
        """Test that users missing from the directory still get a balance."""
        balances = compute_balances([advance("alice", "40", "erin")], [], [ALICE])
        assert [(b.user_id, b.user_name) for b in balances] == [
            ("alice", "Alice"),
            ("erin", None),
        ]
        assert balances[1].balance_amount == Decimal("-40")


class TestBalanceProperties:
    """Properties that must hold for every history."""

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_conservation(self, seed):
        """Test that peer-to-peer histories always sum to zero."""
        members = [ALICE, BOB, CAROL, DAVE]
        advances, settlements = random_targeted_history(random.Random(seed), members)
        balances = compute_balances(advances, settlements, members)
        assert sum(b.balance_amount for b in balances) == ZERO

    def test_conservation_with_household_events(self):
        balances = compute_balances(
            [advance("alice", "100.01"), advance("bob", "33.33", "carol")],
            [settlement("carol", None, "10.01"), settlement(None, "bob", "7")],
            [ALICE, BOB, CAROL],
        )
        assert sum(b.balance_amount for b in balances) == ZERO

    def test_recompute_is_idempotent(self):
        members = [ALICE, BOB, CAROL]
        advances, settlements = random_targeted_history(random.Random(11), members)
        advances.append(advance("carol", "99.99"))
        settlements.append(settlement(None, "alice", "12.34"))

        first = compute_balances(advances, settlements, members)
        second = compute_balances(advances, settlements, members)
        assert first == second

    @pytest.mark.parametrize("seed", [4, 5])
    def test_order_independent(self, seed):
        """Test that permuting the history never changes the result."""
        rng = random.Random(seed)
        members = [ALICE, BOB, CAROL]
        advances, settlements = random_targeted_history(rng, members)
        advances.append(advance("bob", "10.00"))
        settlements.append(settlement("alice", None, "0.05"))

        expected = compute_balances(advances, settlements, members)

        shuffled_advances = list(advances)
        shuffled_settlements = list(settlements)
        rng.shuffle(shuffled_advances)
        rng.shuffle(shuffled_settlements)
        reversed_members = list(reversed(members))

        assert compute_balances(
            shuffled_advances, shuffled_settlements, reversed_members
        ) == expected

    def test_incremental_matches_full_recompute(self):
        """Test that apply/revert on a sheet tracks a full recompute."""
        members = [ALICE, BOB, CAROL]
        advances, settlements = random_targeted_history(random.Random(21), members, size=10)
        household = advance("alice", "100.01")

        sheet = BalanceSheet([m.user_id for m in members])
        for item in advances:
            sheet.apply_advance(item)
        for item in settlements:
            sheet.apply_settlement(item)
        sheet.apply_advance(household)
        assert sheet.snapshot(members) == compute_balances(
            advances + [household], settlements, members
        )

        # Deleting the household advance
        sheet.revert_advance(household)
        assert sheet.snapshot(members) == compute_balances(advances, settlements, members)

        # Undoing every settlement
        for item in settlements:
            sheet.revert_settlement(item)
        assert sheet.snapshot(members) == compute_balances(advances, [], members)
        assert sheet.total == ZERO


class TestInvariantViolations:
    """Histories that must be refused loudly."""

    def test_advance_without_payer(self):
        broken = Transaction.model_construct(
            **advance("alice", "10").model_dump() | {"payer_user_id": None}
        )
        with pytest.raises(BalanceComputationError, match="no payer"):
            compute_balances([broken], [], [ALICE, BOB])

    def test_advance_owed_by_payer(self):
        broken = Transaction.model_construct(
            **advance("alice", "10").model_dump() | {"advance_to_user_id": "alice"}
        )
        with pytest.raises(BalanceComputationError, match="own payer"):
            compute_balances([broken], [], [ALICE, BOB])

    def test_non_positive_amount(self):
        broken = Transaction.model_construct(
            **advance("alice", "10", "bob").model_dump() | {"amount": Decimal("0")}
        )
        with pytest.raises(BalanceComputationError, match="non-positive"):
            compute_balances([broken], [], [ALICE, BOB])

    def test_settlement_without_member_side(self):
        valid = settlement("alice", "bob", "10")
        broken = Settlement.model_construct(
            id=valid.id,
            household_id="home",
            from_party=household_party(),
            to_party=household_party(),
            amount=Decimal("10"),
            settled_on=valid.settled_on,
            created_by="alice",
        )
        with pytest.raises(BalanceComputationError, match="no member side"):
            compute_balances([], [broken], [ALICE, BOB])

    def test_settlement_to_self(self):
        valid = settlement("alice", "bob", "10")
        broken = Settlement.model_construct(
            id=valid.id,
            household_id="home",
            from_party=valid.from_party,
            to_party=valid.from_party,
            amount=Decimal("10"),
            settled_on=valid.settled_on,
            created_by="alice",
        )
        with pytest.raises(BalanceComputationError, match="own sender"):
            compute_balances([], [broken], [ALICE, BOB])


class TestSuggestions:
    """Tests for settlement suggestions."""

    def test_largest_debts_first(self):
        balances = [
            HouseholdBalance(user_id="alice", balance_amount=Decimal("300")),
            HouseholdBalance(user_id="bob", balance_amount=Decimal("-100")),
            HouseholdBalance(user_id="carol", balance_amount=Decimal("-200")),
        ]
        suggestions = suggest_settlements(balances)
        assert [(s.from_user_id, s.to_user_id, s.amount) for s in suggestions] == [
            ("carol", "alice", Decimal("200")),
            ("bob", "alice", Decimal("100")),
        ]

    def test_suggestions_clear_all_balances(self):
        members = [ALICE, BOB, CAROL, DAVE]
        advances, settlements = random_targeted_history(random.Random(8), members)
        balances = compute_balances(advances, settlements, members)

        remaining = as_dict(balances)
        for suggestion in suggest_settlements(balances):
            remaining[suggestion.from_user_id] += suggestion.amount
            remaining[suggestion.to_user_id] -= suggestion.amount
        assert all(amount == ZERO for amount in remaining.values())

    def test_even_balances_need_nothing(self):
        assert suggest_settlements(compute_balances([], [], [ALICE, BOB])) == []

    def test_suggest_direction(self):
        """Test the default pay/receive choice."""
        balances = as_dict(compute_balances([advance("alice", "100", "bob")], [], [ALICE, BOB]))
        entries = [HouseholdBalance(user_id=k, balance_amount=v) for k, v in balances.items()]
        assert suggest_direction(entries, "bob") == SettlementDirection.PAY
        assert suggest_direction(entries, "alice") == SettlementDirection.RECEIVE
        assert suggest_direction(entries, "stranger") == SettlementDirection.RECEIVE
