"""
Balance Engine

Turns the advance and settlement history of a household into one signed
balance per member (positive: owed money, negative: owes money).

Every advance creates debt and every settlement clears some:

    targeted advance      P paid for T        P += a, T -= a
    household advance     P paid for all      P += a, others -= share
    targeted settlement   F paid T            F += a, T -= a
    household settlement  F paid household    F += a, others -= share
                          household paid T    T -= a, others += share

"others" are the known household members except the concrete party.
Household-wide amounts are split equally among them; the remainder after
rounding to the money quantum goes one quantum at a time to members in
ascending user_id order, so every split sums exactly to the amount and the
result never depends on input order.

DESIGN DECISION: The engine does not validate shape, but it refuses
histories that break an invariant (advance without payer, advance owed by
its own payer, settlement with no member side, settlement to self,
non-positive amounts). Those raise BalanceComputationError and no partial
balances are returned, because a silently coerced ledger is worse than
none.
"""

from decimal import ROUND_DOWN, Decimal
from typing import Iterable, Optional

import structlog

from household_ledger.models.category import TransactionType
from household_ledger.models.ledger import Member, Settlement, Transaction
from household_ledger.models.results import ZERO, HouseholdBalance


logger = structlog.get_logger(__name__)

DEFAULT_QUANTUM = Decimal("0.01")


class BalanceComputationError(ValueError):
    """The advance/settlement history violates an accounting invariant."""
    pass


def split_evenly(
    amount: Decimal,
    user_ids: Iterable[str],
    quantum: Decimal = DEFAULT_QUANTUM,
) -> dict[str, Decimal]:
    """
    Split an amount equally, exactly.

    Each share is rounded down to the quantum; leftover quanta go to the
    lowest user ids first. The shares always sum to `amount`.
    """
    ids = sorted(set(user_ids))
    if not ids:
        return {}

    base = (amount / len(ids)).quantize(quantum, rounding=ROUND_DOWN)
    shares = {user_id: base for user_id in ids}

    steps = int((amount - base * len(ids)) / quantum)
    for user_id in ids[:steps]:
        shares[user_id] += quantum

    # Amounts finer than the quantum leave a sub-quantum residue
    leftover = amount - sum(shares.values(), ZERO)
    if leftover:
        shares[ids[0]] += leftover

    return shares


class BalanceSheet:
    """
    Incremental balance accumulator.

    Applying events one by one (and reverting them on delete) always gives
    the same result as compute_balances over the full history.
    """

    def __init__(
        self,
        member_ids: Iterable[str] = (),
        quantum: Decimal = DEFAULT_QUANTUM,
    ):
        self._member_ids = sorted(set(member_ids))
        self._quantum = quantum
        self._balances: dict[str, Decimal] = {
            user_id: ZERO for user_id in self._member_ids
        }

    def _adjust(self, user_id: str, delta: Decimal) -> None:
        self._balances[user_id] = self._balances.get(user_id, ZERO) + delta

    def _others(self, user_id: str) -> list[str]:
        return [member for member in self._member_ids if member != user_id]

    def _spread(self, others: list[str], amount: Decimal, sign: int) -> None:
        for user_id, share in split_evenly(amount, others, self._quantum).items():
            if share:
                self._adjust(user_id, sign * share)

    @staticmethod
    def _check_amount(amount: Decimal, what: str, entity_id: object) -> None:
        if amount is None or amount <= 0:
            raise BalanceComputationError(
                f"{what} {entity_id} has a non-positive amount: {amount}"
            )

    # -------------------------------------------------------------------------
    # Advances
    # -------------------------------------------------------------------------

    def _advance(self, advance: Transaction, sign: int) -> None:
        if advance.type != TransactionType.ADVANCE:
            return

        payer = advance.payer_user_id
        target = advance.advance_to_user_id
        amount = advance.amount

        if not payer:
            raise BalanceComputationError(f"Advance {advance.id} has no payer")
        if target is not None and target == payer:
            raise BalanceComputationError(
                f"Advance {advance.id} is owed back by its own payer"
            )
        self._check_amount(amount, "Advance", advance.id)

        if target is not None:
            self._adjust(payer, sign * amount)
            self._adjust(target, -sign * amount)
            return

        others = self._others(payer)
        if not others:
            logger.debug(
                "household_advance_without_other_members",
                transaction_id=str(advance.id),
            )
            return

        self._adjust(payer, sign * amount)
        self._spread(others, amount, -sign)

    def apply_advance(self, advance: Transaction) -> None:
        """Add an advance. Non-advance transactions are ignored."""
        self._advance(advance, 1)

    def revert_advance(self, advance: Transaction) -> None:
        """Remove a previously applied advance (delete/edit)."""
        self._advance(advance, -1)

    # -------------------------------------------------------------------------
    # Settlements
    # -------------------------------------------------------------------------

    def _settlement(self, settlement: Settlement, sign: int) -> None:
        from_user_id = settlement.from_user_id
        to_user_id = settlement.to_user_id
        amount = settlement.amount

        if from_user_id is None and to_user_id is None:
            raise BalanceComputationError(
                f"Settlement {settlement.id} has no member side"
            )
        if from_user_id is not None and from_user_id == to_user_id:
            raise BalanceComputationError(
                f"Settlement {settlement.id} pays its own sender"
            )
        self._check_amount(amount, "Settlement", settlement.id)

        if from_user_id is not None and to_user_id is not None:
            self._adjust(from_user_id, sign * amount)
            self._adjust(to_user_id, -sign * amount)
            return

        concrete = from_user_id if from_user_id is not None else to_user_id
        others = self._others(concrete)
        if not others:
            logger.debug(
                "household_settlement_without_other_members",
                settlement_id=str(settlement.id),
            )
            return

        if from_user_id is not None:
            # Member paid the household
            self._adjust(from_user_id, sign * amount)
            self._spread(others, amount, -sign)
        else:
            # Household paid the member
            self._adjust(to_user_id, -sign * amount)
            self._spread(others, amount, sign)

    def apply_settlement(self, settlement: Settlement) -> None:
        self._settlement(settlement, 1)

    def revert_settlement(self, settlement: Settlement) -> None:
        """Undo a settlement."""
        self._settlement(settlement, -1)

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    def balance_of(self, user_id: str) -> Decimal:
        return self._balances.get(user_id, ZERO)

    def snapshot(
        self,
        members: Optional[Iterable[Member]] = None,
    ) -> list[HouseholdBalance]:
        """
        Current balances sorted by user_id.

        Members from the directory are labelled with their display name.
        Users that only appear in the history get an entry without a name.
        """
        names = {member.user_id: member.display_name for member in members or ()}
        user_ids = sorted(set(self._balances) | set(names))
        return [
            HouseholdBalance(
                user_id=user_id,
                user_name=names.get(user_id),
                balance_amount=self._balances.get(user_id, ZERO),
            )
            for user_id in user_ids
        ]

    @property
    def total(self) -> Decimal:
        """Sum of all balances (zero whenever money is conserved)."""
        return sum(self._balances.values(), ZERO)


def compute_balances(
    advances: Iterable[Transaction],
    settlements: Iterable[Settlement],
    members: Iterable[Member],
    quantum: Decimal = DEFAULT_QUANTUM,
) -> list[HouseholdBalance]:
    """
    Compute every member's balance from scratch.

    Args:
        advances: Advance transactions (others are ignored)
        settlements: All settlements of the household
        members: Directory entries; used for names and for household-wide splits
        quantum: Smallest money unit used when splitting

    Returns:
        One HouseholdBalance per known user, sorted by user_id. An empty
        history gives zero for every member (or [] with no members).

    Raises:
        BalanceComputationError: If the history breaks an invariant
    """
    members = list(members)
    sheet = BalanceSheet((member.user_id for member in members), quantum)

    for advance in advances:
        sheet.apply_advance(advance)
    for settlement in settlements:
        sheet.apply_settlement(settlement)

    return sheet.snapshot(members)
