"""
Settlement suggestions.

Greedy matching of the largest debtor against the largest creditor until
every balance is cleared. This produces at most n-1 payments for n members
with a non-zero balance.
"""

import heapq
from decimal import Decimal
from typing import Iterable, Optional

from household_ledger.models.ledger import SettlementDirection
from household_ledger.models.results import ZERO, HouseholdBalance, SettlementSuggestion


def suggest_settlements(
    balances: Iterable[HouseholdBalance],
) -> list[SettlementSuggestion]:
    """
    Propose payments that bring every balance back to zero.

    Ties are broken by user_id so the same balances always give the same
    suggestions. Balances that do not sum to zero leave the surplus
    unmatched.
    """
    # Max-heaps via negated amounts
    debtors: list[tuple[Decimal, str]] = []
    creditors: list[tuple[Decimal, str]] = []

    for balance in balances:
        amount = balance.balance_amount
        if amount < ZERO:
            heapq.heappush(debtors, (amount, balance.user_id))
        elif amount > ZERO:
            heapq.heappush(creditors, (-amount, balance.user_id))

    suggestions = []
    while debtors and creditors:
        debt, debtor = heapq.heappop(debtors)
        credit, creditor = heapq.heappop(creditors)

        payment = min(-debt, -credit)
        suggestions.append(SettlementSuggestion(
            from_user_id=debtor,
            to_user_id=creditor,
            amount=payment,
        ))

        debt += payment
        credit += payment
        if debt < ZERO:
            heapq.heappush(debtors, (debt, debtor))
        if credit < ZERO:
            heapq.heappush(creditors, (credit, creditor))

    return suggestions


def suggest_direction(
    balances: Iterable[HouseholdBalance],
    user_id: str,
) -> SettlementDirection:
    """Pay when the user owes money, otherwise receive."""
    balance: Optional[Decimal] = next(
        (entry.balance_amount for entry in balances if entry.user_id == user_id),
        None,
    )
    if balance is not None and balance < ZERO:
        return SettlementDirection.PAY
    return SettlementDirection.RECEIVE
