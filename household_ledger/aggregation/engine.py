"""
Aggregation Engine

Pure reductions over a list of Transactions that the caller has already
narrowed to the period of interest.

DESIGN DECISION: The summary and the category breakdown deliberately
count advances differently.
- The summary asks "how much left the household's pocket?" Every advance
  counts as an outflow, targeted or not.
- The breakdown asks "what did the household spend on?" A targeted advance
  is a personal loan between members, not household spending, so it is
  left out unless the caller asks for it.

The two flags are independent.

Every function is order-independent: Decimal sums are exact and the
breakdown uses a total order (amount desc, then key).
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from household_ledger.models.category import (
    ExpenseCategory,
    TransactionType,
    resolve_category,
)
from household_ledger.models.ledger import Transaction
from household_ledger.models.results import (
    ZERO,
    CategoryBreakdown,
    CategoryBreakdownItem,
    MonthlyDifference,
    MonthlySummary,
)


logger = structlog.get_logger(__name__)


def _counts_in_summary(
    transaction: Transaction,
    include_targeted_advances: bool,
) -> bool:
    if transaction.type == TransactionType.ADVANCE and transaction.advance_to_user_id is not None:
        return include_targeted_advances
    return True


def _counts_in_breakdown(
    transaction: Transaction,
    include_targeted_advances: bool,
) -> bool:
    if transaction.type == TransactionType.EXPENSE:
        return True
    if transaction.type == TransactionType.ADVANCE:
        if transaction.advance_to_user_id is None:
            return True
        return include_targeted_advances
    return False


def compute_monthly_summary(
    transactions: Iterable[Transaction],
    include_targeted_advances: bool = True,
) -> MonthlySummary:
    """
    Sum income against everything else.

    Args:
        transactions: Transactions for one period
        include_targeted_advances: Count member-to-member advances as
            outflows (default True: money left someone's pocket either way)

    Returns:
        MonthlySummary with balance = income_total - expense_total
    """
    income_total = ZERO
    expense_total = ZERO

    for transaction in transactions:
        if not _counts_in_summary(transaction, include_targeted_advances):
            continue
        if transaction.type == TransactionType.INCOME:
            income_total += transaction.amount
        else:
            expense_total += transaction.amount

    return MonthlySummary(
        income_total=income_total,
        expense_total=expense_total,
        balance=income_total - expense_total,
    )


def compute_yearly_summary(
    transactions: Iterable[Transaction],
    include_targeted_advances: bool = True,
) -> MonthlySummary:
    """Same policy as the monthly summary, over a whole year."""
    return compute_monthly_summary(transactions, include_targeted_advances)


def compute_category_breakdown(
    transactions: Iterable[Transaction],
    include_targeted_advances: bool = False,
) -> CategoryBreakdown:
    """
    Total spending per expense category, largest first.

    Expenses and household-wide advances are always counted. Targeted
    advances only count when include_targeted_advances is set. Categories
    with nothing spent are omitted, and an all-zero result is the explicit
    empty breakdown (total 0, no items).
    """
    totals: dict[ExpenseCategory, Decimal] = defaultdict(lambda: ZERO)

    for transaction in transactions:
        if not _counts_in_breakdown(transaction, include_targeted_advances):
            continue
        if transaction.category is None:
            continue

        category = resolve_category(transaction.category)
        if not category.is_expense:
            logger.warning(
                "breakdown_category_skipped",
                transaction_id=str(transaction.id),
                category=str(transaction.category),
            )
            continue

        totals[category.key] += transaction.amount

    total = sum(totals.values(), ZERO)
    if total == ZERO:
        return CategoryBreakdown(total=ZERO, items=[])

    items = [
        CategoryBreakdownItem(
            key=key,
            category=resolve_category(key),
            amount=amount,
            ratio=float(amount / total),
        )
        for key, amount in totals.items()
        if amount != ZERO
    ]
    items.sort(key=lambda item: (-item.amount, item.key.value))

    return CategoryBreakdown(total=total, items=items)


def _month_of(transaction: Transaction) -> Optional[int]:
    """
    Month number from the ISO text of occurred_on (YYYY-MM-DD, chars 6-7).

    Returns None when the month cannot be read.
    """
    occurred_on = transaction.occurred_on
    text = occurred_on.isoformat() if hasattr(occurred_on, "isoformat") else str(occurred_on)
    try:
        month = int(text[5:7])
    except (TypeError, ValueError):
        return None
    if month < 1 or month > 12:
        return None
    return month


def compute_yearly_series(
    transactions: Iterable[Transaction],
) -> list[MonthlyDifference]:
    """
    Bucket a year's transactions by calendar month.

    Always returns 12 entries (January first). Each entry uses the summary
    policy, plus a running balance across the months. A record whose month
    cannot be read is skipped and logged; one bad row must not blank the
    whole chart.
    """
    income = [ZERO] * 12
    expense = [ZERO] * 12

    for transaction in transactions:
        month = _month_of(transaction)
        if month is None:
            logger.warning(
                "yearly_series_record_skipped",
                transaction_id=str(transaction.id),
                occurred_on=str(transaction.occurred_on),
            )
            continue

        if transaction.type == TransactionType.INCOME:
            income[month - 1] += transaction.amount
        else:
            expense[month - 1] += transaction.amount

    series = []
    running = ZERO
    for index in range(12):
        balance = income[index] - expense[index]
        running += balance
        series.append(MonthlyDifference(
            month=index + 1,
            income_total=income[index],
            expense_total=expense[index],
            balance=balance,
            cumulative_balance=running,
        ))

    return series
