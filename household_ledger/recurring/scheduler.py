"""
Recurring expense scheduling.

Fixed templates are materialized into expense transactions once per month,
on (or after) their due day. Variable templates only yield reminders,
since their real amount is only known when the bill arrives.

A template counts as handled for a month once any transaction in that
month carries its recurring_expense_id, so running the generator twice
never double-books.
"""

import calendar
from datetime import date
from typing import Iterable
from uuid import UUID

import structlog

from household_ledger.models.category import TransactionType
from household_ledger.models.ledger import Transaction
from household_ledger.models.recurring import (
    RecurringExpense,
    RecurringExpenseType,
    VariableExpenseReminder,
)


logger = structlog.get_logger(__name__)


def due_date_for(template: RecurringExpense, year: int, month: int) -> date:
    """Due date in the given month; day 31 falls on the 30th in April, etc."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(template.day_of_month, last_day))


def _handled_templates(
    existing: Iterable[Transaction],
    target_date: date,
) -> set[UUID]:
    handled = set()
    for transaction in existing:
        if transaction.recurring_expense_id is None:
            continue
        occurred_on = transaction.occurred_on
        if (occurred_on.year, occurred_on.month) == (target_date.year, target_date.month):
            handled.add(transaction.recurring_expense_id)
    return handled


def _due_templates(
    templates: Iterable[RecurringExpense],
    expense_type: RecurringExpenseType,
    target_date: date,
    existing: Iterable[Transaction],
) -> list[tuple[RecurringExpense, date]]:
    handled = _handled_templates(existing, target_date)
    due = []
    for template in templates:
        if not template.is_active or template.expense_type != expense_type:
            continue
        if template.id in handled:
            continue
        due_on = due_date_for(template, target_date.year, target_date.month)
        if due_on > target_date:
            continue
        due.append((template, due_on))
    return due


def materialize_fixed_expenses(
    templates: Iterable[RecurringExpense],
    target_date: date,
    existing: Iterable[Transaction],
    created_by: str,
) -> list[Transaction]:
    """
    Create this month's expense transactions for fixed templates.

    Args:
        templates: Recurring expense templates of one household
        target_date: Generate everything due up to and including this day
        existing: Transactions already recorded in the target month
        created_by: User id recorded as the creator

    Returns:
        New (unsaved) expense transactions, one per due template
    """
    transactions = []
    for template, due_on in _due_templates(
        templates, RecurringExpenseType.FIXED, target_date, existing
    ):
        transactions.append(Transaction(
            household_id=template.household_id,
            type=TransactionType.EXPENSE,
            amount=template.amount,
            occurred_on=due_on,
            category=template.category,
            note=template.note,
            payer_user_id=template.payer_user_id,
            recurring_expense_id=template.id,
            created_by=created_by,
        ))

    logger.info(
        "fixed_expenses_materialized",
        target_date=target_date.isoformat(),
        count=len(transactions),
    )
    return transactions


def variable_expense_reminders(
    templates: Iterable[RecurringExpense],
    target_date: date,
    existing: Iterable[Transaction],
) -> list[VariableExpenseReminder]:
    """Reminders for variable templates that are due but not entered yet."""
    return [
        VariableExpenseReminder(
            recurring_expense_id=template.id,
            amount=template.amount,
            day_of_month=template.day_of_month,
            due_on=due_on,
            category=template.category,
            note=template.note,
            payer_user_id=template.payer_user_id,
        )
        for template, due_on in _due_templates(
            templates, RecurringExpenseType.VARIABLE, target_date, existing
        )
    ]
