"""
Recurring transactions — materialize due charges into the ledger.

Each active :class:`RecurringDefinition` produces at most one ledger entry per
calendar month. The definition's ``last_processed_date`` records the month
that was last materialized, which makes repeated runs within a month no-ops.

Short months: a definition whose nominal day does not exist in the current
month (e.g. the 31st in April) falls due on the month's last day and is
dated on it.

Example usage::

    result = materialize_recurring(transactions, definitions, today=date.today())
    if result.added_count:
        await store.set(TRANSACTIONS_KEY, [t.to_record() for t in result.transactions])
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date

from fintrack.dates import days_in_month, same_month
from fintrack.models.ledger import RecurringDefinition, Transaction, generate_id

logger = logging.getLogger("fintrack.recurring")

DEFAULT_MARKER = "recurring"


@dataclass
class MaterializationResult:
    """Output of one materializer run."""

    transactions: list[Transaction]
    definitions: list[RecurringDefinition]
    added: list[Transaction] = field(default_factory=list)

    @property
    def added_count(self) -> int:
        return len(self.added)

    @property
    def changed(self) -> bool:
        return bool(self.added)


def effective_day(definition: RecurringDefinition, year: int, month: int) -> int:
    """The day a definition falls on in a given month, clamped to its length."""
    return min(definition.day_of_month, days_in_month(year, month))


def is_due(definition: RecurringDefinition, today: date) -> bool:
    """Whether ``definition`` should produce a transaction for ``today``'s month."""
    if not definition.active:
        return False
    if today.day < effective_day(definition, today.year, today.month):
        return False
    last = definition.last_processed_date
    return last is None or not same_month(last, today)


def next_due_date(definition: RecurringDefinition, today: date) -> date | None:
    """Date of the next transaction this definition will generate.

    Returns ``None`` for inactive definitions.
    """
    if not definition.active:
        return None

    year, month = today.year, today.month
    already_done = definition.last_processed_date is not None and same_month(
        definition.last_processed_date, today
    )
    if already_done:
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return date(year, month, effective_day(definition, year, month))


def materialize_recurring(
    transactions: Sequence[Transaction],
    definitions: Sequence[RecurringDefinition],
    today: date,
    *,
    marker: str = DEFAULT_MARKER,
    id_factory: Callable[[], str] = generate_id,
) -> MaterializationResult:
    """Append every due recurring transaction for ``today``'s month.

    Args:
        transactions: Current ledger. Not modified.
        definitions: Current recurring definitions. Not modified.
        today: The calendar date to evaluate against.
        marker: Label appended to generated descriptions, as ``"(marker)"``.
        id_factory: Produces ids for generated transactions.

    Returns:
        A :class:`MaterializationResult` with the new ledger and definitions.
        When nothing was due both lists equal the inputs.
    """
    new_transactions = list(transactions)
    new_definitions: list[RecurringDefinition] = []
    added: list[Transaction] = []

    for definition in definitions:
        if not is_due(definition, today):
            new_definitions.append(definition)
            continue

        tx_date = date(
            today.year,
            today.month,
            effective_day(definition, today.year, today.month),
        )
        description = f"{definition.description} ({marker})".strip()
        tx = Transaction(
            id=id_factory(),
            date=tx_date,
            amount=definition.amount,
            type=definition.type,
            category=definition.category,
            description=description,
            is_recurring=True,
        )
        new_transactions.append(tx)
        added.append(tx)
        new_definitions.append(
            definition.model_copy(update={"last_processed_date": tx_date})
        )
        logger.debug(
            "Materialized recurring %s on %s (%s %.2f)",
            definition.id,
            tx_date,
            definition.category,
            definition.amount,
        )

    if added:
        logger.info("Added %d recurring transaction(s) for %s", len(added), today.strftime("%Y-%m"))

    return MaterializationResult(
        transactions=new_transactions,
        definitions=new_definitions,
        added=added,
    )
