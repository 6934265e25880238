"""Tests for the recurring transaction materializer."""

from datetime import date
from itertools import count

import pytest

from fintrack.models.ledger import RecurringDefinition, Transaction, TransactionType
from fintrack.recurring import (
    effective_day,
    is_due,
    materialize_recurring,
    next_due_date,
)


def make_definition(**overrides) -> RecurringDefinition:
    data = {
        "id": "rent",
        "type": TransactionType.EXPENSE,
        "category": "Housing",
        "description": "Rent",
        "amount": 4500.0,
        "day_of_month": 15,
        "active": True,
    }
    data.update(overrides)
    return RecurringDefinition(**data)


@pytest.fixture
def ids():
    counter = count(1)
    return lambda: f"gen-{next(counter)}"


@pytest.fixture
def ledger() -> list[Transaction]:
    return [
        Transaction(
            id="t1",
            date=date(2025, 2, 3),
            amount=80.0,
            type=TransactionType.EXPENSE,
            category="Groceries",
        )
    ]


class TestMaterialize:
    def test_first_run_after_day_of_month(self, ledger, ids) -> None:
        rent = make_definition()
        result = materialize_recurring(ledger, [rent], date(2025, 3, 20), id_factory=ids)

        assert result.added_count == 1
        assert len(result.transactions) == 2
        tx = result.transactions[-1]
        assert tx.id == "gen-1"
        assert tx.date == date(2025, 3, 15)
        assert tx.amount == 4500.0
        assert tx.type == TransactionType.EXPENSE
        assert tx.category == "Housing"
        assert tx.description == "Rent (recurring)"
        assert tx.is_recurring is True
        assert result.definitions[0].last_processed_date == date(2025, 3, 15)

    def test_inputs_not_mutated(self, ledger, ids) -> None:
        rent = make_definition()
        definitions = [rent]
        materialize_recurring(ledger, definitions, date(2025, 3, 20), id_factory=ids)
        assert len(ledger) == 1
        assert definitions[0].last_processed_date is None

    def test_idempotent_within_month(self, ledger, ids) -> None:
        first = materialize_recurring(ledger, [make_definition()], date(2025, 3, 20), id_factory=ids)
        second = materialize_recurring(
            first.transactions, first.definitions, date(2025, 3, 20), id_factory=ids
        )
        assert second.added_count == 0
        assert not second.changed
        assert second.transactions == first.transactions
        assert second.definitions == first.definitions

    def test_one_per_month_sequence(self, ids) -> None:
        txs: list[Transaction] = []
        defs = [make_definition(day_of_month=15)]

        r = materialize_recurring(txs, defs, date(2025, 5, 20), id_factory=ids)
        assert r.added_count == 1
        assert r.added[0].date == date(2025, 5, 15)
        assert r.definitions[0].last_processed_date == date(2025, 5, 15)

        r = materialize_recurring(r.transactions, r.definitions, date(2025, 5, 25), id_factory=ids)
        assert r.added_count == 0

        r = materialize_recurring(r.transactions, r.definitions, date(2025, 6, 10), id_factory=ids)
        assert r.added_count == 0

        r = materialize_recurring(r.transactions, r.definitions, date(2025, 6, 16), id_factory=ids)
        assert r.added_count == 1
        assert r.added[0].date == date(2025, 6, 15)
        assert len(r.transactions) == 2

    def test_before_day_of_month_not_due(self, ids) -> None:
        r = materialize_recurring([], [make_definition(day_of_month=15)], date(2025, 3, 14), id_factory=ids)
        assert r.added_count == 0
        assert r.definitions[0].last_processed_date is None

    def test_on_day_of_month_is_due(self, ids) -> None:
        r = materialize_recurring([], [make_definition(day_of_month=15)], date(2025, 3, 15), id_factory=ids)
        assert r.added_count == 1

    def test_inactive_never_materializes(self, ids) -> None:
        paused = make_definition(active=False)
        for today in (date(2025, 1, 31), date(2025, 2, 28), date(2026, 7, 15)):
            r = materialize_recurring([], [paused], today, id_factory=ids)
            assert r.added_count == 0
            assert r.definitions == [paused]

    def test_same_month_previous_year_is_due_again(self, ids) -> None:
        rent = make_definition(last_processed_date=date(2024, 3, 15))
        r = materialize_recurring([], [rent], date(2025, 3, 15), id_factory=ids)
        assert r.added_count == 1

    def test_multiple_definitions(self, ids) -> None:
        salary = make_definition(
            id="salary",
            type=TransactionType.INCOME,
            category="Salary",
            description="Paycheck",
            amount=15000,
            day_of_month=1,
        )
        gym = make_definition(id="gym", description="Gym", amount=200, day_of_month=28)
        rent = make_definition()
        r = materialize_recurring([], [salary, gym, rent], date(2025, 3, 20), id_factory=ids)
        assert [t.description for t in r.added] == ["Paycheck (recurring)", "Rent (recurring)"]
        assert [d.id for d in r.definitions] == ["salary", "gym", "rent"]
        assert r.definitions[1].last_processed_date is None

    def test_custom_marker(self, ids) -> None:
        r = materialize_recurring(
            [], [make_definition()], date(2025, 3, 20), marker="קבוע", id_factory=ids
        )
        assert r.added[0].description == "Rent (קבוע)"

    def test_empty_description(self, ids) -> None:
        r = materialize_recurring([], [make_definition(description="")], date(2025, 3, 20), id_factory=ids)
        assert r.added[0].description == "(recurring)"


class TestShortMonths:
    def test_day_31_clamped_in_april(self, ids) -> None:
        r = materialize_recurring([], [make_definition(day_of_month=31)], date(2025, 4, 30), id_factory=ids)
        assert r.added_count == 1
        assert r.added[0].date == date(2025, 4, 30)

    def test_day_30_in_february(self, ids) -> None:
        d = make_definition(day_of_month=30)
        assert materialize_recurring([], [d], date(2025, 2, 27), id_factory=ids).added_count == 0
        r = materialize_recurring([], [d], date(2025, 2, 28), id_factory=ids)
        assert r.added[0].date == date(2025, 2, 28)

    def test_leap_year(self) -> None:
        d = make_definition(day_of_month=31)
        assert effective_day(d, 2024, 2) == 29
        assert effective_day(d, 2025, 2) == 28
        assert effective_day(d, 2025, 1) == 31

    def test_clamped_month_then_full_month(self, ids) -> None:
        d = make_definition(day_of_month=31)
        r = materialize_recurring([], [d], date(2025, 4, 30), id_factory=ids)
        r = materialize_recurring(r.transactions, r.definitions, date(2025, 5, 30), id_factory=ids)
        assert r.added_count == 0
        r = materialize_recurring(r.transactions, r.definitions, date(2025, 5, 31), id_factory=ids)
        assert r.added[0].date == date(2025, 5, 31)


class TestDueHelpers:
    def test_is_due(self) -> None:
        d = make_definition(day_of_month=10, last_processed_date=date(2025, 2, 10))
        assert is_due(d, date(2025, 3, 10))
        assert not is_due(d, date(2025, 2, 28))
        assert not is_due(d, date(2025, 3, 9))

    def test_next_due_date(self) -> None:
        d = make_definition(day_of_month=15)
        assert next_due_date(d, date(2025, 3, 1)) == date(2025, 3, 15)

        done = make_definition(day_of_month=31, last_processed_date=date(2025, 1, 31))
        assert next_due_date(done, date(2025, 1, 31)) == date(2025, 2, 28)

        december = make_definition(day_of_month=5, last_processed_date=date(2025, 12, 5))
        assert next_due_date(december, date(2025, 12, 20)) == date(2026, 1, 5)

    def test_next_due_date_inactive(self) -> None:
        assert next_due_date(make_definition(active=False), date(2025, 3, 1)) is None
