"""Tests for ledger summaries."""

from datetime import date

import pytest

from fintrack.models.ledger import Transaction, TransactionType
from fintrack.summary import (
    category_breakdown,
    filter_period,
    insights,
    monthly_averages,
    monthly_trend,
    period_totals,
    projection,
)


def tx(on: date, amount: float, type: str = "EXPENSE", category: str = "Groceries") -> Transaction:
    return Transaction(date=on, amount=amount, type=type, category=category)


@pytest.fixture
def ledger() -> list[Transaction]:
    return [
        tx(date(2025, 1, 1), 10_000, "INCOME", "Salary"),
        tx(date(2025, 1, 5), 4_000, category="Housing"),
        tx(date(2025, 1, 9), 600),
        tx(date(2025, 2, 1), 10_000, "INCOME", "Salary"),
        tx(date(2025, 2, 5), 4_000, category="Housing"),
        tx(date(2025, 2, 20), 1_400, category="Dining"),
        tx(date(2024, 12, 24), 900, category="Gifts"),
    ]


class TestTotals:
    def test_filter_period(self, ledger) -> None:
        assert len(filter_period(ledger, 2025)) == 6
        assert len(filter_period(ledger, 2025, 2)) == 3
        assert filter_period(ledger, 2023) == []

    def test_period_totals(self, ledger) -> None:
        totals = period_totals(filter_period(ledger, 2025, 1))
        assert totals.income == 10_000
        assert totals.expense == 4_600
        assert totals.balance == 5_400

    def test_monthly_averages(self, ledger) -> None:
        income, expense = monthly_averages(ledger)
        assert income == pytest.approx(20_000 / 3)
        assert expense == pytest.approx(10_900 / 3)

    def test_monthly_averages_empty(self) -> None:
        assert monthly_averages([]) == (0.0, 0.0)


class TestTrend:
    def test_monthly_trend(self, ledger) -> None:
        buckets = monthly_trend(ledger, 2025)
        assert len(buckets) == 12
        assert buckets[0].name == "Jan"
        assert buckets[0].income == 10_000
        assert buckets[1].expense == 5_400
        assert buckets[11].expense == 0

    def test_projection_fills_future_months(self, ledger) -> None:
        buckets = projection(ledger, 2025, today=date(2025, 2, 20))
        assert buckets[1].income == 10_000
        assert buckets[1].projected_income == 0
        assert buckets[2].income == 0
        assert buckets[2].projected_income == pytest.approx(20_000 / 3)
        assert buckets[11].projected_expense == pytest.approx(10_900 / 3)

    def test_projection_past_year_is_actuals(self, ledger) -> None:
        buckets = projection(ledger, 2024, today=date(2025, 2, 20))
        assert buckets[11].expense == 900
        assert all(b.projected_expense == 0 for b in buckets)


class TestBreakdownAndInsights:
    def test_category_breakdown(self, ledger) -> None:
        assert category_breakdown(ledger) == [
            ("Housing", 8_000),
            ("Dining", 1_400),
            ("Gifts", 900),
            ("Groceries", 600),
        ]
        assert category_breakdown(ledger, TransactionType.INCOME) == [("Salary", 20_000)]

    def test_insights(self, ledger) -> None:
        result = insights(ledger, top_n=2)
        assert result is not None
        assert result.total_income == 20_000
        assert result.total_expense == 10_900
        assert result.savings == 9_100
        assert result.savings_rate == pytest.approx(45.5)
        assert [t.amount for t in result.top_expenses] == [4_000, 4_000]
        assert result.top_category == ("Housing", 8_000)

    def test_insights_without_income(self) -> None:
        result = insights([tx(date(2025, 1, 1), 50)])
        assert result.savings_rate == 0

    def test_insights_empty(self) -> None:
        assert insights([]) is None
