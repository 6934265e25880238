"""
Ledger summaries — totals, monthly trends, and spending insights.

Inspired by the dashboard figures of typical personal finance apps:
period income/expense/balance, average month, a 12-month trend with a
projection for months that have not happened yet, and a category breakdown.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date

from fintrack.models.ledger import Transaction, TransactionType


@dataclass
class PeriodTotals:
    income: float = 0.0
    expense: float = 0.0

    @property
    def balance(self) -> float:
        return self.income - self.expense


@dataclass
class MonthBucket:
    """Income and expense of one calendar month."""

    month: int
    income: float = 0.0
    expense: float = 0.0
    projected_income: float = 0.0
    projected_expense: float = 0.0

    @property
    def name(self) -> str:
        return calendar.month_abbr[self.month]


@dataclass
class Insights:
    """Spending overview across the whole ledger."""

    avg_income: float
    avg_expense: float
    total_income: float
    total_expense: float
    top_expenses: list[Transaction] = field(default_factory=list)
    top_category: tuple[str, float] | None = None

    @property
    def savings(self) -> float:
        return self.total_income - self.total_expense

    @property
    def savings_rate(self) -> float:
        """Savings as a percentage of income; 0 without income."""
        if self.total_income <= 0:
            return 0.0
        return self.savings / self.total_income * 100


def filter_period(
    transactions: Iterable[Transaction],
    year: int,
    month: int | None = None,
) -> list[Transaction]:
    """Transactions in ``year``, optionally restricted to one month (1-12)."""
    return [
        t
        for t in transactions
        if t.date.year == year and (month is None or t.date.month == month)
    ]


def period_totals(transactions: Iterable[Transaction]) -> PeriodTotals:
    totals = PeriodTotals()
    for t in transactions:
        if t.type == TransactionType.INCOME:
            totals.income += t.amount
        else:
            totals.expense += t.amount
    return totals


def monthly_averages(transactions: Sequence[Transaction]) -> tuple[float, float]:
    """Average income and expense per distinct month present in the ledger."""
    if not transactions:
        return 0.0, 0.0
    months = {(t.date.year, t.date.month) for t in transactions}
    totals = period_totals(transactions)
    count = max(len(months), 1)
    return totals.income / count, totals.expense / count


def monthly_trend(transactions: Iterable[Transaction], year: int) -> list[MonthBucket]:
    """Twelve buckets with actual income and expense for ``year``."""
    buckets = [MonthBucket(month=m) for m in range(1, 13)]
    for t in filter_period(transactions, year):
        bucket = buckets[t.date.month - 1]
        if t.type == TransactionType.INCOME:
            bucket.income += t.amount
        else:
            bucket.expense += t.amount
    return buckets


def projection(
    transactions: Sequence[Transaction],
    year: int,
    today: date,
) -> list[MonthBucket]:
    """Trend for ``year`` with future months filled from monthly averages.

    Past years are all actuals; future years are all projection; in the
    current year months after ``today``'s month are projected.
    """
    avg_income, avg_expense = monthly_averages(transactions)
    buckets = monthly_trend(transactions, year)
    for bucket in buckets:
        future = year > today.year or (year == today.year and bucket.month > today.month)
        if future:
            bucket.income = bucket.expense = 0.0
            bucket.projected_income = avg_income
            bucket.projected_expense = avg_expense
    return buckets


def category_breakdown(
    transactions: Iterable[Transaction],
    type: TransactionType = TransactionType.EXPENSE,
) -> list[tuple[str, float]]:
    """Totals per category, largest first."""
    totals: dict[str, float] = defaultdict(float)
    for t in transactions:
        if t.type == type:
            totals[t.category] += t.amount
    return sorted(totals.items(), key=lambda kv: kv[1], reverse=True)


def insights(transactions: Sequence[Transaction], top_n: int = 5) -> Insights | None:
    """Overall averages, biggest expenses, and top spending category."""
    if not transactions:
        return None

    avg_income, avg_expense = monthly_averages(transactions)
    totals = period_totals(transactions)
    expenses = [t for t in transactions if t.is_expense]
    breakdown = category_breakdown(expenses)

    return Insights(
        avg_income=avg_income,
        avg_expense=avg_expense,
        total_income=totals.income,
        total_expense=totals.expense,
        top_expenses=sorted(expenses, key=lambda t: t.amount, reverse=True)[:top_n],
        top_category=breakdown[0] if breakdown else None,
    )
