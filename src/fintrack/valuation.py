"""
Valuation & returns — market value, unrealized return, and return history.

Point-in-time figures are computed from aggregated positions. The historical
series replays the investment ledger against candle closes fetched from a
:class:`~fintrack.quotes.QuoteProvider` and compares it with a benchmark.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

from fintrack.models.investment import (
    CURRENCY_SYMBOLS,
    AssetType,
    Currency,
    GroupedPosition,
    InvestmentAction,
    InvestmentTransaction,
)
from fintrack.portfolio import holdings_at, to_reference

if TYPE_CHECKING:
    from fintrack.models.ledger import Transaction
    from fintrack.quotes import PriceSeries, QuoteProvider

logger = logging.getLogger("fintrack.valuation")

T = TypeVar("T")

_DAY = 86400


# ---------------------------------------------------------------------------
# Point-in-time valuation
# ---------------------------------------------------------------------------


def market_value(position: GroupedPosition) -> float:
    """Quantity times current price, falling back to average cost."""
    price = position.current_price if position.current_price else position.avg_cost
    return position.quantity * price


def cost_basis(position: GroupedPosition) -> float:
    return position.quantity * position.avg_cost


def unrealized_return(position: GroupedPosition) -> float:
    return market_value(position) - cost_basis(position)


def return_pct(position: GroupedPosition) -> float:
    """Unrealized return as a percentage of cost basis; 0 when basis is 0."""
    basis = cost_basis(position)
    if basis == 0:
        return 0.0
    return unrealized_return(position) / basis * 100


@dataclass
class ValuationSummary:
    """Totals over a set of positions."""

    market_value: float = 0.0
    cost_basis: float = 0.0

    @property
    def unrealized_return(self) -> float:
        return self.market_value - self.cost_basis

    @property
    def return_pct(self) -> float:
        if self.cost_basis <= 0:
            return 0.0
        return self.unrealized_return / self.cost_basis * 100


def summarize(positions: Iterable[GroupedPosition]) -> ValuationSummary:
    summary = ValuationSummary()
    for position in positions:
        summary.market_value += market_value(position)
        summary.cost_basis += cost_basis(position)
    return summary


@dataclass
class InvestmentBudget:
    """Money set aside for investing versus money actually invested.

    All amounts are in the local currency.
    """

    allocated: float
    invested: float

    @property
    def available(self) -> float:
        return self.allocated - self.invested


def investment_budget(
    transactions: Iterable[Transaction],
    investments: Iterable[InvestmentTransaction],
    exchange_rate: float,
    category: str,
) -> InvestmentBudget:
    """Compare deposits into ``category`` with the net notional invested."""
    allocated = sum(t.amount for t in transactions if t.is_expense and t.category == category)

    invested = 0.0
    for inv in investments:
        local = to_reference(inv.notional, inv.currency, exchange_rate, reference=Currency.ILS)
        invested += local if inv.type == InvestmentAction.BUY else -local

    return InvestmentBudget(allocated=allocated, invested=invested)


def format_money(amount_usd: float, display: Currency, exchange_rate: float) -> str:
    """Render a USD amount in the display currency, e.g. ``$1,234.50``."""
    amount = amount_usd if display == Currency.USD else amount_usd * exchange_rate
    sign = "-" if amount < 0 else ""
    return f"{sign}{CURRENCY_SYMBOLS[display]}{abs(amount):,.2f}"


# ---------------------------------------------------------------------------
# Historical series
# ---------------------------------------------------------------------------


class TimeRange(str, Enum):
    """Chart lookback windows."""

    ONE_DAY = "1D"
    FIVE_DAYS = "5D"
    ONE_MONTH = "1M"
    SIX_MONTHS = "6M"
    YEAR_TO_DATE = "YTD"
    ONE_YEAR = "1Y"
    THREE_YEARS = "3Y"
    FIVE_YEARS = "5Y"
    ALL = "ALL"

    def window(self, now: datetime) -> tuple[int, int, str]:
        """Return ``(from_epoch, to_epoch, resolution)`` ending at ``now``."""
        end = int(now.timestamp())
        if self == TimeRange.YEAR_TO_DATE:
            start_of_year = now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
            return int(start_of_year.timestamp()), end, "D"
        days, resolution = _WINDOWS[self]
        return end - days * _DAY, end, resolution


# ALL is capped at ten years.
_WINDOWS: dict[TimeRange, tuple[int, str]] = {
    TimeRange.ONE_DAY: (1, "60"),
    TimeRange.FIVE_DAYS: (5, "60"),
    TimeRange.ONE_MONTH: (30, "D"),
    TimeRange.SIX_MONTHS: (180, "D"),
    TimeRange.ONE_YEAR: (365, "D"),
    TimeRange.THREE_YEARS: (3 * 365, "D"),
    TimeRange.FIVE_YEARS: (5 * 365, "W"),
    TimeRange.ALL: (10 * 365, "W"),
}


@dataclass
class SeriesPoint:
    """One chart sample: portfolio versus benchmark at a timestamp."""

    timestamp: int
    date: date
    portfolio_value: float
    invested: float
    portfolio_return: float
    benchmark_return: float


def _timestamp_date(ts: int) -> date:
    return datetime.fromtimestamp(ts, tz=timezone.utc).date()


def _aligned_closes(series: PriceSeries | None, length: int) -> list[float]:
    """Closes re-indexed onto the benchmark's positions.

    Index ``i`` takes the series' ``i``-th close; gaps and a short series
    carry the last known close forward; positions before any close are 0.
    """
    aligned: list[float] = []
    last = 0.0
    closes = series.closes if series else []
    for i in range(length):
        if i < len(closes) and closes[i] > 0:
            last = closes[i]
        aligned.append(last)
    return aligned


def reconstruct_series(
    investments: Sequence[InvestmentTransaction],
    benchmark: PriceSeries,
    symbol_series: dict[str, PriceSeries | None],
    exchange_rate: float,
) -> list[SeriesPoint]:
    """Replay the ledger at every benchmark timestamp.

    Pure counterpart of :func:`build_return_series` once all series are
    fetched. Symbols missing from ``symbol_series`` (or mapped to ``None``)
    contribute zero value but their cost still counts as invested.
    """
    start = benchmark.first_close
    if not benchmark.timestamps or not start:
        return []

    n = len(benchmark.timestamps)
    aligned = {sym: _aligned_closes(series, n) for sym, series in symbol_series.items()}

    points: list[SeriesPoint] = []
    for i, ts in enumerate(benchmark.timestamps):
        day = _timestamp_date(ts)

        value = 0.0
        for sym, closes in aligned.items():
            qty = holdings_at(investments, sym, day)
            price = closes[i]
            if qty > 0 and price > 0:
                value += qty * price

        invested = 0.0
        for tx in investments:
            if tx.date > day:
                continue
            cost = to_reference(tx.notional, tx.currency, exchange_rate)
            invested += cost if tx.type == InvestmentAction.BUY else -cost

        portfolio_ret = (value - invested) / invested * 100 if invested > 0 else 0.0
        bench_close = benchmark.closes[i] if i < len(benchmark.closes) else start
        bench_ret = (bench_close - start) / start * 100

        points.append(
            SeriesPoint(
                timestamp=ts,
                date=day,
                portfolio_value=round(value, 2),
                invested=round(invested, 2),
                portfolio_return=round(portfolio_ret, 2),
                benchmark_return=round(bench_ret, 2),
            )
        )
    return points


async def build_return_series(
    investments: Sequence[InvestmentTransaction],
    quotes: QuoteProvider,
    *,
    benchmark: str,
    time_range: TimeRange,
    exchange_rate: float,
    now: datetime,
) -> list[SeriesPoint]:
    """Portfolio and benchmark percentage returns over ``time_range``.

    Candles for the benchmark and every held stock are fetched concurrently.
    A missing benchmark series aborts the computation with an empty result;
    a missing stock series only removes that stock's value.
    """
    from_ts, to_ts, resolution = time_range.window(now)
    symbols = list(
        dict.fromkeys(tx.symbol for tx in investments if tx.asset_type == AssetType.STOCK)
    )

    results = await asyncio.gather(
        quotes.historical_series(benchmark, resolution, from_ts, to_ts),
        *(quotes.historical_series(sym, resolution, from_ts, to_ts) for sym in symbols),
    )
    bench_series, stock_series = results[0], results[1:]

    if bench_series is None or not bench_series.timestamps:
        logger.warning("No benchmark data for %s (%s); skipping series", benchmark, time_range.value)
        return []

    missing = [sym for sym, s in zip(symbols, stock_series) if s is None]
    if missing:
        logger.info("No candles for %s; valued at zero", ", ".join(missing))

    return reconstruct_series(
        investments,
        bench_series,
        dict(zip(symbols, stock_series)),
        exchange_rate,
    )


class SeriesRequestTracker:
    """Discard results of superseded series requests.

    Every call to :meth:`run` supersedes the previous ones; when an older
    request finishes after a newer one started, its result is dropped.
    """

    def __init__(self) -> None:
        self._generation = 0

    def begin(self) -> int:
        self._generation += 1
        return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation

    async def run(self, request: Awaitable[T]) -> T | None:
        token = self.begin()
        result = await request
        if not self.is_current(token):
            logger.debug("Dropping stale series result (request %d)", token)
            return None
        return result
