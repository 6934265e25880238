"""
Position aggregation — fold buy/sell events into per-symbol holdings.

Positions are recomputed from the full investment ledger on every read. All
money figures are in USD, converted with a single explicit exchange rate
supplied by the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import date

from fintrack.models.investment import (
    AssetType,
    Currency,
    GroupedPosition,
    InvestmentAction,
    InvestmentTransaction,
)

logger = logging.getLogger("fintrack.portfolio")


class OversellError(ValueError):
    """Sells exceed the quantity held on some date."""

    def __init__(
        self,
        symbol: str,
        requested: float,
        held: float,
        on: date | None = None,
    ) -> None:
        when = f" on {on:%d-%m-%Y}" if on else ""
        super().__init__(
            f"Cannot sell {requested:g} {symbol}{when}: only {held:g} held"
        )
        self.symbol = symbol
        self.requested = requested
        self.held = held
        self.on = on


def to_reference(
    amount: float,
    currency: Currency,
    exchange_rate: float,
    reference: Currency = Currency.USD,
) -> float:
    """Convert ``amount`` into the reference currency.

    ``exchange_rate`` is local currency units per one USD.
    """
    if currency == reference:
        return amount
    if reference == Currency.USD:
        return amount / exchange_rate
    return amount * exchange_rate


def sort_chronologically(
    investments: Iterable[InvestmentTransaction],
) -> list[InvestmentTransaction]:
    """Ascending by date; same-day events keep their original order."""
    return sorted(investments, key=lambda tx: tx.date)


def aggregate_positions(
    investments: Sequence[InvestmentTransaction],
    exchange_rate: float,
    *,
    prices: Mapping[str, float] | None = None,
) -> list[GroupedPosition]:
    """Fold the investment ledger into one :class:`GroupedPosition` per symbol.

    Args:
        investments: Every investment event, in any order.
        exchange_rate: ILS per USD, applied to every conversion.
        prices: Known current USD prices keyed by symbol.

    Returns:
        Positions in order of each symbol's first event.
    """
    prices = prices or {}
    groups: dict[str, GroupedPosition] = {}

    for tx in sort_chronologically(investments):
        group = groups.get(tx.symbol)
        if group is None:
            group = GroupedPosition(symbol=tx.symbol, name=tx.name, asset_type=tx.asset_type)
            groups[tx.symbol] = group
        group.transactions.append(tx)

        price = to_reference(tx.price_per_unit, tx.currency, exchange_rate)

        if tx.type == InvestmentAction.BUY:
            total_qty = group.quantity + tx.quantity
            if total_qty != 0:
                group.avg_cost = (group.quantity * group.avg_cost + tx.quantity * price) / total_qty
            group.quantity = total_qty
            group.total_invested += tx.quantity * price
        else:
            group.total_invested -= tx.quantity * group.avg_cost
            group.quantity -= tx.quantity
            if group.quantity < 0:
                logger.warning(
                    "Position %s is negative (%g) after sell on %s",
                    tx.symbol,
                    group.quantity,
                    tx.date,
                )

    for group in groups.values():
        if group.symbol in prices:
            group.current_price = prices[group.symbol]

    return list(groups.values())


def group_by_asset_type(
    positions: Iterable[GroupedPosition],
) -> dict[AssetType, list[GroupedPosition]]:
    """Bucket positions by asset type; every type is present as a key."""
    by_type: dict[AssetType, list[GroupedPosition]] = {t: [] for t in AssetType}
    for position in positions:
        by_type[position.asset_type].append(position)
    return by_type


def holdings_at(
    investments: Iterable[InvestmentTransaction],
    symbol: str,
    on: date,
) -> float:
    """Quantity of ``symbol`` held at the end of ``on``."""
    qty = 0.0
    for tx in investments:
        if tx.symbol != symbol or tx.date > on:
            continue
        qty += tx.quantity if tx.type == InvestmentAction.BUY else -tx.quantity
    return qty


def check_holdings(
    investments: Iterable[InvestmentTransaction],
    symbols: Iterable[str],
) -> None:
    """Replay the ledger and reject any day that ends with negative holdings.

    Events are applied day by day in date order; within a day only the
    end-of-day quantity counts, so a same-day buy covers a same-day sell.

    Raises:
        OversellError: A day's sells exceed what was held that day.
    """
    ordered = sort_chronologically(investments)
    for symbol in dict.fromkeys(symbols):
        held = 0.0
        day: date | None = None
        bought = sold = 0.0
        for tx in ordered:
            if tx.symbol != symbol:
                continue
            if tx.date != day:
                _check_day(symbol, day, held + bought, sold)
                held += bought - sold
                day, bought, sold = tx.date, 0.0, 0.0
            if tx.type == InvestmentAction.BUY:
                bought += tx.quantity
            else:
                sold += tx.quantity
        _check_day(symbol, day, held + bought, sold)


def _check_day(symbol: str, day: date | None, available: float, sold: float) -> None:
    # Tolerate float noise at the 8-decimal quantity precision.
    if day is not None and sold - available > 1e-9:
        raise OversellError(symbol, sold, available, on=day)


def check_save(
    investments: Sequence[InvestmentTransaction],
    investment: InvestmentTransaction,
) -> None:
    """Reject inserting or replacing ``investment`` if it causes an oversell.

    The existing event with the same id is replaced before replaying, so
    edits are checked without their previous version. Both the new symbol
    and an edited-away symbol are replayed.

    Raises:
        OversellError: Some day in the resulting ledger ends negative.
    """
    previous = [tx for tx in investments if tx.id == investment.id]
    others = [tx for tx in investments if tx.id != investment.id]
    symbols = [investment.symbol, *(tx.symbol for tx in previous)]
    check_holdings([*others, investment], symbols)


def check_delete(
    investments: Sequence[InvestmentTransaction],
    investment_id: str,
) -> None:
    """Reject removing an event whose absence would cause an oversell.

    Raises:
        OversellError: Some day in the remaining ledger ends negative.
    """
    removed = [tx for tx in investments if tx.id == investment_id]
    remaining = [tx for tx in investments if tx.id != investment_id]
    check_holdings(remaining, (tx.symbol for tx in removed))
