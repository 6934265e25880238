"""
FinTrack CLI — command-line interface.

Usage:
    fintrack status
    fintrack add-transaction --type expense --amount 42.5 --category Groceries
    fintrack portfolio --refresh
    fintrack performance --range 1Y --benchmark SPY
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from fintrack import __version__

app = typer.Typer(
    name="fintrack",
    help="💰 FinTrack — personal finance and portfolio tracker",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
categories_app = typer.Typer(help="Manage income and expense categories", no_args_is_help=True)
app.add_typer(categories_app, name="categories")
console = Console()

_CONFIG_OPTION = typer.Option("fintrack.yaml", "--config", "-c", help="Path to config file")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold]FinTrack[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
) -> None:
    """💰 FinTrack — track spending, recurring charges, and investments."""
    logger = logging.getLogger("fintrack")
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    logger.setLevel(log_level.upper())
    logger.propagate = False


def _open(config: str):  # noqa: ANN202
    from fintrack.tracker import FinTrack

    config_path = config if Path(config).exists() else None
    return FinTrack.from_config(config_path)


def _parse_date_option(value: str | None) -> date:
    from fintrack.dates import parse_flexible

    if not value:
        return date.today()
    parsed = parse_flexible(value)
    if parsed is None:
        raise typer.BadParameter(f"Unrecognized date: {value}")
    return parsed


@app.command()
def status(
    config: str = _CONFIG_OPTION,
    today: str = typer.Option(None, "--today", help="Evaluate as of this date (DD-MM-YYYY)"),
) -> None:
    """Load data, apply due recurring transactions, and show this month."""
    from fintrack.summary import filter_period, period_totals

    as_of = _parse_date_option(today)

    async def _run():  # noqa: ANN202
        tracker = _open(config)
        try:
            result = await tracker.load(as_of)
        finally:
            await tracker.close()
        return tracker, result

    tracker, result = asyncio.run(_run())

    console.print(Panel.fit(
        f"[bold blue]💰 FinTrack[/bold blue] — {as_of.strftime('%B %Y')}",
        subtitle=f"v{__version__}",
    ))
    if result.added_count:
        console.print(f"[green]✓[/green] Added {result.added_count} recurring transaction(s)")
        for tx in result.added:
            console.print(f"  • {tx.description} — {tx.amount:,.2f} on {tx.date:%d-%m-%Y}")

    totals = period_totals(filter_period(tracker.transactions, as_of.year, as_of.month))
    table = Table(title="This Month", show_lines=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Income", f"{totals.income:,.2f}")
    table.add_row("Expenses", f"{totals.expense:,.2f}")
    table.add_row("Balance", f"{totals.balance:,.2f}")
    table.add_row("Transactions", str(len(tracker.transactions)))
    table.add_row("Recurring definitions", str(len(tracker.recurring)))
    table.add_row("Investment events", str(len(tracker.investments)))
    console.print(table)


@app.command("add-transaction")
def add_transaction(
    type: str = typer.Option(..., "--type", "-t", help="income or expense"),
    amount: float = typer.Option(..., "--amount", "-a", help="Positive amount"),
    category: str = typer.Option(..., "--category", help="Category label"),
    description: str = typer.Option("", "--description", "-d"),
    on: str = typer.Option(None, "--date", help="Transaction date (DD-MM-YYYY or YYYY-MM-DD)"),
    config: str = _CONFIG_OPTION,
) -> None:
    """Add a transaction to the ledger."""
    from pydantic import ValidationError

    from fintrack.models.ledger import Transaction, TransactionType

    try:
        tx_type = TransactionType(type.upper())
    except ValueError:
        raise typer.BadParameter("type must be income or expense")
    try:
        tx = Transaction(
            date=_parse_date_option(on),
            amount=amount,
            type=tx_type,
            category=category,
            description=description,
        )
    except ValidationError as e:
        console.print(f"[red]Error: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(1)

    async def _run() -> bool:
        tracker = _open(config)
        try:
            await tracker.load()
            return await tracker.save_transaction(tx)
        finally:
            await tracker.close()

    try:
        saved = asyncio.run(_run())
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if not saved:
        console.print("[red]Error: could not save the transaction[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Saved {tx_type.value.lower()} {tx.amount:,.2f} ({tx.category})")


@app.command()
def recurring(config: str = _CONFIG_OPTION) -> None:
    """List recurring definitions and when they next apply."""
    from fintrack.recurring import next_due_date

    async def _run():  # noqa: ANN202
        tracker = _open(config)
        try:
            await tracker.load()
        finally:
            await tracker.close()
        return tracker

    tracker = asyncio.run(_run())
    today = date.today()

    table = Table(title="Recurring Transactions")
    table.add_column("Description", style="bold")
    table.add_column("Type")
    table.add_column("Category")
    table.add_column("Amount", justify="right")
    table.add_column("Day", justify="right")
    table.add_column("Last processed")
    table.add_column("Next")
    for d in tracker.recurring:
        nxt = next_due_date(d, today)
        table.add_row(
            d.description or "—",
            d.type.value.lower(),
            d.category,
            f"{d.amount:,.2f}",
            str(d.day_of_month),
            f"{d.last_processed_date:%d-%m-%Y}" if d.last_processed_date else "—",
            f"{nxt:%d-%m-%Y}" if nxt else "[dim]inactive[/dim]",
        )
    console.print(table)


@categories_app.command("list")
def categories_list(config: str = _CONFIG_OPTION) -> None:
    """Show both category lists in display order."""

    async def _run():  # noqa: ANN202
        tracker = _open(config)
        try:
            await tracker.load()
        finally:
            await tracker.close()
        return tracker

    tracker = asyncio.run(_run())
    table = Table(title="Categories")
    table.add_column("#", justify="right")
    table.add_column("Income", style="green")
    table.add_column("Expense", style="red")
    income, expense = tracker.categories.income, tracker.categories.expense
    for i in range(max(len(income), len(expense))):
        table.add_row(
            str(i + 1),
            income[i] if i < len(income) else "",
            expense[i] if i < len(expense) else "",
        )
    console.print(table)


def _change_category(config: str, type: str, name: str, remove: bool) -> None:
    from fintrack.models.ledger import TransactionType

    try:
        tx_type = TransactionType(type.upper())
    except ValueError:
        raise typer.BadParameter("type must be income or expense")

    async def _run() -> bool:
        tracker = _open(config)
        try:
            await tracker.load()
            if remove:
                return await tracker.remove_category(tx_type, name)
            return await tracker.add_category(tx_type, name)
        finally:
            await tracker.close()

    try:
        saved = asyncio.run(_run())
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if not saved:
        console.print("[red]Error: could not save categories[/red]")
        raise typer.Exit(1)
    verb = "Removed" if remove else "Added"
    console.print(f"[green]✓[/green] {verb} {tx_type.value.lower()} category [bold]{name.strip()}[/bold]")


@categories_app.command("add")
def categories_add(
    name: str = typer.Argument(..., help="Category label"),
    type: str = typer.Option("expense", "--type", "-t", help="income or expense"),
    config: str = _CONFIG_OPTION,
) -> None:
    """Add a category."""
    _change_category(config, type, name, remove=False)


@categories_app.command("remove")
def categories_remove(
    name: str = typer.Argument(..., help="Category label"),
    type: str = typer.Option("expense", "--type", "-t", help="income or expense"),
    config: str = _CONFIG_OPTION,
) -> None:
    """Remove a category. Existing transactions keep their label."""
    _change_category(config, type, name, remove=True)


@categories_app.command("rename")
def categories_rename(
    old: str = typer.Argument(..., help="Current label"),
    new: str = typer.Argument(..., help="New label"),
    type: str = typer.Option("expense", "--type", "-t", help="income or expense"),
    config: str = _CONFIG_OPTION,
) -> None:
    """Rename a category, keeping its position. Existing transactions keep their label."""
    from fintrack.models.ledger import TransactionType

    try:
        tx_type = TransactionType(type.upper())
    except ValueError:
        raise typer.BadParameter("type must be income or expense")

    async def _run() -> bool:
        tracker = _open(config)
        try:
            await tracker.load()
            return await tracker.rename_category(tx_type, old, new)
        finally:
            await tracker.close()

    try:
        saved = asyncio.run(_run())
    except KeyError:
        console.print(f"[red]Error: no {tx_type.value.lower()} category named {old}[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    if not saved:
        console.print("[red]Error: could not save categories[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Renamed [bold]{old}[/bold] to [bold]{new.strip()}[/bold]")


@app.command()
def portfolio(
    config: str = _CONFIG_OPTION,
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Fetch live prices and rate"),
) -> None:
    """Show holdings grouped by asset type."""
    from fintrack.models.investment import AssetType
    from fintrack.valuation import (
        format_money,
        market_value,
        return_pct,
        summarize,
        unrealized_return,
    )

    async def _run():  # noqa: ANN202
        tracker = _open(config)
        try:
            await tracker.load()
            if refresh:
                await tracker.refresh_exchange_rate()
                await tracker.refresh_prices()
        finally:
            await tracker.close()
        return tracker

    with console.status("[bold green]Loading portfolio...[/bold green]"):
        tracker = asyncio.run(_run())

    display = tracker.config.portfolio.display_currency
    rate = tracker.exchange_rate

    def money(v: float) -> str:
        return format_money(v, display, rate)

    grouped = tracker.positions_by_type()
    if not any(grouped.values()):
        console.print("[dim]No investments recorded yet.[/dim]")
        return

    for asset_type in AssetType:
        positions = grouped[asset_type]
        if not positions:
            continue
        group = summarize(positions)
        table = Table(
            title=f"{asset_type.value.replace('_', ' ').title()} — {money(group.market_value)} "
            f"({group.return_pct:+.2f}%)"
        )
        table.add_column("Symbol", style="bold cyan")
        table.add_column("Quantity", justify="right")
        table.add_column("Avg cost", justify="right")
        table.add_column("Price", justify="right")
        table.add_column("Value", justify="right")
        table.add_column("Return", justify="right")
        for p in positions:
            ret = unrealized_return(p)
            color = "green" if ret >= 0 else "red"
            table.add_row(
                p.symbol,
                f"{p.quantity:,.8g}",
                money(p.avg_cost),
                money(p.current_price) if p.current_price else "-",
                money(market_value(p)),
                f"[{color}]{money(ret)} ({return_pct(p):.2f}%)[/{color}]",
            )
        console.print(table)

    budget = tracker.budget()
    console.print(
        f"Investment budget: allocated {budget.allocated:,.2f}, "
        f"invested {budget.invested:,.2f}, available {budget.available:,.2f}"
    )


@app.command()
def performance(
    config: str = _CONFIG_OPTION,
    time_range: str = typer.Option("1Y", "--range", help="1D, 5D, 1M, 6M, YTD, 1Y, 3Y, 5Y, ALL"),
    benchmark: str = typer.Option(None, "--benchmark", "-b", help="Benchmark symbol"),
) -> None:
    """Compare portfolio return with a benchmark over time."""
    from fintrack.valuation import TimeRange

    try:
        selected = TimeRange(time_range.upper())
    except ValueError:
        raise typer.BadParameter(f"Unknown range: {time_range}")

    async def _run():  # noqa: ANN202
        tracker = _open(config)
        try:
            await tracker.load()
            await tracker.refresh_exchange_rate()
            return await tracker.return_series(selected, benchmark)
        finally:
            await tracker.close()

    with console.status("[bold green]Fetching price history...[/bold green]"):
        points = asyncio.run(_run())

    if not points:
        console.print("[yellow]No chart data (missing API key, benchmark data, or investments).[/yellow]")
        raise typer.Exit(1)

    table = Table(title=f"Performance — {selected.value}")
    table.add_column("Date")
    table.add_column("Portfolio value", justify="right")
    table.add_column("Portfolio %", justify="right")
    table.add_column("Benchmark %", justify="right")
    step = max(len(points) // 20, 1)
    for point in points[::step]:
        table.add_row(
            point.date.strftime("%d-%m-%Y"),
            f"{point.portfolio_value:,.2f}",
            f"{point.portfolio_return:+.2f}%",
            f"{point.benchmark_return:+.2f}%",
        )
    console.print(table)


@app.command()
def summary(
    config: str = _CONFIG_OPTION,
    year: int = typer.Option(None, "--year", "-y", help="Year (default: current)"),
    month: int = typer.Option(None, "--month", "-m", min=1, max=12, help="Month 1-12"),
) -> None:
    """Monthly trend, category breakdown, and savings insights."""
    from fintrack.summary import category_breakdown, filter_period, insights, projection

    async def _run():  # noqa: ANN202
        tracker = _open(config)
        try:
            await tracker.load()
        finally:
            await tracker.close()
        return tracker

    tracker = asyncio.run(_run())
    today = date.today()
    year = year or today.year

    trend = Table(title=f"Monthly Trend — {year}")
    trend.add_column("Month", style="bold")
    trend.add_column("Income", justify="right", style="green")
    trend.add_column("Expense", justify="right", style="red")
    trend.add_column("Projected income", justify="right", style="dim")
    trend.add_column("Projected expense", justify="right", style="dim")
    for bucket in projection(tracker.transactions, year, today):
        trend.add_row(
            bucket.name,
            f"{bucket.income:,.2f}",
            f"{bucket.expense:,.2f}",
            f"{bucket.projected_income:,.2f}" if bucket.projected_income else "",
            f"{bucket.projected_expense:,.2f}" if bucket.projected_expense else "",
        )
    console.print(trend)

    period = filter_period(tracker.transactions, year, month)
    breakdown = Table(title="Expenses by Category")
    breakdown.add_column("Category", style="bold")
    breakdown.add_column("Total", justify="right")
    for name, total in category_breakdown(period):
        breakdown.add_row(name, f"{total:,.2f}")
    console.print(breakdown)

    stats = insights(tracker.transactions)
    if stats:
        console.print(
            f"Average month: income {stats.avg_income:,.2f}, expense {stats.avg_expense:,.2f} — "
            f"savings rate {stats.savings_rate:.1f}%"
        )
        if stats.top_category:
            console.print(f"Top category: [bold]{stats.top_category[0]}[/bold] ({stats.top_category[1]:,.2f})")


if __name__ == "__main__":
    app()
