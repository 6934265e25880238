"""
FinTrack — application state owner.

The FinTrack class loads every collection from the key-value store, runs the
recurring materializer at startup, and is the single place that writes back.
Each mutating operation builds a replacement collection, persists it, and
only then adopts it; a failed write leaves the previous state in place.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from fintrack import categories as cat_ops
from fintrack.config import FinTrackConfig
from fintrack.models.investment import (
    AssetType,
    GroupedPosition,
    InvestmentTransaction,
)
from fintrack.models.ledger import (
    CategoryData,
    RecurringDefinition,
    Transaction,
    TransactionType,
)
from fintrack.portfolio import (
    aggregate_positions,
    check_delete,
    check_save,
    group_by_asset_type,
)
from fintrack.quotes import QuoteClient, QuoteProvider
from fintrack.recurring import MaterializationResult, materialize_recurring
from fintrack.storage import (
    CATEGORIES_KEY,
    INVESTMENTS_KEY,
    RECURRING_KEY,
    TRANSACTIONS_KEY,
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
)
from fintrack.valuation import (
    InvestmentBudget,
    SeriesPoint,
    SeriesRequestTracker,
    TimeRange,
    ValuationSummary,
    build_return_series,
    investment_budget,
    summarize,
)

logger = logging.getLogger("fintrack")

M = TypeVar("M", bound=BaseModel)

FUNDS_DESCRIPTION = "Deposit to investments"


def _upsert(items: list[M], item: M, key: Callable[[M], str]) -> list[M]:
    """Replace the element with the same id, or append."""
    if any(key(existing) == key(item) for existing in items):
        return [item if key(existing) == key(item) else existing for existing in items]
    return [*items, item]


@dataclass
class FinTrack:
    """Top-level state owner for ledger, recurring, categories, and portfolio.

    Usage::

        from fintrack import FinTrack

        app = FinTrack.from_config("fintrack.yaml")
        result = await app.load()
        print(f"{result.added_count} recurring transactions added")
        positions = app.positions()
    """

    store: KeyValueStore
    config: FinTrackConfig = field(default_factory=FinTrackConfig)
    quotes: QuoteProvider | None = None

    transactions: list[Transaction] = field(default_factory=list)
    recurring: list[RecurringDefinition] = field(default_factory=list)
    categories: CategoryData = field(default_factory=cat_ops.default_categories)
    investments: list[InvestmentTransaction] = field(default_factory=list)
    prices: dict[str, float] = field(default_factory=dict)
    exchange_rate: float = 0.0

    _write_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)
    _series: SeriesRequestTracker = field(
        default_factory=SeriesRequestTracker, init=False, repr=False
    )
    # Stored records that failed validation, written back untouched.
    _unparsed: dict[str, list[Any]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.exchange_rate <= 0:
            self.exchange_rate = self.config.portfolio.exchange_rate

    @classmethod
    def from_config(cls, config_path: str | None = None, **overrides: Any) -> FinTrack:
        """Create a FinTrack instance from a config file or keyword arguments."""
        config = FinTrackConfig.load(config_path, **overrides)
        store: KeyValueStore
        if config.storage.backend == "memory":
            store = MemoryStore()
        else:
            store = JsonFileStore(config.storage.path)
        quotes = QuoteClient(
            config.quotes.api_key,
            base_url=config.quotes.base_url,
            forex_url=config.quotes.forex_url,
            timeout=config.quotes.timeout,
        )
        logger.info("FinTrack using %s store", store.name)
        return cls(store=store, config=config, quotes=quotes)

    async def close(self) -> None:
        if isinstance(self.quotes, QuoteClient):
            await self.quotes.close()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, today: date | None = None) -> MaterializationResult:
        """Load all collections and materialize due recurring transactions.

        Transactions and definitions are written back only when something
        was added.
        """
        today = today or date.today()

        transactions = await self._load_list(TRANSACTIONS_KEY, Transaction)
        recurring = await self._load_list(RECURRING_KEY, RecurringDefinition)
        self.categories = await self._load_categories()
        self.investments = await self._load_list(INVESTMENTS_KEY, InvestmentTransaction)

        result = materialize_recurring(
            transactions,
            recurring,
            today,
            marker=self.config.recurring_marker,
        )
        if result.added_count > 0:
            saved_tx = await self._persist(TRANSACTIONS_KEY, result.transactions)
            saved_rec = await self._persist(RECURRING_KEY, result.definitions)
            if not (saved_tx and saved_rec):
                logger.error("Recurring transactions were added but could not be saved")

        self.transactions = result.transactions
        self.recurring = result.definitions
        logger.info(
            "Loaded %d transactions, %d recurring, %d investments",
            len(self.transactions),
            len(self.recurring),
            len(self.investments),
        )
        return result

    async def _load_list(self, key: str, model: type[M]) -> list[M]:
        self._unparsed.pop(key, None)
        raw = await self.store.get(key)
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning("Ignoring %s: expected a list, got %s", key, type(raw).__name__)
            return []
        items: list[M] = []
        rejected: list[Any] = []
        for record in raw:
            try:
                items.append(model.model_validate(record))
            except ValidationError as e:
                logger.warning("Skipping invalid %s record: %s", key, e.errors()[0]["msg"])
                rejected.append(record)
        self._unparsed[key] = rejected
        return items

    async def _load_categories(self) -> CategoryData:
        raw = await self.store.get(CATEGORIES_KEY)
        if not raw:
            return cat_ops.default_categories()
        try:
            return CategoryData.model_validate(raw)
        except ValidationError:
            logger.warning("Stored categories are invalid; using defaults")
            return cat_ops.default_categories()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist(
        self,
        key: str,
        value: list[Any] | CategoryData | None,
        *,
        keep_unparsed: bool = True,
    ) -> bool:
        if isinstance(value, list):
            payload: Any = [item.to_record() for item in value]
            if keep_unparsed:
                payload.extend(self._unparsed.get(key, []))
        elif isinstance(value, CategoryData):
            payload = value.model_dump(mode="json")
        else:
            payload = value
        async with self._write_lock:
            ok = await self.store.set(key, payload)
        if not ok:
            logger.error("Failed to persist %s", key)
        return ok

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def save_transaction(self, tx: Transaction, *, validate_category: bool = True) -> bool:
        """Insert or replace a transaction.

        New transactions must use a category from the current list for
        their type; edits are not re-validated.

        Raises:
            ValueError: New transaction with an unknown category.
        """
        is_new = all(t.id != tx.id for t in self.transactions)
        if validate_category and is_new and tx.category not in self.categories.for_type(tx.type):
            raise ValueError(f"Unknown {tx.type.value.lower()} category: {tx.category}")

        updated = _upsert(self.transactions, tx, lambda t: t.id)
        if not await self._persist(TRANSACTIONS_KEY, updated):
            return False
        self.transactions = updated
        return True

    async def delete_transaction(self, tx_id: str) -> bool:
        updated = [t for t in self.transactions if t.id != tx_id]
        if len(updated) == len(self.transactions):
            logger.debug("No transaction %s to delete", tx_id)
            return False
        if not await self._persist(TRANSACTIONS_KEY, updated):
            return False
        self.transactions = updated
        return True

    async def clear_all(self) -> bool:
        """Erase every collection and restore default categories.

        Each collection is reset in memory only after its own write
        succeeds, so a partial failure leaves memory matching the store.
        Records that failed validation at load time are erased as well.
        """
        ok = True
        for key, attr in (
            (TRANSACTIONS_KEY, "transactions"),
            (RECURRING_KEY, "recurring"),
            (INVESTMENTS_KEY, "investments"),
        ):
            if await self._persist(key, [], keep_unparsed=False):
                self._unparsed.pop(key, None)
                setattr(self, attr, [])
            else:
                ok = False
        if not self.investments:
            self.prices = {}
        if not await self._update_categories(cat_ops.default_categories()):
            ok = False

        if ok:
            logger.info("All data cleared")
        else:
            logger.error("Data was only partially cleared")
        return ok

    # ------------------------------------------------------------------
    # Recurring definitions
    # ------------------------------------------------------------------

    async def save_recurring(self, definition: RecurringDefinition) -> bool:
        updated = _upsert(self.recurring, definition, lambda r: r.id)
        if not await self._persist(RECURRING_KEY, updated):
            return False
        self.recurring = updated
        return True

    async def delete_recurring(self, definition_id: str) -> bool:
        updated = [r for r in self.recurring if r.id != definition_id]
        if len(updated) == len(self.recurring):
            return False
        if not await self._persist(RECURRING_KEY, updated):
            return False
        self.recurring = updated
        return True

    async def toggle_recurring(self, definition_id: str) -> RecurringDefinition:
        """Flip ``active``; the last-processed marker is kept.

        Returns the definition as it now stands, which is unchanged when
        the write fails.

        Raises:
            KeyError: No definition with that id.
        """
        current = next((r for r in self.recurring if r.id == definition_id), None)
        if current is None:
            raise KeyError(definition_id)
        toggled = current.model_copy(update={"active": not current.active})
        if not await self.save_recurring(toggled):
            return current
        return toggled

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def _update_categories(self, updated: CategoryData) -> bool:
        if not await self._persist(CATEGORIES_KEY, updated):
            return False
        self.categories = updated
        return True

    async def add_category(self, type: TransactionType, name: str) -> bool:
        """Raises :class:`~fintrack.categories.DuplicateCategoryError` on duplicates."""
        return await self._update_categories(cat_ops.add_category(self.categories, type, name))

    async def remove_category(self, type: TransactionType, name: str) -> bool:
        return await self._update_categories(cat_ops.remove_category(self.categories, type, name))

    async def rename_category(self, type: TransactionType, old: str, new: str) -> bool:
        """Rename a category in place; transactions keep their stored name.

        Raises:
            KeyError: ``old`` is not in the list.
            DuplicateCategoryError: ``new`` already exists.
        """
        return await self._update_categories(
            cat_ops.rename_category(self.categories, type, old, new)
        )

    async def move_category(self, type: TransactionType, name: str, new_index: int) -> bool:
        return await self._update_categories(
            cat_ops.move_category(self.categories, type, name, new_index)
        )

    # ------------------------------------------------------------------
    # Investments
    # ------------------------------------------------------------------

    async def save_investment(self, investment: InvestmentTransaction) -> bool:
        """Insert or replace an investment event.

        Raises:
            OversellError: ``strict_sells`` is on and the resulting ledger
                sells more than it holds on some date.
        """
        if self.config.portfolio.strict_sells:
            check_save(self.investments, investment)
        updated = _upsert(self.investments, investment, lambda i: i.id)
        if not await self._persist(INVESTMENTS_KEY, updated):
            return False
        self.investments = updated
        return True

    async def delete_investment(self, investment_id: str) -> bool:
        """Remove an investment event.

        Raises:
            OversellError: ``strict_sells`` is on and removing a buy would
                leave a later sell uncovered.
        """
        updated = [i for i in self.investments if i.id != investment_id]
        if len(updated) == len(self.investments):
            return False
        if self.config.portfolio.strict_sells:
            check_delete(self.investments, investment_id)
        if not await self._persist(INVESTMENTS_KEY, updated):
            return False
        self.investments = updated
        return True

    async def add_funds(self, amount: float, on: date | None = None) -> Transaction:
        """Record money moved into the investment budget as an expense."""
        tx = Transaction(
            date=on or date.today(),
            amount=amount,
            type=TransactionType.EXPENSE,
            category=self.config.portfolio.investment_category,
            description=FUNDS_DESCRIPTION,
        )
        await self.save_transaction(tx, validate_category=False)
        return tx

    # ------------------------------------------------------------------
    # Portfolio
    # ------------------------------------------------------------------

    async def refresh_prices(self) -> dict[str, float]:
        """Fetch current prices for every stock symbol; keeps old prices on failure."""
        if self.quotes is None:
            return {}
        symbols = {i.symbol for i in self.investments if i.asset_type == AssetType.STOCK}
        results = await asyncio.gather(*(self.quotes.current_price(s) for s in sorted(symbols)))
        fresh = {s: p for s, p in zip(sorted(symbols), results) if p is not None}
        self.prices = {**self.prices, **fresh}
        logger.info("Refreshed %d of %d prices", len(fresh), len(symbols))
        return fresh

    async def refresh_exchange_rate(self) -> float:
        """Fetch the live rate; the current one is kept when the feed is down."""
        if self.quotes is not None:
            rate = await self.quotes.usd_to_local_rate(self.config.portfolio.local_currency.value)
            if rate:
                self.exchange_rate = rate
        return self.exchange_rate

    def positions(self) -> list[GroupedPosition]:
        return aggregate_positions(
            self.investments,
            self.exchange_rate,
            prices=self.prices,
        )

    def positions_by_type(self) -> dict[AssetType, list[GroupedPosition]]:
        return group_by_asset_type(self.positions())

    def valuation(self) -> ValuationSummary:
        return summarize(self.positions())

    def budget(self) -> InvestmentBudget:
        return investment_budget(
            self.transactions,
            self.investments,
            self.exchange_rate,
            self.config.portfolio.investment_category,
        )

    async def return_series(
        self,
        time_range: TimeRange = TimeRange.ONE_YEAR,
        benchmark: str | None = None,
        now: datetime | None = None,
    ) -> list[SeriesPoint] | None:
        """Portfolio vs benchmark series.

        Returns ``None`` when a newer request superseded this one before it
        finished, and ``[]`` when there is nothing to chart.
        """
        if self.quotes is None or not self.investments:
            self._series.begin()
            return []
        request = build_return_series(
            list(self.investments),
            self.quotes,
            benchmark=(benchmark or self.config.portfolio.benchmark).upper(),
            time_range=time_range,
            exchange_rate=self.exchange_rate,
            now=now or datetime.now().astimezone(),
        )
        return await self._series.run(request)
