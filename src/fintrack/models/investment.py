"""
Investment data models — buy/sell events and derived positions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from fintrack.models.ledger import LedgerDate, Record, generate_id


class InvestmentAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class AssetType(str, Enum):
    """Asset classification used for grouping the portfolio view."""

    STOCK = "STOCK"
    REAL_ESTATE = "REAL_ESTATE"
    CRYPTO = "CRYPTO"
    OTHER = "OTHER"


class Currency(str, Enum):
    """Supported transaction currencies.

    USD is the reference currency of the position engine; ILS is the
    household's local currency.
    """

    USD = "USD"
    ILS = "ILS"


CURRENCY_SYMBOLS = {
    Currency.USD: "$",
    Currency.ILS: "₪",
}

QUANTITY_DECIMALS = 8


class InvestmentTransaction(Record):
    """A single buy or sell of an instrument, priced in its own currency.

    ``fees`` is recorded for reference only and is not part of cost basis.
    """

    id: str = Field(default_factory=generate_id)
    type: InvestmentAction
    asset_type: AssetType = Field(default=AssetType.STOCK, alias="assetType")
    symbol: str = Field(min_length=1)
    name: str | None = None
    date: LedgerDate
    quantity: float = Field(gt=0)
    price_per_unit: float = Field(gt=0, alias="pricePerUnit")
    currency: Currency = Currency.USD
    fees: float | None = Field(default=None, ge=0)

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("quantity")
    @classmethod
    def round_quantity(cls, value: float) -> float:
        return round(value, QUANTITY_DECIMALS)

    @property
    def is_buy(self) -> bool:
        return self.type == InvestmentAction.BUY

    @property
    def notional(self) -> float:
        """Quantity times price, in the transaction's own currency."""
        return self.quantity * self.price_per_unit


@dataclass
class GroupedPosition:
    """Holdings in one symbol, folded from its transactions.

    Money fields are in the engine's reference currency. Derived on every
    read; never persisted.
    """

    symbol: str
    asset_type: AssetType
    name: str | None = None
    quantity: float = 0.0
    avg_cost: float = 0.0
    total_invested: float = 0.0
    current_price: float | None = None
    transactions: list[InvestmentTransaction] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.quantity > 0
