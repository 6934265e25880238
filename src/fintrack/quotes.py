"""
Quote client — current prices, historical candles, and the USD/ILS rate.

Prices and candles come from the Finnhub API; the exchange rate from
exchangerate-api.com. The client never raises on network or API failures:
every operation logs the problem and returns ``None`` so callers can skip the
missing data.

Finnhub docs:
  https://finnhub.io/docs/api/quote
  https://finnhub.io/docs/api/stock-candles
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

logger = logging.getLogger("fintrack.quotes")

FINNHUB_BASE_URL = "https://finnhub.io/api/v1"
FOREX_URL = "https://api.exchangerate-api.com/v4/latest/USD"


@dataclass
class PriceSeries:
    """Historical closes for one symbol, oldest first."""

    symbol: str
    timestamps: list[int] = field(default_factory=list)
    closes: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.timestamps)

    @property
    def first_close(self) -> float | None:
        return self.closes[0] if self.closes else None


class QuoteProvider(Protocol):
    """What the valuation engine needs from a price source."""

    async def current_price(self, symbol: str) -> float | None: ...

    async def historical_series(
        self,
        symbol: str,
        resolution: str,
        from_ts: int,
        to_ts: int,
    ) -> PriceSeries | None: ...

    async def usd_to_local_rate(self, currency: str = "ILS") -> float | None: ...


class QuoteClient:
    """Async HTTP client for quotes and exchange rates.

    Usage::

        async with QuoteClient(api_key="...") as quotes:
            price = await quotes.current_price("AAPL")
            series = await quotes.historical_series("SPY", "D", start, end)
            rate = await quotes.usd_to_local_rate()

    Without an API key the Finnhub operations return ``None`` immediately.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str = FINNHUB_BASE_URL,
        forex_url: str = FOREX_URL,
        timeout: float = 15.0,
    ) -> None:
        self.api_key = api_key or ""
        self.base_url = base_url.rstrip("/")
        self.forex_url = forex_url
        self.timeout = timeout
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a reusable httpx client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def close(self) -> None:
        """Clean up HTTP client."""
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def __aenter__(self) -> QuoteClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def current_price(self, symbol: str) -> float | None:
        """Latest trade price for ``symbol``, or ``None``."""
        data = await self._finnhub_get("quote", {"symbol": symbol})
        if not isinstance(data, dict):
            return None
        price = data.get("c")
        if not isinstance(price, (int, float)) or price <= 0:
            # Finnhub answers unknown symbols with zeros.
            logger.debug("No quote for %s", symbol)
            return None
        return float(price)

    async def current_prices(self, symbols: Iterable[str]) -> dict[str, float]:
        """Fetch current prices concurrently; symbols without a quote are omitted."""
        unique = list(dict.fromkeys(symbols))
        results = await asyncio.gather(*(self.current_price(s) for s in unique))
        return {s: p for s, p in zip(unique, results) if p is not None}

    async def historical_series(
        self,
        symbol: str,
        resolution: str,
        from_ts: int,
        to_ts: int,
    ) -> PriceSeries | None:
        """Candle closes for ``symbol`` between two epoch seconds, or ``None``."""
        data = await self._finnhub_get(
            "stock/candle",
            {"symbol": symbol, "resolution": resolution, "from": from_ts, "to": to_ts},
        )
        if not isinstance(data, dict) or data.get("s") != "ok":
            return None
        try:
            timestamps = [int(t) for t in data.get("t", [])]
            closes = [float(c) for c in data.get("c", [])]
        except (TypeError, ValueError):
            logger.warning("Malformed candles for %s", symbol)
            return None
        return PriceSeries(symbol=symbol, timestamps=timestamps, closes=closes)

    # ------------------------------------------------------------------
    # Exchange rate
    # ------------------------------------------------------------------

    async def usd_to_local_rate(self, currency: str = "ILS") -> float | None:
        """How many units of ``currency`` one USD buys, or ``None``."""
        try:
            client = await self._get_client()
            resp = await client.get(self.forex_url)
            resp.raise_for_status()
            rate = resp.json()["rates"][currency]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.error("Error fetching exchange rate: %s", e)
            return None
        if not isinstance(rate, (int, float)) or rate <= 0:
            return None
        return float(rate)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _finnhub_get(self, endpoint: str, params: dict[str, Any]) -> Any:
        if not self.api_key:
            return None
        try:
            client = await self._get_client()
            resp = await client.get(
                f"{self.base_url}/{endpoint}",
                params={**params, "token": self.api_key},
            )
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Finnhub %s failed for %s: %s", endpoint, params.get("symbol"), e)
            return None
