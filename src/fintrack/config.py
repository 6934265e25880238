"""
FinTrack configuration management.

Supports loading from YAML files, environment variables, and keyword overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from fintrack.models.investment import Currency


class StorageConfig(BaseModel):
    """Where the key-value store lives."""

    backend: str = Field(default="json", description="Store backend: json or memory")
    path: str = Field(default="~/.fintrack/data.json", description="JSON store file")


class QuotesConfig(BaseModel):
    """Price-quote and exchange-rate feed settings."""

    api_key: str | None = Field(default=None, description="Finnhub API key (or set env var)")
    base_url: str = Field(default="https://finnhub.io/api/v1")
    forex_url: str = Field(default="https://api.exchangerate-api.com/v4/latest/USD")
    timeout: float = Field(default=15.0, gt=0, description="Request timeout in seconds")


class PortfolioConfig(BaseModel):
    """Position and valuation settings."""

    local_currency: Currency = Currency.ILS
    display_currency: Currency = Currency.USD
    exchange_rate: float = Field(
        default=3.65,
        gt=0,
        description="ILS per USD, used until a live rate is fetched",
    )
    benchmark: str = Field(default="SPY")
    investment_category: str = Field(
        default="Investment",
        description="Expense category that funds the investment budget",
    )
    strict_sells: bool = Field(
        default=False,
        description="Reject sells larger than the quantity held",
    )


class FinTrackConfig(BaseModel):
    """Root configuration for FinTrack."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    quotes: QuotesConfig = Field(default_factory=QuotesConfig)
    portfolio: PortfolioConfig = Field(default_factory=PortfolioConfig)

    recurring_marker: str = Field(
        default="recurring",
        description="Label appended to generated recurring descriptions",
    )

    @classmethod
    def load(cls, config_path: str | None = None, **overrides: Any) -> FinTrackConfig:
        """Load configuration from file, env vars, and overrides.

        Priority: overrides > env vars > config file > defaults.
        """
        data: dict[str, Any] = {}

        # 1. Load from YAML file if provided
        if config_path:
            path = Path(config_path)
            if path.exists():
                with open(path, encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}

        # 2. Override from environment variables
        env_path = os.environ.get("FINTRACK_DATA_PATH")
        env_key = os.environ.get("FINTRACK_FINNHUB_API_KEY") or os.environ.get("FINNHUB_API_KEY")
        env_benchmark = os.environ.get("FINTRACK_BENCHMARK")
        env_strict = os.environ.get("FINTRACK_STRICT_SELLS")

        if env_path:
            storage = data.get("storage", {})
            storage["path"] = env_path
            data["storage"] = storage

        if env_key:
            quotes = data.get("quotes", {})
            quotes["api_key"] = env_key
            data["quotes"] = quotes

        if env_benchmark or env_strict:
            portfolio = data.get("portfolio", {})
            if env_benchmark:
                portfolio["benchmark"] = env_benchmark.upper()
            if env_strict:
                portfolio["strict_sells"] = env_strict.lower() in ("1", "true", "yes")
            data["portfolio"] = portfolio

        # 3. Apply keyword overrides
        data.update(overrides)

        return cls.model_validate(data)
