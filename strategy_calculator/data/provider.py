"""Abstract market data interface consumed by the calculator.

Implement for each data source (broker API, vendor feed, file). The engine only
ever calls these three methods; everything else about the source is private.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from strategy_calculator.models.chain import OptionContract, OptionsChain, StockQuote


class OptionsDataProvider(ABC):
    """Source of stock quotes and option chain snapshots."""

    @abstractmethod
    def get_stock_quote(self, symbol: str) -> StockQuote:
        """Latest quote for the underlying."""
        ...

    @abstractmethod
    def get_options_chain_snapshot(
        self, symbol: str, expiration_date: date,
    ) -> list[OptionContract]:
        """All contracts for a single expiration. Empty list when none are listed."""
        ...

    @abstractmethod
    def get_options_chain(self, symbol: str) -> OptionsChain:
        """Every listed expiration, with the underlying price."""
        ...

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """'csv', 'tradier', 'polygon', etc."""
        ...
