"""Option chain models: quoted contracts, stock quotes, full chains."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ContractType(StrEnum):
    CALL = "call"
    PUT = "put"


class OptionContract(BaseModel):
    """One quoted option. Sourced externally, never mutated by the engine."""

    model_config = ConfigDict(frozen=True)

    strike: float
    contract_type: ContractType
    expiration_date: date
    bid: float = 0.0
    ask: float = 0.0
    last: float | None = None
    volume: int = 0
    open_interest: int = 0
    implied_volatility: float | None = Field(default=None, ge=0)  # annualized decimal
    delta: float | None = None
    gamma: float | None = None
    theta: float | None = None
    vega: float | None = None

    @property
    def mid(self) -> float:
        return (self.bid + self.ask) / 2

    @property
    def spread(self) -> float:
        return self.ask - self.bid

    @property
    def premium(self) -> float:
        """Mid price, or last trade when the book is empty."""
        mid = self.mid
        if mid > 0:
            return mid
        return self.last or 0.0

    def intrinsic_value(self, underlying_price: float) -> float:
        if self.contract_type == ContractType.CALL:
            return max(underlying_price - self.strike, 0.0)
        return max(self.strike - underlying_price, 0.0)

    def is_otm(self, underlying_price: float) -> bool:
        if self.contract_type == ContractType.CALL:
            return self.strike > underlying_price
        return self.strike < underlying_price


class StockQuote(BaseModel):
    symbol: str
    current_price: float
    as_of: datetime | None = None


class OptionsChain(BaseModel):
    """All listed contracts for an underlying, across expirations."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    underlying_price: float
    options: list[OptionContract] = Field(default_factory=list)
    as_of: datetime | None = None

    def expirations(self) -> list[date]:
        return sorted({c.expiration_date for c in self.options})

    def for_expiration(self, expiration: date) -> list[OptionContract]:
        return [c for c in self.options if c.expiration_date == expiration]
