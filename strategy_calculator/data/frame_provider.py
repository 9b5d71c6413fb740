"""Provider backed by a pandas DataFrame (or a CSV file) of option quotes."""

from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path

import pandas as pd

from strategy_calculator.data.exceptions import DataUnavailable
from strategy_calculator.data.provider import OptionsDataProvider
from strategy_calculator.models.chain import (
    ContractType,
    OptionContract,
    OptionsChain,
    StockQuote,
)

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["symbol", "underlying_price", "expiration", "strike", "option_type", "bid", "ask"]
_OPTIONAL_FLOAT = ["last", "implied_volatility", "delta", "gamma", "theta", "vega"]
_OPTIONAL_INT = ["volume", "open_interest"]


class FrameChainProvider(OptionsDataProvider):
    """Serve quotes and chains out of a flat quote table.

    Expected columns: symbol, underlying_price, expiration, strike, option_type
    ("call"/"put"), bid, ask, and optionally last, volume, open_interest,
    implied_volatility (decimal), delta, gamma, theta, vega.
    """

    def __init__(self, frame: pd.DataFrame, name: str = "frame") -> None:
        missing = [c for c in REQUIRED_COLUMNS if c not in frame.columns]
        if missing:
            raise ValueError(f"Quote table missing columns: {missing}")
        df = frame.copy()
        df["symbol"] = df["symbol"].astype(str).str.upper()
        df["expiration"] = pd.to_datetime(df["expiration"]).dt.date
        df["option_type"] = df["option_type"].astype(str).str.lower()
        self._df = df
        self._name = name

    @classmethod
    def from_csv(cls, path: str | Path) -> FrameChainProvider:
        return cls(pd.read_csv(path), name=f"csv:{Path(path).name}")

    @property
    def provider_name(self) -> str:
        return self._name

    @property
    def symbols(self) -> list[str]:
        return sorted(self._df["symbol"].unique())

    def _rows(self, symbol: str) -> pd.DataFrame:
        rows = self._df[self._df["symbol"] == symbol.upper()]
        if rows.empty:
            raise DataUnavailable(self._name, symbol, "symbol not in quote table")
        return rows

    def get_stock_quote(self, symbol: str) -> StockQuote:
        rows = self._rows(symbol)
        return StockQuote(
            symbol=symbol.upper(),
            current_price=float(rows["underlying_price"].iloc[0]),
            as_of=datetime.now(),
        )

    def get_options_chain_snapshot(self, symbol: str, expiration_date: date) -> list[OptionContract]:
        rows = self._rows(symbol)
        return _to_contracts(rows[rows["expiration"] == expiration_date])

    def get_options_chain(self, symbol: str) -> OptionsChain:
        rows = self._rows(symbol)
        return OptionsChain(
            symbol=symbol.upper(),
            underlying_price=float(rows["underlying_price"].iloc[0]),
            options=_to_contracts(rows),
            as_of=datetime.now(),
        )


def _to_contracts(rows: pd.DataFrame) -> list[OptionContract]:
    contracts: list[OptionContract] = []
    for rec in rows.to_dict("records"):
        kwargs = {
            "strike": float(rec["strike"]),
            "contract_type": ContractType(rec["option_type"]),
            "expiration_date": rec["expiration"],
            "bid": _num(rec.get("bid")) or 0.0,
            "ask": _num(rec.get("ask")) or 0.0,
        }
        for col in _OPTIONAL_FLOAT:
            kwargs[col] = _num(rec.get(col))
        for col in _OPTIONAL_INT:
            value = _num(rec.get(col))
            kwargs[col] = int(value) if value is not None else 0
        contracts.append(OptionContract(**kwargs))
    logger.debug("Loaded %d contracts", len(contracts))
    return contracts


def _num(value) -> float | None:
    if value is None or pd.isna(value):
        return None
    return float(value)
