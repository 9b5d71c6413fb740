"""Shared test fixtures for strategy_calculator tests."""

from datetime import date, timedelta

import pytest

from strategy_calculator.config import Settings
from strategy_calculator.features.normal import bs_price
from strategy_calculator.models.chain import ContractType, OptionContract, OptionsChain

AS_OF = date(2026, 3, 2)  # a Monday


def make_contracts(
    underlying_price: float,
    expiration: date,
    strikes: list[float],
    iv: float = 0.25,
    as_of: date = AS_OF,
    half_spread: float = 0.05,
    types: tuple[str, ...] = ("call", "put"),
) -> list[OptionContract]:
    """Synthetic, internally consistent quotes priced off Black-Scholes."""
    years = max((expiration - as_of).days, 0) / 365.0
    contracts = []
    for strike in strikes:
        for opt_type in types:
            theo = bs_price(underlying_price, strike, years, iv, opt_type)
            bid = max(round(theo - half_spread, 2), 0.05)
            ask = round(bid + 2 * half_spread, 2)
            contracts.append(OptionContract(
                strike=float(strike),
                contract_type=ContractType(opt_type),
                expiration_date=expiration,
                bid=bid,
                ask=ask,
                last=round(theo, 2),
                volume=250,
                open_interest=1000,
                implied_volatility=iv,
            ))
    return contracts


def make_chain(
    symbol: str,
    underlying_price: float,
    expirations: list[date],
    strikes: list[float],
    iv: float = 0.25,
) -> OptionsChain:
    options = []
    for exp in expirations:
        options.extend(make_contracts(underlying_price, exp, strikes, iv=iv))
    return OptionsChain(symbol=symbol, underlying_price=underlying_price, options=options)


@pytest.fixture
def as_of() -> date:
    return AS_OF


@pytest.fixture
def settings() -> Settings:
    """Code defaults, independent of any user config on the machine."""
    return Settings()


@pytest.fixture
def expiration_30d() -> date:
    return AS_OF + timedelta(days=30)


@pytest.fixture
def aapl_chain(expiration_30d: date) -> OptionsChain:
    """AAPL at 175.50 with $1 strikes from 150 to 200, one expiration 30 days out."""
    return make_chain("AAPL", 175.50, [expiration_30d], list(range(150, 201)))


@pytest.fixture
def spy_chain(expiration_30d: date) -> OptionsChain:
    """SPY at 500 with $5 strikes from 400 to 600."""
    return make_chain("SPY", 500.0, [expiration_30d], list(range(400, 601, 5)), iv=0.18)


@pytest.fixture
def multi_expiry_chain() -> OptionsChain:
    """Underlying at 100 with a 14-day and a 60-day expiration."""
    return make_chain(
        "XYZ", 100.0,
        [AS_OF + timedelta(days=14), AS_OF + timedelta(days=60)],
        list(range(80, 121)),
    )
