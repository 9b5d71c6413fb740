"""Narrow a raw chain snapshot to strikes usable for a strategy."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field

from strategy_calculator.config import FilterSettings, get_settings
from strategy_calculator.models.chain import ContractType, OptionContract
from strategy_calculator.models.strategy import StrategyType

logger = logging.getLogger(__name__)


class FilteredChain(BaseModel):
    """Liquid, near-the-money candidates, split by side and sorted by strike."""

    model_config = ConfigDict(frozen=True)

    calls: list[OptionContract] = Field(default_factory=list)
    puts: list[OptionContract] = Field(default_factory=list)
    moneyness_band: float
    relaxed: bool = False
    dropped_illiquid: int = 0
    dropped_out_of_band: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.calls and not self.puts


def is_liquid(contract: OptionContract, require_two_sided_quote: bool = True) -> bool:
    """True when the contract has a usable (non-zero, non-crossed) quote."""
    if contract.bid > contract.ask:
        return False
    if require_two_sided_quote:
        return contract.bid > 0 and contract.ask > 0
    return contract.premium > 0


def in_moneyness_band(
    strike: float,
    underlying_price: float,
    band: float,
    absolute_floor: float,
) -> bool:
    if abs(strike - underlying_price) <= absolute_floor:
        return True
    return abs(strike / underlying_price - 1.0) <= band


def filter_contracts(
    contracts: list[OptionContract],
    underlying_price: float,
    strategy_type: StrategyType,
    settings: FilterSettings | None = None,
    relaxed: bool = False,
) -> FilteredChain:
    """Drop illiquid quotes and strikes outside the moneyness band.

    Never raises on empty input; an empty side is reported downstream as
    ``NoLiquidContracts`` by the strike selector.

    Args:
        contracts: Raw contracts, normally a single expiration.
        underlying_price: Current price of the underlying.
        strategy_type: Requested strategy (for logging only; the band is shared).
        settings: Filter settings (defaults to ``get_settings().filter``).
        relaxed: Use the wider relaxed band (the one-time retry).
    """
    cfg = settings or get_settings().filter
    band = cfg.relaxed_moneyness_band if relaxed else cfg.moneyness_band

    calls: list[OptionContract] = []
    puts: list[OptionContract] = []
    dropped_illiquid = 0
    dropped_band = 0

    for contract in contracts:
        if not is_liquid(contract, cfg.require_two_sided_quote):
            dropped_illiquid += 1
            continue
        if underlying_price <= 0 or not in_moneyness_band(
            contract.strike, underlying_price, band, cfg.absolute_floor,
        ):
            dropped_band += 1
            continue
        if contract.contract_type == ContractType.CALL:
            calls.append(contract)
        else:
            puts.append(contract)

    calls.sort(key=lambda c: c.strike)
    puts.sort(key=lambda c: c.strike)

    logger.debug(
        "%s filter (band=%.2f%s): %d calls, %d puts kept; %d illiquid, %d out of band",
        strategy_type, band, ", relaxed" if relaxed else "",
        len(calls), len(puts), dropped_illiquid, dropped_band,
    )

    return FilteredChain(
        calls=calls,
        puts=puts,
        moneyness_band=band,
        relaxed=relaxed,
        dropped_illiquid=dropped_illiquid,
        dropped_out_of_band=dropped_band,
    )
