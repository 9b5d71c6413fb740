"""Tests for liquidity and moneyness filtering."""

from datetime import date, timedelta

from conftest import AS_OF, make_contracts
from strategy_calculator.config import FilterSettings
from strategy_calculator.features.contract_filter import filter_contracts, in_moneyness_band, is_liquid
from strategy_calculator.models.chain import ContractType, OptionContract
from strategy_calculator.models.strategy import StrategyType

EXP = AS_OF + timedelta(days=30)


def _contract(strike: float, bid: float, ask: float, opt_type: str = "call") -> OptionContract:
    return OptionContract(
        strike=strike, contract_type=ContractType(opt_type), expiration_date=EXP,
        bid=bid, ask=ask, implied_volatility=0.25,
    )


class TestIsLiquid:
    def test_two_sided_quote(self) -> None:
        assert is_liquid(_contract(100, 1.0, 1.1))

    def test_zero_bid_dropped(self) -> None:
        assert not is_liquid(_contract(100, 0.0, 0.5))

    def test_zero_ask_dropped(self) -> None:
        assert not is_liquid(_contract(100, 0.5, 0.0))

    def test_crossed_quote_dropped(self) -> None:
        assert not is_liquid(_contract(100, 1.2, 1.0))

    def test_one_sided_allowed_when_configured(self) -> None:
        assert is_liquid(_contract(100, 0.0, 0.5), require_two_sided_quote=False)


class TestMoneynessBand:
    def test_inside_relative_band(self) -> None:
        assert in_moneyness_band(115, 100, band=0.20, absolute_floor=5)

    def test_outside_relative_band(self) -> None:
        assert not in_moneyness_band(125, 100, band=0.20, absolute_floor=5)

    def test_absolute_floor_rescues_low_priced_underlying(self) -> None:
        # 20% of $10 is $2, but strikes within $5 are always kept
        assert in_moneyness_band(14, 10, band=0.20, absolute_floor=5)
        assert not in_moneyness_band(16, 10, band=0.20, absolute_floor=5)


class TestFilterContracts:
    def test_empty_input_returns_empty(self) -> None:
        result = filter_contracts([], 100.0, StrategyType.LONG_STRANGLE, FilterSettings())
        assert result.calls == []
        assert result.puts == []
        assert result.is_empty

    def test_splits_and_sorts_by_side(self) -> None:
        contracts = make_contracts(100.0, EXP, [105, 95, 100])
        result = filter_contracts(contracts, 100.0, StrategyType.LONG_STRADDLE, FilterSettings())
        assert [c.strike for c in result.calls] == [95, 100, 105]
        assert [c.strike for c in result.puts] == [95, 100, 105]
        assert all(c.contract_type == ContractType.CALL for c in result.calls)

    def test_counts_dropped(self) -> None:
        contracts = [
            _contract(100, 1.0, 1.1),
            _contract(101, 0.0, 0.2),      # illiquid
            _contract(150, 0.1, 0.2),      # out of band
        ]
        result = filter_contracts(contracts, 100.0, StrategyType.LONG_STRANGLE, FilterSettings())
        assert [c.strike for c in result.calls] == [100]
        assert result.dropped_illiquid == 1
        assert result.dropped_out_of_band == 1

    def test_relaxed_band_widens(self) -> None:
        contracts = [_contract(70, 0.2, 0.3, "put")]
        strict = filter_contracts(contracts, 100.0, StrategyType.LONG_STRANGLE, FilterSettings())
        relaxed = filter_contracts(contracts, 100.0, StrategyType.LONG_STRANGLE, FilterSettings(), relaxed=True)
        assert strict.puts == []
        assert [c.strike for c in relaxed.puts] == [70]
        assert relaxed.relaxed is True
        assert relaxed.moneyness_band == 0.35

    def test_non_positive_price_keeps_nothing(self) -> None:
        contracts = make_contracts(100.0, EXP, [100])
        result = filter_contracts(contracts, 0.0, StrategyType.LONG_STRANGLE, FilterSettings())
        assert result.is_empty
