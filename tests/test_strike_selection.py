"""Tests for strike selection across strategy shapes."""

from datetime import timedelta

import pytest

from conftest import AS_OF, make_contracts
from strategy_calculator.config import FilterSettings, SelectionSettings
from strategy_calculator.data.exceptions import (
    InvalidStrategyInput,
    NoLiquidContracts,
    StrikeSelectionFailed,
)
from strategy_calculator.features.contract_filter import FilteredChain, filter_contracts
from strategy_calculator.features.strike_selection import (
    pick_strike,
    select_custom_strikes,
    select_strikes,
    strike_increment,
    tier_for,
)
from strategy_calculator.models.chain import ContractType, OptionContract
from strategy_calculator.models.request import (
    ButterflySpread,
    DiagonalCalendar,
    IronCondor,
    LongStraddle,
    LongStrangle,
    ShortStrangle,
)
from strategy_calculator.models.strategy import LegAction, SelectionRule, StrategyType

EXP = AS_OF + timedelta(days=30)


def _filtered(chain, expiration=EXP, relaxed=False) -> dict:
    contracts = chain.for_expiration(expiration)
    return {
        expiration: filter_contracts(
            contracts, chain.underlying_price, StrategyType.LONG_STRANGLE, FilterSettings(), relaxed=relaxed,
        )
    }


def _quote(strike: float, opt_type: str, bid: float, ask: float) -> OptionContract:
    return OptionContract(
        strike=strike, contract_type=ContractType(opt_type), expiration_date=EXP, bid=bid, ask=ask,
    )


class TestTiers:
    def test_strangle_tiers(self) -> None:
        tiers = SelectionSettings().strangle_tiers
        assert tier_for(tiers, 5).otm_pct == 0.03
        assert tier_for(tiers, 7).otm_pct == 0.03
        assert tier_for(tiers, 30).otm_pct == 0.05
        assert tier_for(tiers, 45).otm_pct == 0.08

    def test_strike_increment(self) -> None:
        contracts = make_contracts(100.0, EXP, [95, 97.5, 100, 105], types=("call",))
        assert strike_increment(contracts) == 2.5

    def test_strike_increment_needs_two_strikes(self) -> None:
        assert strike_increment(make_contracts(100.0, EXP, [100], types=("call",))) is None


class TestPickStrike:
    def test_at_or_below_target(self) -> None:
        puts = [_quote(k, "put", 1.0, 1.1) for k in (94, 95, 96)]
        picked = pick_strike(puts, 95.5, "below", "long_put")
        assert picked.contract.strike == 95
        assert picked.selection.rule == SelectionRule.AT_OR_BEYOND_TARGET

    def test_fallback_when_nothing_beyond_target(self) -> None:
        puts = [_quote(k, "put", 1.0, 1.1) for k in (97, 98, 99)]
        picked = pick_strike(puts, 95.0, "below", "long_put")
        assert picked.contract.strike == 97
        assert picked.selection.rule == SelectionRule.FALLBACK_NEAREST

    def test_admissible_filter_excludes_strikes(self) -> None:
        calls = [_quote(k, "call", 1.0, 1.1) for k in (100, 101)]
        assert pick_strike(calls, 100.0, "above", "long_call", admissible=lambda k: k > 200) is None

    def test_tie_prefers_tighter_spread(self) -> None:
        calls = [_quote(99, "call", 1.0, 1.4), _quote(101, "call", 1.0, 1.1)]
        picked = pick_strike(calls, 100.0, "nearest", "center")
        assert picked.contract.strike == 101
        assert picked.selection.tie_break == "tighter_spread"

    def test_tie_prefers_lower_put_strike(self) -> None:
        puts = [_quote(99, "put", 1.0, 1.1), _quote(101, "put", 1.0, 1.1)]
        picked = pick_strike(puts, 100.0, "nearest", "atm_put")
        assert picked.contract.strike == 99
        assert picked.selection.tie_break == "lower_strike"

    def test_tie_prefers_higher_call_strike(self) -> None:
        calls = [_quote(99, "call", 1.0, 1.1), _quote(101, "call", 1.0, 1.1)]
        picked = pick_strike(calls, 100.0, "nearest", "atm_call")
        assert picked.contract.strike == 101
        assert picked.selection.tie_break == "higher_strike"


class TestStrangleSelection:
    def test_aapl_round_trip_strikes(self, aapl_chain) -> None:
        request = LongStrangle(symbol="AAPL", expiration_date=EXP)
        sel = select_strikes(request, _filtered(aapl_chain), 175.50, AS_OF, SelectionSettings())
        put, call = sel.legs
        # 5% OTM at 30 DTE: put at or below 166.725, call at or above 184.275
        assert put.contract_type == ContractType.PUT and put.strike == 166
        assert call.contract_type == ContractType.CALL and call.strike == 185
        assert all(leg.action == LegAction.BUY for leg in sel.legs)
        assert sel.days_to_expiry == 30

    def test_trace_records_targets(self, aapl_chain) -> None:
        request = LongStrangle(symbol="AAPL", expiration_date=EXP)
        sel = select_strikes(request, _filtered(aapl_chain), 175.50, AS_OF, SelectionSettings())
        put_trace = sel.trace.for_role("long_put")
        assert put_trace.target_strike == pytest.approx(166.725)
        assert put_trace.chosen_strike == 166
        assert put_trace.rule == SelectionRule.AT_OR_BEYOND_TARGET
        assert sel.trace.moneyness_band == 0.20
        assert sel.trace.relaxed is False

    def test_short_strangle_sells_both(self, aapl_chain) -> None:
        request = ShortStrangle(symbol="AAPL", expiration_date=EXP)
        sel = select_strikes(request, _filtered(aapl_chain), 175.50, AS_OF, SelectionSettings())
        assert all(leg.action == LegAction.SELL for leg in sel.legs)

    @pytest.mark.parametrize("otm_pct", [0.001, 0.01, 0.05, 0.10])
    def test_minimum_strike_separation(self, aapl_chain, otm_pct) -> None:
        request = LongStrangle(symbol="AAPL", expiration_date=EXP, otm_pct=otm_pct)
        sel = select_strikes(request, _filtered(aapl_chain), 175.50, AS_OF, SelectionSettings())
        put, call = sel.legs
        assert abs(call.strike - put.strike) >= 1
        assert 175.50 - put.strike >= 1
        assert call.strike - 175.50 >= 1

    def test_empty_side_raises_no_liquid_contracts(self) -> None:
        request = LongStrangle(symbol="AAPL", expiration_date=EXP)
        empty = {EXP: FilteredChain(moneyness_band=0.2)}
        with pytest.raises(NoLiquidContracts) as exc:
            select_strikes(request, empty, 175.50, AS_OF, SelectionSettings())
        assert exc.value.symbol == "AAPL"
        assert exc.value.strategy_type == "long_strangle"

    def test_missing_expiration_rejected(self, aapl_chain) -> None:
        request = LongStrangle(symbol="AAPL")
        with pytest.raises(InvalidStrategyInput):
            select_strikes(request, _filtered(aapl_chain), 175.50, AS_OF, SelectionSettings())


class TestStraddleSelection:
    def test_same_atm_strike(self, aapl_chain) -> None:
        request = LongStraddle(symbol="AAPL", expiration_date=EXP)
        sel = select_strikes(request, _filtered(aapl_chain), 175.40, AS_OF, SelectionSettings())
        put, call = sel.legs
        assert put.strike == call.strike == 175
        assert sel.trace.for_role("long_call").rule == SelectionRule.NEAREST


class TestIronCondorSelection:
    def test_strike_ordering(self, spy_chain) -> None:
        request = IronCondor(symbol="SPY", expiration_date=EXP)
        sel = select_strikes(request, _filtered(spy_chain), 500.0, AS_OF, SelectionSettings())
        long_put, short_put, short_call, long_call = sel.legs
        assert long_put.strike < short_put.strike < 500.0 < short_call.strike < long_call.strike
        assert [leg.action for leg in sel.legs] == [
            LegAction.BUY, LegAction.SELL, LegAction.SELL, LegAction.BUY,
        ]

    def test_explicit_wing_width(self, spy_chain) -> None:
        request = IronCondor(symbol="SPY", expiration_date=EXP, short_otm_pct=0.02, wing_width=10)
        sel = select_strikes(request, _filtered(spy_chain), 500.0, AS_OF, SelectionSettings())
        strikes = [leg.strike for leg in sel.legs]
        assert strikes == [480, 490, 510, 520]


class TestButterflySelection:
    def test_wings_scale_with_dte(self, aapl_chain) -> None:
        request = ButterflySpread(symbol="AAPL", expiration_date=EXP)
        sel = select_strikes(request, _filtered(aapl_chain), 175.0, AS_OF, SelectionSettings())
        lower, center, upper = sel.legs
        # $1 strikes, 30 DTE -> 3 increments
        assert (lower.strike, center.strike, upper.strike) == (172, 175, 178)
        assert center.quantity == 2 and center.action == LegAction.SELL
        assert lower.action == upper.action == LegAction.BUY

    def test_requested_wing_width(self, aapl_chain) -> None:
        request = ButterflySpread(symbol="AAPL", expiration_date=EXP, wing_width=5)
        sel = select_strikes(request, _filtered(aapl_chain), 175.0, AS_OF, SelectionSettings())
        assert [leg.strike for leg in sel.legs] == [170, 175, 180]

    def test_single_strike_fails(self) -> None:
        contracts = make_contracts(100.0, EXP, [100], types=("call",))
        candidates = {EXP: filter_contracts(contracts, 100.0, StrategyType.BUTTERFLY_SPREAD, FilterSettings())}
        with pytest.raises(StrikeSelectionFailed):
            select_strikes(ButterflySpread(symbol="XYZ", expiration_date=EXP), candidates, 100.0, AS_OF)


class TestDiagonalSelection:
    def _candidates(self, chain) -> dict:
        return {
            exp: filter_contracts(chain.for_expiration(exp), chain.underlying_price,
                                  StrategyType.DIAGONAL_CALENDAR, FilterSettings())
            for exp in chain.expirations()
        }

    def test_front_and_back_expirations(self, multi_expiry_chain) -> None:
        request = DiagonalCalendar(symbol="XYZ")
        sel = select_strikes(request, self._candidates(multi_expiry_chain), 100.0, AS_OF, SelectionSettings())
        short, long = sel.legs
        assert short.action == LegAction.SELL and short.expiration_date == AS_OF + timedelta(days=14)
        assert long.action == LegAction.BUY and long.expiration_date == AS_OF + timedelta(days=60)
        assert short.strike == 105
        assert long.strike == 102
        assert sel.expiration_date == AS_OF + timedelta(days=14)
        assert sel.days_to_expiry == 14

    def test_single_expiration_fails(self, aapl_chain) -> None:
        request = DiagonalCalendar(symbol="AAPL")
        candidates = {
            EXP: filter_contracts(aapl_chain.options, 175.5, StrategyType.DIAGONAL_CALENDAR, FilterSettings()),
        }
        with pytest.raises(StrikeSelectionFailed):
            select_strikes(request, candidates, 175.5, AS_OF, SelectionSettings())

    def test_no_expirations_is_no_liquid_contracts(self) -> None:
        with pytest.raises(NoLiquidContracts):
            select_strikes(DiagonalCalendar(symbol="XYZ"), {}, 100.0, AS_OF, SelectionSettings())


class TestCustomStrikes:
    def test_butterfly_layout(self) -> None:
        contracts = make_contracts(100.0, EXP, [95, 100, 105])
        selection = select_custom_strikes("butterfly_spread", contracts, [95, 100, 105], EXP, AS_OF, symbol="XYZ")
        assert [leg.action for leg in selection.legs] == [LegAction.BUY, LegAction.SELL, LegAction.BUY]
        assert [leg.quantity for leg in selection.legs] == [1, 2, 1]
        assert [s.role for s in selection.trace.legs] == ["lower_wing", "center", "upper_wing"]
        assert selection.days_to_expiry == 30

    def test_last_trade_when_book_empty(self) -> None:
        contracts = [
            OptionContract(strike=95, contract_type=ContractType.PUT, expiration_date=EXP, last=0.80),
            OptionContract(strike=105, contract_type=ContractType.CALL, expiration_date=EXP, bid=0.90, ask=1.10),
        ]
        selection = select_custom_strikes("short_strangle", contracts, [95, 105], EXP, AS_OF)
        assert [leg.premium for leg in selection.legs] == [0.80, 1.00]

    def test_unquoted_strike_needs_premium(self) -> None:
        contracts = [
            OptionContract(strike=95, contract_type=ContractType.PUT, expiration_date=EXP),
            OptionContract(strike=105, contract_type=ContractType.CALL, expiration_date=EXP, bid=0.90, ask=1.10),
        ]
        with pytest.raises(StrikeSelectionFailed, match="no quote"):
            select_custom_strikes("long_strangle", contracts, [95, 105], EXP, AS_OF, symbol="XYZ")
        selection = select_custom_strikes(
            "long_strangle", contracts, [95, 105], EXP, AS_OF, symbol="XYZ", premiums=[0.75, 1.05],
        )
        assert [leg.premium for leg in selection.legs] == [0.75, 1.05]

    def test_wrong_expiration_not_listed(self) -> None:
        contracts = make_contracts(100.0, EXP, [95, 105])
        other = EXP + timedelta(days=7)
        with pytest.raises(StrikeSelectionFailed, match="not listed"):
            select_custom_strikes("long_strangle", contracts, [95, 105], other, AS_OF)

    def test_expired(self) -> None:
        contracts = make_contracts(100.0, AS_OF, [95, 105])
        with pytest.raises(InvalidStrategyInput):
            select_custom_strikes("long_strangle", contracts, [95, 105], AS_OF, AS_OF)
