"""Strike selection: map a strategy request onto concrete listed strikes.

Pure functions: accepts filtered candidates per expiration and returns the
chosen legs together with a ``SelectionTrace`` describing every decision.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from typing import assert_never

import numpy as np
from pydantic import BaseModel, ConfigDict

from strategy_calculator.config import DteTier, SelectionSettings, get_settings
from strategy_calculator.data.exceptions import (
    InvalidStrategyInput,
    NoLiquidContracts,
    StrikeSelectionFailed,
)
from strategy_calculator.features.contract_filter import FilteredChain
from strategy_calculator.models.chain import ContractType, OptionContract
from strategy_calculator.models.request import (
    ButterflySpread,
    DiagonalCalendar,
    IronCondor,
    LongStraddle,
    LongStrangle,
    ShortStraddle,
    ShortStrangle,
    StrategyRequest,
)
from strategy_calculator.models.strategy import (
    LegAction,
    LegSelection,
    SelectionRule,
    SelectionTrace,
    StrategyLeg,
    StrategyType,
)

logger = logging.getLogger(__name__)

_BELOW = "below"
_ABOVE = "above"
_NEAREST = "nearest"


class StrikeSelection(BaseModel):
    """Chosen legs plus the trace of how each strike was picked."""

    model_config = ConfigDict(frozen=True)

    legs: list[StrategyLeg]
    trace: SelectionTrace
    expiration_date: date        # front (or only) expiration
    days_to_expiry: int


class _Pick(BaseModel):
    contract: OptionContract
    selection: LegSelection


def tier_for(tiers: list[DteTier], days_to_expiry: int) -> DteTier:
    """First tier whose ``max_dte`` covers the DTE (None = open-ended)."""
    for tier in tiers:
        if tier.max_dte is None or days_to_expiry <= tier.max_dte:
            return tier
    return tiers[-1]


def strike_increment(contracts: list[OptionContract]) -> float | None:
    """Smallest spacing between listed strikes, or None with fewer than two."""
    strikes = np.unique([c.strike for c in contracts])
    if len(strikes) < 2:
        return None
    return float(np.diff(strikes).min())


def _candidate_key(contract: OptionContract, target: float) -> tuple[float, float, float]:
    # Closest first, then tighter spread, then lower put / higher call strike
    preference = contract.strike if contract.contract_type == ContractType.PUT else -contract.strike
    return (round(abs(contract.strike - target), 6), round(contract.spread, 6), preference)


def _closest(candidates: list[OptionContract], target: float) -> tuple[OptionContract, str | None]:
    ranked = sorted(candidates, key=lambda c: _candidate_key(c, target))
    best = ranked[0]
    tie_break = None
    if len(ranked) > 1:
        first, second = _candidate_key(best, target), _candidate_key(ranked[1], target)
        if first[0] == second[0] and best.strike != ranked[1].strike:
            if first[1] != second[1]:
                tie_break = "tighter_spread"
            elif best.contract_type == ContractType.PUT:
                tie_break = "lower_strike"
            else:
                tie_break = "higher_strike"
    return best, tie_break


def pick_strike(
    candidates: list[OptionContract],
    target: float,
    direction: str,
    role: str,
    admissible: Callable[[float], bool] | None = None,
) -> _Pick | None:
    """Pick the nearest listed strike at or beyond ``target``.

    direction: "below" (at or under target), "above" (at or over target), or
    "nearest" (either side). Strikes failing ``admissible`` are never chosen.
    When nothing lies at or beyond the target, falls back to the nearest
    admissible strike. Returns None when no strike is admissible.
    """
    pool = [c for c in candidates if admissible is None or admissible(c.strike)]
    if not pool:
        return None

    if direction == _NEAREST:
        rule = SelectionRule.NEAREST
        contract, tie_break = _closest(pool, target)
    else:
        if direction == _BELOW:
            beyond = [c for c in pool if c.strike <= target + 1e-9]
        else:
            beyond = [c for c in pool if c.strike >= target - 1e-9]
        if beyond:
            rule = SelectionRule.AT_OR_BEYOND_TARGET
            contract, tie_break = _closest(beyond, target)
        else:
            rule = SelectionRule.FALLBACK_NEAREST
            contract, tie_break = _closest(pool, target)

    selection = LegSelection(
        role=role,
        contract_type=contract.contract_type,
        target_strike=round(target, 4),
        chosen_strike=contract.strike,
        rule=rule,
        candidates=len(pool),
        tie_break=tie_break,
        expiration_date=contract.expiration_date,
    )
    return _Pick(contract=contract, selection=selection)


def _leg(contract: OptionContract, action: LegAction, quantity: int = 1) -> StrategyLeg:
    return StrategyLeg(
        action=action,
        contract_type=contract.contract_type,
        strike=contract.strike,
        premium=round(contract.premium, 4),
        quantity=quantity,
        expiration_date=contract.expiration_date,
        implied_volatility=contract.implied_volatility,
        delta=contract.delta,
        gamma=contract.gamma,
        theta=contract.theta,
        vega=contract.vega,
    )


class _Context:
    """Per-call state shared by the per-strategy selectors."""

    def __init__(
        self,
        request: StrategyRequest,
        underlying_price: float,
        as_of: date,
        cfg: SelectionSettings,
    ) -> None:
        self.request = request
        self.price = underlying_price
        self.as_of = as_of
        self.cfg = cfg
        self.symbol = request.symbol
        self.strategy = request.strategy_type

    def require(self, filtered: FilteredChain | None, side: str) -> list[OptionContract]:
        contracts = None
        if filtered is not None:
            contracts = filtered.calls if side == "calls" else filtered.puts
        if not contracts:
            raise NoLiquidContracts(self.symbol, self.strategy, side)
        return contracts

    def pick(
        self,
        candidates: list[OptionContract],
        target: float,
        direction: str,
        role: str,
        admissible: Callable[[float], bool] | None = None,
    ) -> _Pick:
        picked = pick_strike(candidates, target, direction, role, admissible)
        if picked is None:
            raise StrikeSelectionFailed(
                self.symbol, self.strategy,
                f"no admissible strike for {role} (target {target:.2f})",
            )
        logger.debug(
            "%s %s %s: target %.2f -> %s (%s)",
            self.symbol, self.strategy, role, target,
            picked.contract.strike, picked.selection.rule,
        )
        return picked

    def put_otm(self, strike: float) -> bool:
        return strike <= self.price - self.cfg.min_strike_offset

    def call_otm(self, strike: float) -> bool:
        return strike >= self.price + self.cfg.min_strike_offset

    def days_to(self, expiration: date) -> int:
        return (expiration - self.as_of).days


def select_strikes(
    request: StrategyRequest,
    candidates: dict[date, FilteredChain],
    underlying_price: float,
    as_of: date,
    settings: SelectionSettings | None = None,
) -> StrikeSelection:
    """Choose concrete strikes for ``request`` from filtered candidates.

    Args:
        request: One of the strategy request variants.
        candidates: Filtered chain per expiration. Single-expiration strategies
            read ``request.expiration_date``; diagonals pick front/back from the keys.
        underlying_price: Current price of the underlying.
        as_of: Valuation date for DTE.
        settings: Selection settings (defaults to ``get_settings().selection``).

    Raises:
        NoLiquidContracts: a required side has no candidates.
        StrikeSelectionFailed: candidates exist but none fits the structure.
        InvalidStrategyInput: a single-expiration request lacks an expiration.
    """
    ctx = _Context(request, underlying_price, as_of, settings or get_settings().selection)

    if isinstance(request, DiagonalCalendar):
        return _select_diagonal(ctx, request, candidates)

    if request.expiration_date is None:
        raise InvalidStrategyInput(f"{request.strategy_type} requires an expiration_date")
    filtered = candidates.get(request.expiration_date)

    if isinstance(request, (LongStrangle, ShortStrangle)):
        picks, legs = _select_strangle(ctx, request, filtered)
    elif isinstance(request, (LongStraddle, ShortStraddle)):
        picks, legs = _select_straddle(ctx, request, filtered)
    elif isinstance(request, IronCondor):
        picks, legs = _select_iron_condor(ctx, request, filtered)
    elif isinstance(request, ButterflySpread):
        picks, legs = _select_butterfly(ctx, request, filtered)
    else:
        assert_never(request)

    return StrikeSelection(
        legs=legs,
        trace=_trace(filtered, picks),
        expiration_date=request.expiration_date,
        days_to_expiry=ctx.days_to(request.expiration_date),
    )


def _trace(filtered: FilteredChain | None, picks: list[_Pick]) -> SelectionTrace:
    return SelectionTrace(
        moneyness_band=filtered.moneyness_band if filtered else 0.0,
        relaxed=filtered.relaxed if filtered else False,
        candidate_calls=len(filtered.calls) if filtered else 0,
        candidate_puts=len(filtered.puts) if filtered else 0,
        legs=[p.selection for p in picks],
    )


# --- Strangles / straddles ---


def _select_strangle(
    ctx: _Context,
    request: LongStrangle | ShortStrangle,
    filtered: FilteredChain | None,
) -> tuple[list[_Pick], list[StrategyLeg]]:
    puts = ctx.require(filtered, "puts")
    calls = ctx.require(filtered, "calls")
    dte = ctx.days_to(request.expiration_date)
    pct = request.otm_pct or tier_for(ctx.cfg.strangle_tiers, dte).otm_pct

    is_long = isinstance(request, LongStrangle)
    action = LegAction.BUY if is_long else LegAction.SELL
    prefix = "long" if is_long else "short"

    put = ctx.pick(puts, ctx.price * (1 - pct), _BELOW, f"{prefix}_put", ctx.put_otm)
    call = ctx.pick(calls, ctx.price * (1 + pct), _ABOVE, f"{prefix}_call", ctx.call_otm)
    return [put, call], [_leg(put.contract, action), _leg(call.contract, action)]


def _select_straddle(
    ctx: _Context,
    request: LongStraddle | ShortStraddle,
    filtered: FilteredChain | None,
) -> tuple[list[_Pick], list[StrategyLeg]]:
    puts = ctx.require(filtered, "puts")
    calls = ctx.require(filtered, "calls")
    put_by_strike = {p.strike: p for p in puts}
    paired_calls = [c for c in calls if c.strike in put_by_strike]

    is_long = isinstance(request, LongStraddle)
    action = LegAction.BUY if is_long else LegAction.SELL
    prefix = "long" if is_long else "short"

    call = ctx.pick(paired_calls, ctx.price, _NEAREST, f"{prefix}_call")
    put_contract = put_by_strike[call.contract.strike]
    put = _Pick(
        contract=put_contract,
        selection=call.selection.model_copy(update={
            "role": f"{prefix}_put",
            "contract_type": ContractType.PUT,
            "candidates": len(puts),
        }),
    )
    return [put, call], [_leg(put_contract, action), _leg(call.contract, action)]


# --- Iron condor ---


def _select_iron_condor(
    ctx: _Context,
    request: IronCondor,
    filtered: FilteredChain | None,
) -> tuple[list[_Pick], list[StrategyLeg]]:
    puts = ctx.require(filtered, "puts")
    calls = ctx.require(filtered, "calls")
    tier = tier_for(ctx.cfg.iron_condor_tiers, ctx.days_to(request.expiration_date))
    short_pct = request.short_otm_pct or tier.otm_pct
    if request.wing_width is not None:
        wing = request.wing_width
    else:
        wing = ctx.price * (request.wing_pct or tier.wing_pct)

    short_put = ctx.pick(puts, ctx.price * (1 - short_pct), _BELOW, "short_put", ctx.put_otm)
    short_call = ctx.pick(calls, ctx.price * (1 + short_pct), _ABOVE, "short_call", ctx.call_otm)
    sp, sc = short_put.contract.strike, short_call.contract.strike
    long_put = ctx.pick(puts, sp - wing, _BELOW, "long_put", lambda k: k < sp)
    long_call = ctx.pick(calls, sc + wing, _ABOVE, "long_call", lambda k: k > sc)

    picks = [long_put, short_put, short_call, long_call]
    legs = [
        _leg(long_put.contract, LegAction.BUY),
        _leg(short_put.contract, LegAction.SELL),
        _leg(short_call.contract, LegAction.SELL),
        _leg(long_call.contract, LegAction.BUY),
    ]
    return picks, legs


# --- Butterfly ---


def _select_butterfly(
    ctx: _Context,
    request: ButterflySpread,
    filtered: FilteredChain | None,
) -> tuple[list[_Pick], list[StrategyLeg]]:
    calls = ctx.require(filtered, "calls")
    if request.wing_width is not None:
        wing = request.wing_width
    else:
        increment = strike_increment(calls)
        if increment is None:
            raise StrikeSelectionFailed(ctx.symbol, ctx.strategy, "need at least three call strikes")
        tier = tier_for(ctx.cfg.butterfly_tiers, ctx.days_to(request.expiration_date))
        wing = increment * tier.wing_increments

    center = ctx.pick(calls, ctx.price, _NEAREST, "center")
    c = center.contract.strike
    lower = ctx.pick(calls, c - wing, _BELOW, "lower_wing", lambda k: k < c)
    upper = ctx.pick(calls, c + wing, _ABOVE, "upper_wing", lambda k: k > c)

    picks = [lower, center, upper]
    legs = [
        _leg(lower.contract, LegAction.BUY),
        _leg(center.contract, LegAction.SELL, quantity=2),
        _leg(upper.contract, LegAction.BUY),
    ]
    return picks, legs


# --- Diagonal calendar ---


def _choose_expiration(
    expirations: list[date],
    as_of: date,
    window: list[int],
    fallback_last: bool,
) -> date | None:
    live = [e for e in expirations if (e - as_of).days > 0]
    if not live:
        return None
    lo, hi = window
    for exp in live:
        if lo <= (exp - as_of).days <= hi:
            return exp
    return live[-1] if fallback_last else live[0]


def _select_diagonal(
    ctx: _Context,
    request: DiagonalCalendar,
    candidates: dict[date, FilteredChain],
) -> StrikeSelection:
    expirations = sorted(candidates)
    front = request.front_expiration or _choose_expiration(
        expirations, ctx.as_of, ctx.cfg.diagonal_front_dte, fallback_last=False,
    )
    back = request.back_expiration or _choose_expiration(
        expirations, ctx.as_of, ctx.cfg.diagonal_back_dte, fallback_last=True,
    )
    if front is None or back is None:
        raise NoLiquidContracts(ctx.symbol, ctx.strategy, "calls")
    if back <= front:
        raise StrikeSelectionFailed(
            ctx.symbol, ctx.strategy,
            f"no back expiration after front {front.isoformat()}",
        )

    front_calls = ctx.require(candidates.get(front), "calls")
    back_calls = ctx.require(candidates.get(back), "calls")
    short_pct = request.short_otm_pct or ctx.cfg.diagonal_short_otm_pct
    long_pct = request.long_otm_pct
    if long_pct is None:
        long_pct = ctx.cfg.diagonal_long_otm_pct

    short = ctx.pick(front_calls, ctx.price * (1 + short_pct), _ABOVE, "short_call", ctx.call_otm)
    long = ctx.pick(back_calls, ctx.price * (1 + long_pct), _ABOVE, "long_call")

    front_filtered = candidates[front]
    trace = SelectionTrace(
        moneyness_band=front_filtered.moneyness_band,
        relaxed=front_filtered.relaxed,
        candidate_calls=len(front_calls) + len(back_calls),
        candidate_puts=0,
        legs=[short.selection, long.selection],
    )
    return StrikeSelection(
        legs=[_leg(short.contract, LegAction.SELL), _leg(long.contract, LegAction.BUY)],
        trace=trace,
        expiration_date=front,
        days_to_expiry=ctx.days_to(front),
    )


# --- Custom strikes ---

_PUT, _CALL = ContractType.PUT, ContractType.CALL
_BUY, _SELL = LegAction.BUY, LegAction.SELL

# (role, contract type, action, quantity) per leg, in leg order
_CUSTOM_LAYOUTS: dict[StrategyType, list[tuple[str, ContractType, LegAction, int]]] = {
    StrategyType.LONG_STRANGLE: [("long_put", _PUT, _BUY, 1), ("long_call", _CALL, _BUY, 1)],
    StrategyType.SHORT_STRANGLE: [("short_put", _PUT, _SELL, 1), ("short_call", _CALL, _SELL, 1)],
    StrategyType.LONG_STRADDLE: [("long_put", _PUT, _BUY, 1), ("long_call", _CALL, _BUY, 1)],
    StrategyType.SHORT_STRADDLE: [("short_put", _PUT, _SELL, 1), ("short_call", _CALL, _SELL, 1)],
    StrategyType.IRON_CONDOR: [
        ("long_put", _PUT, _BUY, 1),
        ("short_put", _PUT, _SELL, 1),
        ("short_call", _CALL, _SELL, 1),
        ("long_call", _CALL, _BUY, 1),
    ],
    StrategyType.BUTTERFLY_SPREAD: [
        ("lower_wing", _CALL, _BUY, 1),
        ("center", _CALL, _SELL, 2),
        ("upper_wing", _CALL, _BUY, 1),
    ],
    StrategyType.DIAGONAL_CALENDAR: [("short_call", _CALL, _SELL, 1), ("long_call", _CALL, _BUY, 1)],
}

_STRIKE_ORDER = {
    StrategyType.LONG_STRANGLE: "put strike below call strike",
    StrategyType.SHORT_STRANGLE: "put strike below call strike",
    StrategyType.IRON_CONDOR: "four ascending strikes",
    StrategyType.BUTTERFLY_SPREAD: "three ascending strikes",
}


def _check_custom_strikes(strategy: StrategyType, strikes: list[float]) -> list[float]:
    """Expand a single straddle strike and check count and ordering."""
    layout = _CUSTOM_LAYOUTS[strategy]
    strikes = [float(k) for k in strikes]
    straddle = strategy in (StrategyType.LONG_STRADDLE, StrategyType.SHORT_STRADDLE)
    if straddle and len(strikes) == 1:
        strikes = strikes * 2
    if len(strikes) != len(layout):
        raise InvalidStrategyInput(f"{strategy} takes {len(layout)} strikes, got {len(strikes)}")
    if any(k <= 0 for k in strikes):
        raise InvalidStrategyInput(f"strikes must be positive, got {strikes}")

    if straddle:
        ok = strikes[0] == strikes[1]
        rule = "the same strike for put and call"
    elif strategy == StrategyType.DIAGONAL_CALENDAR:
        # long back-month strike may not sit above the short front-month strike
        ok = strikes[1] <= strikes[0]
        rule = "long strike at or below short strike"
    else:
        ok = all(a < b for a, b in zip(strikes, strikes[1:]))
        rule = _STRIKE_ORDER[strategy]
    if not ok:
        raise InvalidStrategyInput(f"{strategy} needs {rule}, got {strikes}")
    return strikes


def _listed(contracts: list[OptionContract], strike: float, contract_type: ContractType,
            expiration: date) -> OptionContract | None:
    for c in contracts:
        if (c.contract_type == contract_type and c.expiration_date == expiration
                and abs(c.strike - strike) < 1e-6):
            return c
    return None


def select_custom_strikes(
    strategy_type: StrategyType | str,
    contracts: list[OptionContract],
    strikes: list[float],
    expiration_date: date,
    as_of: date,
    symbol: str = "",
    back_expiration: date | None = None,
    premiums: list[float] | None = None,
) -> StrikeSelection:
    """Build legs from caller-chosen strikes instead of target percentages.

    Strikes are given in leg order: put then call for strangles and straddles
    (one strike is enough for a straddle), ascending for iron condors and
    butterflies, short then long for diagonals. ``expiration_date`` is the
    (front) expiration; diagonals also need ``back_expiration`` for the long
    leg. Each strike must be listed in ``contracts``. Leg premiums come from
    the contract's mid (or last trade) unless ``premiums`` overrides them,
    one per leg.

    Raises:
        InvalidStrategyInput: wrong strike count or ordering, bad premiums,
            non-positive DTE, or a diagonal without a later back expiration.
        StrikeSelectionFailed: a strike is not listed, or has no quote and
            no premium was supplied.
    """
    try:
        strategy = StrategyType(strategy_type)
    except ValueError:
        raise InvalidStrategyInput(f"Unknown strategy type: {strategy_type!r}") from None
    strikes = _check_custom_strikes(strategy, strikes)
    layout = _CUSTOM_LAYOUTS[strategy]

    if premiums is not None:
        if len(premiums) != len(layout):
            raise InvalidStrategyInput(f"{strategy} takes {len(layout)} premiums, got {len(premiums)}")
        if any(p < 0 for p in premiums):
            raise InvalidStrategyInput(f"premiums must be >= 0, got {premiums}")

    dte = (expiration_date - as_of).days
    if dte <= 0:
        raise InvalidStrategyInput(
            f"{symbol}: days to expiry must be positive, got {dte} "
            f"({expiration_date.isoformat()} as of {as_of.isoformat()})"
        )
    expirations = [expiration_date] * len(layout)
    if strategy == StrategyType.DIAGONAL_CALENDAR:
        if back_expiration is None or back_expiration <= expiration_date:
            raise InvalidStrategyInput(
                f"{symbol}: diagonal needs a back_expiration after {expiration_date.isoformat()}"
            )
        expirations[1] = back_expiration

    legs: list[StrategyLeg] = []
    selections: list[LegSelection] = []
    for i, (role, contract_type, action, quantity) in enumerate(layout):
        strike, exp = strikes[i], expirations[i]
        contract = _listed(contracts, strike, contract_type, exp)
        if contract is None:
            raise StrikeSelectionFailed(
                symbol, strategy, f"{role} strike {strike:g} not listed for {exp.isoformat()}",
            )
        leg = _leg(contract, action, quantity)
        if premiums is not None:
            leg = leg.model_copy(update={"premium": round(float(premiums[i]), 4)})
        elif leg.premium <= 0:
            raise StrikeSelectionFailed(
                symbol, strategy, f"{role} strike {strike:g} has no quote; supply premiums",
            )
        legs.append(leg)
        selections.append(LegSelection(
            role=role,
            contract_type=contract_type,
            target_strike=strike,
            chosen_strike=contract.strike,
            rule=SelectionRule.CUSTOM,
            candidates=1,
            expiration_date=exp,
        ))

    logger.debug("%s %s: custom strikes %s", symbol, strategy, strikes)
    trace = SelectionTrace(
        moneyness_band=0.0,
        candidate_calls=sum(1 for leg in legs if leg.contract_type == _CALL),
        candidate_puts=sum(1 for leg in legs if leg.contract_type == _PUT),
        legs=selections,
    )
    return StrikeSelection(legs=legs, trace=trace, expiration_date=expiration_date, days_to_expiry=dte)
