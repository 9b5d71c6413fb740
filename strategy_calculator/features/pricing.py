"""Strategy pricing: net premium, max loss/profit, breakevens, payoff.

Values are per share. Unlimited profit or loss is reported with the
``UNBOUNDED`` sentinel, never with infinity.
"""

from __future__ import annotations

import logging
from datetime import date

import numpy as np
from pydantic import BaseModel, ConfigDict

from strategy_calculator.data.exceptions import StrikeSelectionFailed
from strategy_calculator.features.normal import bs_price
from strategy_calculator.models.chain import ContractType
from strategy_calculator.models.strategy import (
    UNBOUNDED,
    LegAction,
    OrderSide,
    PositionGreeks,
    RiskProfile,
    StrategyLeg,
    StrategyType,
    Unbounded,
)

logger = logging.getLogger(__name__)

_DEBIT_STRATEGIES = frozenset({
    StrategyType.LONG_STRANGLE,
    StrategyType.LONG_STRADDLE,
    StrategyType.BUTTERFLY_SPREAD,
    StrategyType.DIAGONAL_CALENDAR,
})


class PricedStrategy(BaseModel):
    """Risk metrics for a set of legs."""

    model_config = ConfigDict(frozen=True)

    strategy_type: StrategyType
    net_premium: float                   # absolute, per share
    order_side: OrderSide
    max_loss: float | Unbounded
    max_profit: float | Unbounded | None
    lower_breakeven: float | None
    upper_breakeven: float | None
    risk_profile: RiskProfile
    collateral_note: str
    greeks: PositionGreeks | None = None


def net_cash_flow(legs: list[StrategyLeg]) -> float:
    """Premium received minus premium paid (positive = credit)."""
    return sum(-leg.signed_quantity * leg.premium for leg in legs)


def position_pnl(
    legs: list[StrategyLeg],
    prices,
    evaluation_date: date | None = None,
):
    """Position P&L per share at ``evaluation_date`` for each underlying price.

    Legs expiring on or before ``evaluation_date`` (or all legs when it is None)
    are valued at intrinsic. Later-dated legs are valued with Black-Scholes on
    their remaining time, using the leg's own IV.
    """
    s = np.asarray(prices, dtype=float)
    total = np.zeros_like(s)
    for leg in legs:
        option_type = leg.contract_type.value
        if evaluation_date is not None and leg.expiration_date > evaluation_date:
            years = (leg.expiration_date - evaluation_date).days / 365.0
            value = bs_price(s, leg.strike, years, leg.implied_volatility or 0.0, option_type)
        elif leg.contract_type == ContractType.CALL:
            value = np.maximum(s - leg.strike, 0.0)
        else:
            value = np.maximum(leg.strike - s, 0.0)
        total = total + leg.signed_quantity * (value - leg.premium)
    if total.ndim == 0:
        return float(total)
    return total


def position_greeks(legs: list[StrategyLeg]) -> PositionGreeks | None:
    """Net greeks, or None unless every leg carries all four."""
    if not legs:
        return None
    totals = {"delta": 0.0, "gamma": 0.0, "theta": 0.0, "vega": 0.0}
    for leg in legs:
        for name in totals:
            value = getattr(leg, name)
            if value is None:
                return None
            totals[name] += leg.signed_quantity * value
    return PositionGreeks(**{k: round(v, 4) for k, v in totals.items()})


def price_strategy(
    strategy_type: StrategyType,
    legs: list[StrategyLeg],
    underlying_price: float,
    symbol: str = "",
) -> PricedStrategy:
    """Compute net premium, max loss/profit and breakevens for ``legs``.

    Raises:
        StrikeSelectionFailed: the legs imply a credit where a debit is
            required (or vice versa), so the chosen strikes are unusable.
    """
    cash = net_cash_flow(legs)
    net = round(abs(cash), 4)
    side = OrderSide.CREDIT if cash > 0 else OrderSide.DEBIT
    expects_debit = strategy_type in _DEBIT_STRATEGIES

    if expects_debit and cash >= 0 and strategy_type != StrategyType.BUTTERFLY_SPREAD:
        raise StrikeSelectionFailed(symbol, strategy_type, f"expected a net debit, got credit {cash:.2f}")
    if not expects_debit and cash <= 0:
        raise StrikeSelectionFailed(symbol, strategy_type, f"expected a net credit, got debit {-cash:.2f}")

    if strategy_type in (StrategyType.LONG_STRANGLE, StrategyType.LONG_STRADDLE):
        result = _price_long_volatility(legs, net)
    elif strategy_type in (StrategyType.SHORT_STRANGLE, StrategyType.SHORT_STRADDLE):
        result = _price_short_volatility(legs, net)
    elif strategy_type == StrategyType.IRON_CONDOR:
        result = _price_iron_condor(legs, net, symbol)
    elif strategy_type == StrategyType.BUTTERFLY_SPREAD:
        result = _price_butterfly(legs, cash)
    elif strategy_type == StrategyType.DIAGONAL_CALENDAR:
        result = _price_diagonal(legs, net, underlying_price)
    else:
        raise ValueError(f"Unsupported strategy type: {strategy_type}")

    priced = PricedStrategy(
        strategy_type=strategy_type,
        order_side=side,
        greeks=position_greeks(legs),
        **result,
    )
    logger.debug(
        "Priced %s %s: %s %.2f, max loss %s, max profit %s",
        symbol, strategy_type, side, net, priced.max_loss, priced.max_profit,
    )
    return priced


def _leg_by(legs: list[StrategyLeg], contract_type: ContractType, action: LegAction | None = None) -> StrategyLeg:
    for leg in legs:
        if leg.contract_type == contract_type and (action is None or leg.action == action):
            return leg
    raise ValueError(f"No {action or ''} {contract_type} leg in position")


def _price_long_volatility(legs: list[StrategyLeg], debit: float) -> dict:
    put = _leg_by(legs, ContractType.PUT)
    call = _leg_by(legs, ContractType.CALL)
    return {
        "net_premium": debit,
        "max_loss": round(debit, 4),
        "max_profit": UNBOUNDED,
        "lower_breakeven": round(put.strike - debit, 4),
        "upper_breakeven": round(call.strike + debit, 4),
        "risk_profile": RiskProfile.DEFINED,
        "collateral_note": f"Debit paid in full: {debit * 100:.2f} per contract set; no margin required.",
    }


def _price_short_volatility(legs: list[StrategyLeg], credit: float) -> dict:
    put = _leg_by(legs, ContractType.PUT)
    call = _leg_by(legs, ContractType.CALL)
    return {
        "net_premium": credit,
        "max_loss": UNBOUNDED,
        "max_profit": round(credit, 4),
        "lower_breakeven": round(put.strike - credit, 4),
        "upper_breakeven": round(call.strike + credit, 4),
        "risk_profile": RiskProfile.UNDEFINED,
        "collateral_note": "Naked short options: broker margin required, loss is unlimited above the call.",
    }


def _price_iron_condor(legs: list[StrategyLeg], credit: float, symbol: str) -> dict:
    short_put = _leg_by(legs, ContractType.PUT, LegAction.SELL)
    long_put = _leg_by(legs, ContractType.PUT, LegAction.BUY)
    short_call = _leg_by(legs, ContractType.CALL, LegAction.SELL)
    long_call = _leg_by(legs, ContractType.CALL, LegAction.BUY)
    width = max(short_put.strike - long_put.strike, long_call.strike - short_call.strike)
    if credit >= width:
        raise StrikeSelectionFailed(
            symbol, StrategyType.IRON_CONDOR,
            f"credit {credit:.2f} is not below wing width {width:.2f}",
        )
    max_loss = width - credit
    return {
        "net_premium": credit,
        "max_loss": round(max_loss, 4),
        "max_profit": round(credit, 4),
        "lower_breakeven": round(short_put.strike - credit, 4),
        "upper_breakeven": round(short_call.strike + credit, 4),
        "risk_profile": RiskProfile.DEFINED,
        "collateral_note": f"Defined risk: {max_loss * 100:.2f} per contract set held as collateral.",
    }


def _price_butterfly(legs: list[StrategyLeg], cash: float) -> dict:
    wings = sorted((leg for leg in legs if leg.action == LegAction.BUY), key=lambda leg: leg.strike)
    center = _leg_by(legs, ContractType.CALL, LegAction.SELL)
    lower, upper = wings[0], wings[-1]
    lower_width = center.strike - lower.strike
    upper_width = upper.strike - center.strike

    debit = -cash   # may be negative when the fly is quoted for a credit
    # Below the lower wing P&L is -debit; above the upper wing it is
    # lower_width - upper_width - debit; the peak sits on the center strike.
    max_profit = lower_width - debit
    max_loss = max(debit, debit + upper_width - lower_width, 0.0)
    lower_be = upper_be = None
    if debit > 0 and max_profit > 0:
        lower_be = lower.strike + debit
        upper_be = center.strike + lower_width - debit
        if upper_be > upper.strike:
            upper_be = None
    return {
        "net_premium": round(abs(debit), 4),
        "max_loss": round(max_loss, 4),
        "max_profit": round(max_profit, 4),
        "lower_breakeven": round(lower_be, 4) if lower_be is not None else None,
        "upper_breakeven": round(upper_be, 4) if upper_be is not None else None,
        "risk_profile": RiskProfile.DEFINED,
        "collateral_note": "Debit paid in full; no margin beyond the premium.",
    }


def _price_diagonal(legs: list[StrategyLeg], debit: float, underlying_price: float) -> dict:
    short = _leg_by(legs, ContractType.CALL, LegAction.SELL)
    long = _leg_by(legs, ContractType.CALL, LegAction.BUY)
    front = short.expiration_date
    # Value the back leg at the front expiration over a wide price range
    grid = np.linspace(underlying_price * 0.3, underlying_price * 2.0, 2001)
    pnl = position_pnl(legs, grid, evaluation_date=front)

    lower_be, upper_be = _zero_crossings(grid, pnl)
    max_profit = float(pnl.max())
    # A long strike above the short one leaves the gap uncovered on a rally
    gap = max(0.0, long.strike - short.strike)
    max_loss = max(debit, -float(pnl.min()), debit + gap)
    note = "Long back-month call covers the short front-month call; debit paid in full."
    if gap > 0:
        note = f"Short call is covered only above {long.strike:g}; margin the {gap:.2f} strike gap plus the debit."
    return {
        "net_premium": debit,
        "max_loss": round(max_loss, 4),
        "max_profit": round(max_profit, 4) if max_profit > 0 else 0.0,
        "lower_breakeven": round(lower_be, 4) if lower_be is not None else None,
        "upper_breakeven": round(upper_be, 4) if upper_be is not None else None,
        "risk_profile": RiskProfile.DEFINED,
        "collateral_note": note,
    }


def _zero_crossings(grid: np.ndarray, pnl: np.ndarray) -> tuple[float | None, float | None]:
    """First and last sign change of ``pnl`` on ``grid``, linearly interpolated."""
    signs = np.sign(pnl)
    idx = np.where(np.diff(signs) != 0)[0]
    if len(idx) == 0:
        return None, None

    def _interp(i: int) -> float:
        x0, x1, y0, y1 = grid[i], grid[i + 1], pnl[i], pnl[i + 1]
        if y1 == y0:
            return float(x0)
        return float(x0 - y0 * (x1 - x0) / (y1 - y0))

    lower = _interp(int(idx[0]))
    upper = _interp(int(idx[-1]))
    if len(idx) == 1:
        # One crossing: loss below it means it is the lower breakeven
        return (lower, None) if pnl[0] < 0 else (None, lower)
    return lower, upper
