"""Outcome distribution for a position at expiration.

Prices are modelled as normal around the current price with
``std_dev = price * IV * sqrt(DTE / 365)``. When that curve would reach below
zero inside the grid span, the log price is modelled instead (lognormal with
the same volatility, mean price preserved). Zero spread is handled as an
explicit point distribution, never as a division by zero.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from datetime import date

import numpy as np

from strategy_calculator.config import ProbabilitySettings, get_settings
from strategy_calculator.data.exceptions import InvalidStrategyInput
from strategy_calculator.features.normal import norm_cdf, norm_pdf
from strategy_calculator.features.pricing import position_pnl
from strategy_calculator.models.probability import ProbabilityAnalysis, ProbabilityCurvePoint
from strategy_calculator.models.strategy import DistributionFlag, StrategyLeg


def outcome_std_dev(current_price: float, iv_pct: float, days_to_expiry: float) -> float:
    """One standard deviation of the price move, in price units."""
    if iv_pct <= 0 or days_to_expiry <= 0:
        return 0.0
    return current_price * (iv_pct / 100.0) * math.sqrt(days_to_expiry / 365.0)


def grid_z_scores(settings: ProbabilitySettings) -> np.ndarray:
    """Z-scores spanning +/- ``grid_std_devs``, denser near zero."""
    u = np.linspace(-1.0, 1.0, settings.grid_points)
    c = settings.grid_concentration
    return settings.grid_std_devs * np.sinh(c * u) / math.sinh(c)


def price_grid(
    current_price: float,
    std_dev: float,
    settings: ProbabilitySettings,
) -> np.ndarray:
    """Normal price grid spanning +/- ``grid_std_devs``, floored at ``min_grid_price``."""
    prices = current_price + grid_z_scores(settings) * std_dev
    return np.unique(np.maximum(prices, settings.min_grid_price))


def needs_log_grid(current_price: float, std_dev: float, settings: ProbabilitySettings) -> bool:
    """True when the normal grid's lower bound would be cut off by the price floor."""
    return current_price - settings.grid_std_devs * std_dev < settings.min_grid_price


class _Distribution:
    """Maps price levels to z-scores for either the normal or the log model."""

    def __init__(self, current_price: float, std_dev: float, lognormal: bool) -> None:
        self.current_price = current_price
        self.std_dev = std_dev
        self.lognormal = lognormal
        # log-price volatility over the horizon, i.e. IV * sqrt(t)
        self.sigma = std_dev / current_price
        self.mu = math.log(current_price) - 0.5 * self.sigma * self.sigma

    def z(self, level: float) -> float:
        if not self.lognormal:
            return (level - self.current_price) / self.std_dev
        if level <= 0:
            return -math.inf
        return (math.log(level) - self.mu) / self.sigma

    def cdf(self, level: float) -> float:
        return norm_cdf(self.z(level))

    def grid(self, settings: ProbabilitySettings) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Prices, z-scores and price-space densities along the grid."""
        if not self.lognormal:
            prices = price_grid(self.current_price, self.std_dev, settings)
            z = (prices - self.current_price) / self.std_dev
            return prices, z, norm_pdf(z) / self.std_dev
        z = grid_z_scores(settings)
        prices = np.exp(self.mu + z * self.sigma)
        return prices, z, norm_pdf(z) / (prices * self.sigma)


def compute_probability(
    current_price: float,
    iv_pct: float,
    days_to_expiry: int,
    legs: list[StrategyLeg],
    lower_breakeven: float | None = None,
    upper_breakeven: float | None = None,
    settings: ProbabilitySettings | None = None,
    evaluation_date: date | None = None,
) -> ProbabilityAnalysis:
    """Probability curve and summary probabilities for ``legs``.

    Args:
        current_price: Underlying price now.
        iv_pct: Annualized implied volatility in percent (25 = 25%).
        days_to_expiry: Calendar days to the (front) expiration.
        legs: Position legs; P&L is evaluated at expiration.
        lower_breakeven: Lower breakeven, if any.
        upper_breakeven: Upper breakeven, if any.
        settings: Grid settings (defaults to ``get_settings().probability``).
        evaluation_date: Valuation date for legs that outlive the front
            expiration (diagonals). None values every leg at intrinsic.
    """
    if current_price <= 0:
        raise InvalidStrategyInput(f"current_price must be positive, got {current_price}")
    if days_to_expiry < 0:
        raise InvalidStrategyInput(f"days_to_expiry must be >= 0, got {days_to_expiry}")
    if iv_pct < 0:
        raise InvalidStrategyInput(f"implied volatility must be >= 0, got {iv_pct}")

    cfg = settings or get_settings().probability
    std_dev = outcome_std_dev(current_price, iv_pct, days_to_expiry)

    if std_dev == 0.0:
        return _degenerate(current_price, iv_pct, days_to_expiry, legs,
                           lower_breakeven, upper_breakeven, evaluation_date)

    dist = _Distribution(current_price, std_dev, needs_log_grid(current_price, std_dev, cfg))
    prices, z, density = dist.grid(cfg)
    cumulative = np.maximum.accumulate(norm_cdf(z))
    pnl = position_pnl(legs, prices, evaluation_date)

    points = [
        ProbabilityCurvePoint(
            price=round(float(p), 4),
            probability_density=float(d),
            cumulative_below=float(cdf),
            pnl=round(float(v), 4),
            is_profitable=bool(v > 0),
            z_score=round(float(zz), 4),
        )
        for p, d, cdf, v, zz in zip(prices, density, cumulative, pnl, z)
    ]

    below = dist.cdf(lower_breakeven) if lower_breakeven is not None else None
    above = 1.0 - dist.cdf(upper_breakeven) if upper_breakeven is not None else None
    between = None
    if lower_breakeven is not None and upper_breakeven is not None:
        between = dist.cdf(upper_breakeven) - dist.cdf(lower_breakeven)

    pop = _probability_of_profit(
        dist.cdf, current_price, std_dev, legs, lower_breakeven, upper_breakeven, evaluation_date,
    )

    return ProbabilityAnalysis(
        current_price=current_price,
        implied_volatility=iv_pct,
        days_to_expiry=days_to_expiry,
        std_dev=round(std_dev, 6),
        points=points,
        probability_below_lower=_prob(below),
        probability_above_upper=_prob(above),
        probability_between=_prob(between),
        probability_of_profit=_prob(pop),
        distribution_flag=DistributionFlag.LOGNORMAL if dist.lognormal else DistributionFlag.NORMAL,
    )


def _prob(value: float | None) -> float | None:
    if value is None:
        return None
    return round(min(max(value, 0.0), 1.0), 6)


def _probability_of_profit(
    cdf: Callable[[float], float],
    current_price: float,
    std_dev: float,
    legs: list[StrategyLeg],
    lower_breakeven: float | None,
    upper_breakeven: float | None,
    evaluation_date: date | None,
) -> float:
    """Sum the probability of every breakeven-bounded region with positive P&L."""
    cuts = sorted(b for b in (lower_breakeven, upper_breakeven) if b is not None)
    edges: list[float | None] = [None, *cuts, None]

    total = 0.0
    for left, right in zip(edges[:-1], edges[1:]):
        if left is None and right is None:
            sample = current_price
        elif left is None:
            sample = right - min(std_dev, right * 0.5)
        elif right is None:
            sample = left + std_dev
        else:
            sample = (left + right) / 2
        if position_pnl(legs, sample, evaluation_date) <= 0:
            continue
        lo = 0.0 if left is None else cdf(left)
        hi = 1.0 if right is None else cdf(right)
        total += max(hi - lo, 0.0)
    return total


def _degenerate(
    current_price: float,
    iv_pct: float,
    days_to_expiry: int,
    legs: list[StrategyLeg],
    lower_breakeven: float | None,
    upper_breakeven: float | None,
    evaluation_date: date | None,
) -> ProbabilityAnalysis:
    """All probability mass sits on the current price."""
    pnl = position_pnl(legs, current_price, evaluation_date)
    profitable = pnl > 0

    below = None
    if lower_breakeven is not None:
        below = 1.0 if current_price < lower_breakeven else 0.0
    above = None
    if upper_breakeven is not None:
        above = 1.0 if current_price > upper_breakeven else 0.0
    between = None
    if below is not None and above is not None:
        between = 1.0 - below - above

    point = ProbabilityCurvePoint(
        price=current_price,
        probability_density=1.0,
        cumulative_below=1.0,
        pnl=round(pnl, 4),
        is_profitable=profitable,
        z_score=0.0,
    )
    return ProbabilityAnalysis(
        current_price=current_price,
        implied_volatility=iv_pct,
        days_to_expiry=days_to_expiry,
        std_dev=0.0,
        points=[point],
        probability_below_lower=below,
        probability_above_upper=above,
        probability_between=between,
        probability_of_profit=1.0 if profitable else 0.0,
        distribution_flag=DistributionFlag.DEGENERATE,
    )
