"""Expected 1-day, 1-week and to-expiry price bands from implied volatility."""

from __future__ import annotations

from strategy_calculator.data.exceptions import InvalidStrategyInput
from strategy_calculator.features.probability import outcome_std_dev
from strategy_calculator.models.probability import ExpectedMove, ExpectedMoveBand


def expected_move_band(current_price: float, iv_pct: float, days: int) -> ExpectedMoveBand:
    """One standard deviation band over ``days``. Zero IV gives a zero-width band."""
    move = outcome_std_dev(current_price, iv_pct, days)
    return ExpectedMoveBand(
        days=days,
        move=round(move, 2),
        low=round(current_price - move, 2),
        high=round(current_price + move, 2),
        move_pct=round(move / current_price * 100, 2),
    )


def compute_expected_move(current_price: float, iv_pct: float, days_to_expiry: int) -> ExpectedMove:
    """Expected move bands. IV is annualized percent (20 = 20%)."""
    if current_price <= 0:
        raise InvalidStrategyInput(f"current_price must be positive, got {current_price}")
    if days_to_expiry < 0:
        raise InvalidStrategyInput(f"days_to_expiry must be >= 0, got {days_to_expiry}")
    iv = max(iv_pct, 0.0)
    return ExpectedMove(
        current_price=current_price,
        implied_volatility=iv,
        days_to_expiry=days_to_expiry,
        daily=expected_move_band(current_price, iv, 1),
        weekly=expected_move_band(current_price, iv, 7),
        to_expiry=expected_move_band(current_price, iv, days_to_expiry),
    )
