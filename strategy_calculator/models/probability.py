"""Probability distribution and expected move models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from strategy_calculator.models.strategy import DistributionFlag


class ProbabilityCurvePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    price: float
    probability_density: float = Field(ge=0)
    cumulative_below: float = Field(ge=0, le=1)
    pnl: float
    is_profitable: bool
    z_score: float


class ProbabilityAnalysis(BaseModel):
    """Outcome distribution at expiration for one position."""

    model_config = ConfigDict(frozen=True)

    current_price: float
    implied_volatility: float        # percent
    days_to_expiry: int
    std_dev: float = Field(ge=0)
    points: list[ProbabilityCurvePoint]
    probability_below_lower: float | None = None
    probability_above_upper: float | None = None
    probability_between: float | None = None
    probability_of_profit: float = Field(ge=0, le=1)
    distribution_flag: DistributionFlag = DistributionFlag.NORMAL

    @property
    def is_degenerate(self) -> bool:
        return self.distribution_flag == DistributionFlag.DEGENERATE


class ExpectedMoveBand(BaseModel):
    model_config = ConfigDict(frozen=True)

    days: int
    move: float
    low: float
    high: float
    move_pct: float


class ExpectedMove(BaseModel):
    """One-standard-deviation price bands derived from IV."""

    model_config = ConfigDict(frozen=True)

    current_price: float
    implied_volatility: float        # percent
    days_to_expiry: int
    daily: ExpectedMoveBand
    weekly: ExpectedMoveBand
    to_expiry: ExpectedMoveBand
