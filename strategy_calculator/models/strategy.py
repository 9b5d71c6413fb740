"""Pydantic models for strategy positions, legs, and selection traces."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from strategy_calculator.models.chain import ContractType


class StrategyType(StrEnum):
    """Strategy shapes the engine can compute."""

    LONG_STRANGLE = "long_strangle"
    SHORT_STRANGLE = "short_strangle"
    LONG_STRADDLE = "long_straddle"
    SHORT_STRADDLE = "short_straddle"
    IRON_CONDOR = "iron_condor"
    BUTTERFLY_SPREAD = "butterfly_spread"
    DIAGONAL_CALENDAR = "diagonal_calendar"


class LegAction(StrEnum):
    BUY = "buy"
    SELL = "sell"


class OrderSide(StrEnum):
    DEBIT = "debit"
    CREDIT = "credit"


class RiskProfile(StrEnum):
    DEFINED = "defined"
    UNDEFINED = "undefined"


class DistributionFlag(StrEnum):
    """Shape of the outcome distribution.

    ``lognormal`` is used when a normal curve would put visible mass below zero.
    """

    NORMAL = "normal"
    LOGNORMAL = "lognormal"
    DEGENERATE = "degenerate"


class Unbounded(StrEnum):
    """Marker for a max profit/loss with no finite limit.

    Kept distinct from ``None`` (value unknown) and never used in arithmetic.
    """

    UNBOUNDED = "unbounded"


UNBOUNDED = Unbounded.UNBOUNDED


class StrategyLeg(BaseModel):
    """One traded leg derived from a quoted contract."""

    model_config = ConfigDict(frozen=True)

    action: LegAction
    contract_type: ContractType
    strike: float
    premium: float = Field(ge=0)     # per share, mid of bid/ask unless overridden
    quantity: int = Field(default=1, ge=1)
    expiration_date: date
    implied_volatility: float | None = None  # annualized decimal
    delta: float | None = None
    gamma: float | None = None
    theta: float | None = None
    vega: float | None = None

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.action == LegAction.BUY else -self.quantity

    @property
    def short_code(self) -> str:
        """Compact label, e.g. ``BUY 1x 185C 2026-04-17``."""
        suffix = "C" if self.contract_type == ContractType.CALL else "P"
        return (
            f"{self.action.value.upper()} {self.quantity}x "
            f"{self.strike:g}{suffix} {self.expiration_date.isoformat()}"
        )


class PositionGreeks(BaseModel):
    """Net per-share greeks of the position (buy = +, sell = -)."""

    model_config = ConfigDict(frozen=True)

    delta: float
    gamma: float
    theta: float
    vega: float


class SelectionRule(StrEnum):
    AT_OR_BEYOND_TARGET = "at_or_beyond_target"
    NEAREST = "nearest"
    FALLBACK_NEAREST = "fallback_nearest"
    CUSTOM = "custom"


class LegSelection(BaseModel):
    """How a single strike was chosen."""

    model_config = ConfigDict(frozen=True)

    role: str                   # "long_put", "short_call", "center", ...
    contract_type: ContractType
    target_strike: float
    chosen_strike: float
    rule: SelectionRule
    candidates: int
    tie_break: str | None = None  # "tighter_spread" | "lower_strike" | "higher_strike"
    expiration_date: date


class SelectionTrace(BaseModel):
    """Structured record of every strike decision behind a position."""

    model_config = ConfigDict(frozen=True)

    moneyness_band: float
    relaxed: bool = False
    candidate_calls: int = 0
    candidate_puts: int = 0
    legs: list[LegSelection] = Field(default_factory=list)

    def for_role(self, role: str) -> LegSelection | None:
        for leg in self.legs:
            if leg.role == role:
                return leg
        return None


class StrategyPosition(BaseModel):
    """Computed multi-leg position. A fresh, immutable value per calculation."""

    model_config = ConfigDict(frozen=True)

    position_id: str
    symbol: str
    strategy_type: StrategyType
    legs: list[StrategyLeg] = Field(min_length=1, max_length=4)
    lower_breakeven: float | None = None
    upper_breakeven: float | None = None
    max_loss: float | Unbounded
    max_profit: float | Unbounded | None = None
    net_premium: float = Field(ge=0)
    order_side: OrderSide
    implied_volatility: float = Field(ge=0)   # percent
    iv_percentile: float = Field(ge=0, le=100)
    days_to_expiry: int = Field(ge=0)
    expiration_date: date
    underlying_price_at_calculation: float = Field(gt=0)
    risk_profile: RiskProfile
    collateral_note: str = ""
    greeks: PositionGreeks | None = None
    selection_trace: SelectionTrace
    distribution_flag: DistributionFlag = DistributionFlag.NORMAL
    contract_multiplier: int = 100
    calculated_at: datetime

    @field_validator("max_loss")
    @classmethod
    def _max_loss_non_negative(cls, v: float | Unbounded) -> float | Unbounded:
        if not isinstance(v, Unbounded) and v < 0:
            raise ValueError(f"max_loss must be >= 0, got {v}")
        return v

    @model_validator(mode="after")
    def _breakevens_ordered(self) -> StrategyPosition:
        lo, hi = self.lower_breakeven, self.upper_breakeven
        if lo is not None and hi is not None and lo >= hi:
            raise ValueError(f"lower_breakeven {lo} must be below upper_breakeven {hi}")
        return self

    def max_loss_per_contract(self) -> float | Unbounded:
        if isinstance(self.max_loss, Unbounded):
            return self.max_loss
        return round(self.max_loss * self.contract_multiplier, 2)

    def leg(self, action: LegAction, contract_type: ContractType) -> StrategyLeg | None:
        """First leg matching action and type, or None."""
        for leg in self.legs:
            if leg.action == action and leg.contract_type == contract_type:
                return leg
        return None

    @property
    def summary(self) -> str:
        parts = [
            f"{self.symbol} {self.strategy_type.value}",
            " / ".join(leg.short_code for leg in self.legs),
            f"{self.order_side.value} {self.net_premium:.2f}",
            f"max loss {_fmt_bound(self.max_loss)}",
            f"max profit {_fmt_bound(self.max_profit)}",
        ]
        if self.lower_breakeven is not None or self.upper_breakeven is not None:
            parts.append(
                f"BE {_fmt_bound(self.lower_breakeven)} - {_fmt_bound(self.upper_breakeven)}"
            )
        return " | ".join(parts)


def _fmt_bound(value: float | Unbounded | None) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, Unbounded):
        return "unbounded"
    return f"{value:.2f}"
