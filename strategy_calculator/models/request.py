"""Strategy request variants: one model per strategy shape.

``StrategyRequest`` is a closed union discriminated on ``strategy_type``; each
variant carries only the overrides that shape understands.
"""

from __future__ import annotations

from datetime import date
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from strategy_calculator.models.strategy import StrategyType


class StrategyRequestBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    symbol: str = Field(min_length=1)
    expiration_date: date | None = None

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol is required")
        return v

    @property
    def kind(self) -> StrategyType:
        return StrategyType(self.strategy_type)  # type: ignore[attr-defined]


class LongStrangle(StrategyRequestBase):
    strategy_type: Literal["long_strangle"] = "long_strangle"
    otm_pct: float | None = Field(default=None, gt=0, lt=1)


class ShortStrangle(StrategyRequestBase):
    strategy_type: Literal["short_strangle"] = "short_strangle"
    otm_pct: float | None = Field(default=None, gt=0, lt=1)


class LongStraddle(StrategyRequestBase):
    strategy_type: Literal["long_straddle"] = "long_straddle"


class ShortStraddle(StrategyRequestBase):
    strategy_type: Literal["short_straddle"] = "short_straddle"


class IronCondor(StrategyRequestBase):
    strategy_type: Literal["iron_condor"] = "iron_condor"
    short_otm_pct: float | None = Field(default=None, gt=0, lt=1)
    wing_width: float | None = Field(default=None, gt=0)   # dollars
    wing_pct: float | None = Field(default=None, gt=0, lt=1)


class ButterflySpread(StrategyRequestBase):
    strategy_type: Literal["butterfly_spread"] = "butterfly_spread"
    wing_width: float | None = Field(default=None, gt=0)


class DiagonalCalendar(StrategyRequestBase):
    strategy_type: Literal["diagonal_calendar"] = "diagonal_calendar"
    short_otm_pct: float | None = Field(default=None, gt=0, lt=1)
    long_otm_pct: float | None = Field(default=None, ge=0, lt=1)
    front_expiration: date | None = None
    back_expiration: date | None = None

    @model_validator(mode="after")
    def _check_structure(self) -> DiagonalCalendar:
        short, long = self.short_otm_pct, self.long_otm_pct
        if short is not None and long is not None and long > short:
            raise ValueError(
                f"long_otm_pct {long} must not exceed short_otm_pct {short}; "
                "the back-month call has to cover the front-month call"
            )
        if (
            self.front_expiration is not None
            and self.back_expiration is not None
            and self.back_expiration <= self.front_expiration
        ):
            raise ValueError("back_expiration must be after front_expiration")
        return self


StrategyRequest = Annotated[
    Union[
        LongStrangle,
        ShortStrangle,
        LongStraddle,
        ShortStraddle,
        IronCondor,
        ButterflySpread,
        DiagonalCalendar,
    ],
    Field(discriminator="strategy_type"),
]

REQUEST_ADAPTER: TypeAdapter[StrategyRequest] = TypeAdapter(StrategyRequest)

REQUEST_TYPES: dict[StrategyType, type[StrategyRequestBase]] = {
    StrategyType.LONG_STRANGLE: LongStrangle,
    StrategyType.SHORT_STRANGLE: ShortStrangle,
    StrategyType.LONG_STRADDLE: LongStraddle,
    StrategyType.SHORT_STRADDLE: ShortStraddle,
    StrategyType.IRON_CONDOR: IronCondor,
    StrategyType.BUTTERFLY_SPREAD: ButterflySpread,
    StrategyType.DIAGONAL_CALENDAR: DiagonalCalendar,
}
