"""Volatility surface models: grid points, summary stats, full payload."""

from __future__ import annotations

from datetime import date
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class TermStructureShape(StrEnum):
    UPWARD = "upward"
    DOWNWARD = "downward"
    FLAT = "flat"


class PointSource(StrEnum):
    CHAIN = "chain"
    PARAMETRIC = "parametric"


class VolatilitySurfacePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    strike: float
    expiration: date
    days_to_exp: int = Field(ge=0)
    implied_vol: float               # percent, clamped to the configured floor/ceiling
    moneyness: float                 # strike / underlying
    source: PointSource = PointSource.PARAMETRIC


class SurfaceStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    avg_iv: float
    min_iv: float
    max_iv: float
    iv_skew: float                   # OTM put avg IV - ATM avg IV, vol points
    term_structure: TermStructureShape
    atm_iv_short: float | None = None
    atm_iv_long: float | None = None


class VolatilitySurfaceData(BaseModel):
    """Surface payload handed to visualization consumers."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    as_of: date
    current_price: float
    points: list[VolatilitySurfacePoint]
    surface_stats: SurfaceStats
    chain_point_count: int = 0
    parametric_point_count: int = 0

    @property
    def expirations(self) -> list[date]:
        return sorted({p.expiration for p in self.points})

    @property
    def strikes(self) -> list[float]:
        return sorted({p.strike for p in self.points})
