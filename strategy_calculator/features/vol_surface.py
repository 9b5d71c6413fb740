"""Volatility surface construction.

Pure functions: no data fetching. Real chain IVs are authoritative; the
parametric model (base IV x skew x term factor) fills the grid when the chain
is sparse or absent.
"""

from __future__ import annotations

import calendar
import math
from datetime import date, timedelta

import numpy as np
import pandas as pd

from strategy_calculator.config import SurfaceSettings, get_settings
from strategy_calculator.models.chain import OptionContract, OptionsChain
from strategy_calculator.models.vol_surface import (
    PointSource,
    SurfaceStats,
    TermStructureShape,
    VolatilitySurfaceData,
    VolatilitySurfacePoint,
)

_FRIDAY = 4


# --- Grid ---


def third_friday(year: int, month: int) -> date:
    first_weekday, _ = calendar.monthrange(year, month)
    first_friday = 1 + (_FRIDAY - first_weekday) % 7
    return date(year, month, first_friday + 14)


def surface_expirations(as_of: date, weekly_count: int = 8, monthly_count: int = 6) -> list[date]:
    """Next ``weekly_count`` Fridays plus the monthly (third Friday) cycle."""
    days_ahead = (_FRIDAY - as_of.weekday()) % 7 or 7
    first = as_of + timedelta(days=days_ahead)
    dates = {first + timedelta(weeks=i) for i in range(weekly_count)}

    year, month = as_of.year, as_of.month
    for _ in range(monthly_count):
        month += 1
        if month > 12:
            month, year = 1, year + 1
        dates.add(third_friday(year, month))
    return sorted(dates)


def strike_interval(price: float) -> float:
    """Listed strike spacing by price tier."""
    if price < 50:
        return 1.0
    if price < 100:
        return 2.5
    if price < 200:
        return 5.0
    if price < 500:
        return 10.0
    return 25.0


def strike_ladder(price: float, strike_range: list[float] | None = None) -> list[float]:
    lo, hi = strike_range or [0.70, 1.30]
    step = strike_interval(price)
    first = math.ceil(price * lo / step) * step
    last = math.floor(price * hi / step) * step
    count = int(round((last - first) / step)) + 1
    return [round(first + i * step, 2) for i in range(max(count, 0))]


# --- Parametric model ---


def base_iv_for(symbol: str, settings: SurfaceSettings | None = None) -> float:
    cfg = settings or get_settings().surface
    return cfg.base_iv.get(symbol.upper(), cfg.default_base_iv)


def parametric_iv(
    base_iv: float,
    moneyness: float,
    days_to_exp: int,
    high_vol: bool,
    settings: SurfaceSettings | None = None,
) -> float:
    """Base IV scaled by put skew and term structure, clamped, percent."""
    cfg = settings or get_settings().surface
    skew = 1 + (1 - moneyness) * cfg.skew_factor
    if high_vol:
        term = 1 + (60 - days_to_exp) / 300
    else:
        term = 1 + (45 - days_to_exp) / 400
    iv = base_iv * skew * max(cfg.term_floor, term)
    return _clamp_iv(iv, cfg)


def _clamp_iv(iv: float, cfg: SurfaceSettings) -> float:
    return round(min(max(iv, cfg.iv_floor), cfg.iv_ceiling), 1)


def _parametric_points(
    symbol: str,
    current_price: float,
    as_of: date,
    base_iv: float,
    cfg: SurfaceSettings,
) -> list[VolatilitySurfacePoint]:
    high_vol = symbol.upper() in cfg.high_vol_symbols
    points: list[VolatilitySurfacePoint] = []
    for expiration in surface_expirations(as_of, cfg.weekly_expirations, cfg.monthly_expirations):
        dte = max((expiration - as_of).days, 0)
        for strike in strike_ladder(current_price, cfg.strike_range):
            moneyness = strike / current_price
            points.append(VolatilitySurfacePoint(
                strike=strike,
                expiration=expiration,
                days_to_exp=dte,
                implied_vol=parametric_iv(base_iv, moneyness, dte, high_vol, cfg),
                moneyness=round(moneyness, 4),
                source=PointSource.PARAMETRIC,
            ))
    return points


def build_parametric_surface(
    symbol: str,
    current_price: float,
    as_of: date | None = None,
    settings: SurfaceSettings | None = None,
    base_iv: float | None = None,
) -> VolatilitySurfaceData:
    """Deterministic surface from the symbol's base IV (or ``base_iv``)."""
    cfg = settings or get_settings().surface
    today = as_of or date.today()
    base = base_iv if base_iv is not None else base_iv_for(symbol, cfg)
    points = _parametric_points(symbol, current_price, today, base, cfg)
    return VolatilitySurfaceData(
        symbol=symbol.upper(),
        as_of=today,
        current_price=current_price,
        points=points,
        surface_stats=compute_surface_stats(points, cfg),
        chain_point_count=0,
        parametric_point_count=len(points),
    )


# --- From a real chain ---


def chain_to_frame(contracts: list[OptionContract]) -> pd.DataFrame:
    """Flatten contracts into the columns the surface code works on."""
    rows = [
        {
            "expiration": c.expiration_date,
            "strike": c.strike,
            "option_type": c.contract_type.value,
            "implied_volatility": c.implied_volatility,
        }
        for c in contracts
    ]
    return pd.DataFrame(rows, columns=["expiration", "strike", "option_type", "implied_volatility"])


def _find_atm_strike(strikes: np.ndarray, underlying_price: float) -> float:
    """Find the strike closest to the underlying price."""
    strikes_arr = np.asarray(strikes, dtype=float)
    idx = np.argmin(np.abs(strikes_arr - underlying_price))
    return float(strikes_arr[idx])


def _chain_points(
    chain: OptionsChain,
    as_of: date,
    cfg: SurfaceSettings,
) -> list[VolatilitySurfacePoint]:
    price = chain.underlying_price
    df = chain_to_frame(chain.options)
    df = df[df["implied_volatility"].notna() & (df["implied_volatility"] > 0)]
    if df.empty:
        return []

    lo, hi = cfg.strike_range
    df = df[(df["strike"] >= price * lo) & (df["strike"] <= price * hi)]
    df = df[df["expiration"].map(lambda e: (e - as_of).days >= 0)]
    if df.empty:
        return []

    # OTM side carries the information; at the money average both types
    atm_map = {
        exp: _find_atm_strike(group["strike"].unique(), price)
        for exp, group in df.groupby("expiration")
    }
    is_atm = df["strike"] == df["expiration"].map(atm_map)
    is_otm = ((df["option_type"] == "put") & (df["strike"] < price)) | (
        (df["option_type"] == "call") & (df["strike"] > price)
    )
    grouped = (
        df[is_atm | is_otm]
        .groupby(["expiration", "strike"])["implied_volatility"]
        .mean()
        .reset_index()
    )

    points: list[VolatilitySurfacePoint] = []
    for row in grouped.itertuples(index=False):
        points.append(VolatilitySurfacePoint(
            strike=float(row.strike),
            expiration=row.expiration,
            days_to_exp=(row.expiration - as_of).days,
            implied_vol=_clamp_iv(float(row.implied_volatility) * 100, cfg),
            moneyness=round(float(row.strike) / price, 4),
            source=PointSource.CHAIN,
        ))
    return points


def build_surface_from_chain(
    chain: OptionsChain,
    as_of: date | None = None,
    settings: SurfaceSettings | None = None,
) -> VolatilitySurfaceData:
    """Surface from real contract IVs, topped up parametrically when sparse.

    The parametric fill is anchored on the median ATM IV of the chain, so the
    synthetic points stay on the same level as the real ones.
    """
    cfg = settings or get_settings().surface
    today = as_of or date.today()
    price = chain.underlying_price

    points = _chain_points(chain, today, cfg)
    chain_count = len(points)
    if chain_count < cfg.min_chain_points:
        atm_ivs = [p.implied_vol for p in points if abs(p.moneyness - 1) < cfg.atm_band]
        base = float(np.median(atm_ivs)) if atm_ivs else base_iv_for(chain.symbol, cfg)
        taken = {(p.expiration, p.strike) for p in points}
        points.extend(
            p for p in _parametric_points(chain.symbol, price, today, base, cfg)
            if (p.expiration, p.strike) not in taken
        )

    points.sort(key=lambda p: (p.expiration, p.strike))
    return VolatilitySurfaceData(
        symbol=chain.symbol.upper(),
        as_of=today,
        current_price=price,
        points=points,
        surface_stats=compute_surface_stats(points, cfg),
        chain_point_count=chain_count,
        parametric_point_count=len(points) - chain_count,
    )


# --- Statistics ---


def compute_surface_stats(
    points: list[VolatilitySurfacePoint],
    settings: SurfaceSettings | None = None,
) -> SurfaceStats:
    """Average/min/max IV, put skew, and term structure shape."""
    cfg = settings or get_settings().surface
    if not points:
        return SurfaceStats(
            avg_iv=0.0, min_iv=0.0, max_iv=0.0, iv_skew=0.0,
            term_structure=TermStructureShape.FLAT,
        )

    ivs = np.array([p.implied_vol for p in points])
    moneyness = np.array([p.moneyness for p in points])
    dte = np.array([p.days_to_exp for p in points])

    atm = np.abs(moneyness - 1) < cfg.atm_band
    otm_put = moneyness < cfg.otm_put_moneyness
    skew = 0.0
    if atm.any() and otm_put.any():
        skew = float(ivs[otm_put].mean() - ivs[atm].mean())

    short = atm & (dte <= cfg.short_term_days)
    long = atm & (dte >= cfg.long_term_days)
    atm_short = float(ivs[short].mean()) if short.any() else None
    atm_long = float(ivs[long].mean()) if long.any() else None

    shape = TermStructureShape.FLAT
    if atm_short is not None and atm_long is not None:
        if atm_long > atm_short + cfg.term_threshold:
            shape = TermStructureShape.UPWARD
        elif atm_long < atm_short - cfg.term_threshold:
            shape = TermStructureShape.DOWNWARD

    return SurfaceStats(
        avg_iv=round(float(ivs.mean()), 2),
        min_iv=round(float(ivs.min()), 2),
        max_iv=round(float(ivs.max()), 2),
        iv_skew=round(skew, 2),
        term_structure=shape,
        atm_iv_short=round(atm_short, 2) if atm_short is not None else None,
        atm_iv_long=round(atm_long, 2) if atm_long is not None else None,
    )
