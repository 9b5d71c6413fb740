"""IV percentile estimates when no IV history is available."""

from __future__ import annotations

import numpy as np

from strategy_calculator.models.chain import OptionContract


def iv_percentile_from_chain(target_iv_pct: float, contracts: list[OptionContract]) -> float | None:
    """Share of the chain's contract IVs below ``target_iv_pct``, clamped to 1-99.

    Returns None when no contract carries an IV.
    """
    ivs = np.array(
        [c.implied_volatility * 100 for c in contracts if c.implied_volatility],
        dtype=float,
    )
    if ivs.size == 0:
        return None
    pct = float(np.count_nonzero(ivs < target_iv_pct)) / ivs.size * 100
    return float(min(max(round(pct), 1), 99))


def estimate_iv_percentile(iv_pct: float) -> float:
    """Piecewise heuristic: <=15 -> 10-30, <=35 -> 30-70, above -> 70-90."""
    if iv_pct <= 15:
        return round(10 + max(iv_pct, 0.0) / 15 * 20, 1)
    if iv_pct <= 35:
        return round(30 + (iv_pct - 15) / 20 * 40, 1)
    return round(min(70 + (iv_pct - 35) / 65 * 20, 90.0), 1)
