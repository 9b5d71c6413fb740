"""Normal distribution helpers and a rough Black-Scholes price.

The CDF uses the Abramowitz & Stegun 7.1.26 rational approximation of erf
(absolute error < 1.5e-7), vectorised over numpy arrays.
"""

from __future__ import annotations

import math

import numpy as np

_SQRT2 = math.sqrt(2.0)
_INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)

# A&S 7.1.26 coefficients
_P = 0.3275911
_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429


def norm_cdf(x):
    """Standard normal CDF. Accepts a float or an ndarray, returns the same kind."""
    arr = np.asarray(x, dtype=float)
    z = np.abs(arr) / _SQRT2
    t = 1.0 / (1.0 + _P * z)
    poly = ((((_A5 * t + _A4) * t + _A3) * t + _A2) * t + _A1) * t
    erf = 1.0 - poly * np.exp(-z * z)
    cdf = 0.5 * (1.0 + np.sign(arr) * erf)
    cdf = np.clip(cdf, 0.0, 1.0)
    if cdf.ndim == 0:
        return float(cdf)
    return cdf


def norm_pdf(x):
    """Standard normal density. Accepts a float or an ndarray."""
    arr = np.asarray(x, dtype=float)
    pdf = _INV_SQRT_2PI * np.exp(-0.5 * arr * arr)
    if pdf.ndim == 0:
        return float(pdf)
    return pdf


def bs_price(
    underlying,
    strike: float,
    dte_years: float,
    iv: float,
    option_type: str,
):
    """Black-Scholes option price (no dividends, risk-free ~0).

    ``underlying`` may be an ndarray of prices. ``iv`` is an annualized decimal.
    Falls back to intrinsic value when time or vol is exhausted.
    """
    s = np.asarray(underlying, dtype=float)
    if dte_years <= 0 or iv <= 0:
        if option_type == "call":
            value = np.maximum(s - strike, 0.0)
        else:
            value = np.maximum(strike - s, 0.0)
        return float(value) if value.ndim == 0 else value

    sqrt_t = math.sqrt(dte_years)
    safe_s = np.maximum(s, 1e-9)
    d1 = (np.log(safe_s / strike) + 0.5 * iv * iv * dte_years) / (iv * sqrt_t)
    d2 = d1 - iv * sqrt_t

    if option_type == "call":
        value = safe_s * norm_cdf(d1) - strike * norm_cdf(d2)
    else:
        value = strike * norm_cdf(-d2) - safe_s * norm_cdf(-d1)
    value = np.maximum(value, 0.0)
    return float(value) if np.ndim(value) == 0 else value
