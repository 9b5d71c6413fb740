"""Central configuration: loaded from YAML, overridable per-field."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field


# --- Settings models ---


class DteTier(BaseModel):
    """Offsets that apply up to and including ``max_dte`` days (None = no limit)."""

    max_dte: int | None = None
    otm_pct: float = 0.05
    wing_pct: float = 0.0
    wing_increments: int = 0


class FilterSettings(BaseModel):
    moneyness_band: float = 0.20
    relaxed_moneyness_band: float = 0.35
    absolute_floor: float = 5.0
    require_two_sided_quote: bool = True


class SelectionSettings(BaseModel):
    min_strike_offset: float = 1.0
    strangle_tiers: list[DteTier] = Field(default_factory=lambda: [
        DteTier(max_dte=7, otm_pct=0.03),
        DteTier(max_dte=30, otm_pct=0.05),
        DteTier(max_dte=None, otm_pct=0.08),
    ])
    iron_condor_tiers: list[DteTier] = Field(default_factory=lambda: [
        DteTier(max_dte=14, otm_pct=0.05, wing_pct=0.03),
        DteTier(max_dte=30, otm_pct=0.08, wing_pct=0.05),
        DteTier(max_dte=None, otm_pct=0.12, wing_pct=0.08),
    ])
    butterfly_tiers: list[DteTier] = Field(default_factory=lambda: [
        DteTier(max_dte=14, wing_increments=2),
        DteTier(max_dte=30, wing_increments=3),
        DteTier(max_dte=None, wing_increments=4),
    ])
    diagonal_short_otm_pct: float = 0.05
    diagonal_long_otm_pct: float = 0.02
    diagonal_front_dte: list[int] = Field(default_factory=lambda: [7, 30])
    diagonal_back_dte: list[int] = Field(default_factory=lambda: [45, 90])


class ProbabilitySettings(BaseModel):
    grid_std_devs: float = 4.0
    grid_points: int = 121
    grid_concentration: float = 1.5
    min_grid_price: float = 0.01


class SurfaceSettings(BaseModel):
    weekly_expirations: int = 8
    monthly_expirations: int = 6
    strike_range: list[float] = Field(default_factory=lambda: [0.70, 1.30])
    iv_floor: float = 5.0
    iv_ceiling: float = 150.0
    default_base_iv: float = 30.0
    base_iv: dict[str, float] = Field(default_factory=lambda: {
        "AAPL": 35.0,
        "TSLA": 55.0,
        "NVDA": 45.0,
        "SPY": 20.0,
        "QQQ": 25.0,
        "MSFT": 30.0,
        "GOOGL": 35.0,
        "AMZN": 40.0,
    })
    high_vol_symbols: list[str] = Field(default_factory=lambda: ["TSLA", "NVDA"])
    skew_factor: float = 0.3
    term_floor: float = 0.7
    otm_put_moneyness: float = 0.95
    atm_band: float = 0.05
    short_term_days: int = 30
    long_term_days: int = 90
    term_threshold: float = 2.0
    min_chain_points: int = 20


class EngineSettings(BaseModel):
    default_iv: float = 25.0
    contract_multiplier: int = 100
    fetch_timeout_seconds: float = 10.0
    batch_max_workers: int = 5
    batch_worker_limit: int = 10
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 256


class ValidationSettings(BaseModel):
    max_spread_pct_of_mid: float = 0.50
    max_otm_premium_pct: float = 0.50
    min_intrinsic_ratio: float = 0.95


class Settings(BaseModel):
    """Central config, loaded from YAML and overridable per-field."""

    filter: FilterSettings = Field(default_factory=FilterSettings)
    selection: SelectionSettings = Field(default_factory=SelectionSettings)
    probability: ProbabilitySettings = Field(default_factory=ProbabilitySettings)
    surface: SurfaceSettings = Field(default_factory=SurfaceSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)


# --- Loading ---

_DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
_USER_CONFIG_PATH = Path.home() / ".strategy_calculator" / "config.yaml"

_cached_settings: Settings | None = None


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base. Returns new dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(
    user_config_path: Path | None = None,
    _force_reload: bool = False,
) -> Settings:
    """Load defaults.yaml, merge ~/.strategy_calculator/config.yaml if present.

    Args:
        user_config_path: Override path for user config file.
        _force_reload: Bypass cache (for testing).

    Returns:
        Merged Settings instance.
    """
    global _cached_settings
    if _cached_settings is not None and not _force_reload:
        return _cached_settings

    # Layer 1: package defaults
    with open(_DEFAULTS_PATH) as f:
        defaults = yaml.safe_load(f) or {}

    # Layer 2: user overrides
    user_path = user_config_path or _USER_CONFIG_PATH
    if user_path.exists():
        with open(user_path) as f:
            user = yaml.safe_load(f) or {}
        merged = _deep_merge(defaults, user)
    else:
        merged = defaults

    _cached_settings = Settings(**merged)
    return _cached_settings


def get_settings() -> Settings:
    """Get cached settings (singleton). Loads on first call."""
    return load_settings()


def reset_settings() -> None:
    """Clear cached settings. Next get_settings() will reload from YAML."""
    global _cached_settings
    _cached_settings = None
