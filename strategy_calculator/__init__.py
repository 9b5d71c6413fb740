"""Options strategy calculation engine: strike selection, pricing, and outcome probabilities."""

# Config
from strategy_calculator.config import Settings, get_settings, load_settings

# Models
from strategy_calculator.models.chain import ContractType, OptionContract, OptionsChain, StockQuote
from strategy_calculator.models.strategy import (
    UNBOUNDED,
    DistributionFlag,
    LegAction,
    LegSelection,
    OrderSide,
    PositionGreeks,
    RiskProfile,
    SelectionRule,
    SelectionTrace,
    StrategyLeg,
    StrategyPosition,
    StrategyType,
    Unbounded,
)
from strategy_calculator.models.request import (
    ButterflySpread,
    DiagonalCalendar,
    IronCondor,
    LongStraddle,
    LongStrangle,
    ShortStraddle,
    ShortStrangle,
    StrategyRequest,
)
from strategy_calculator.models.probability import (
    ExpectedMove,
    ExpectedMoveBand,
    ProbabilityAnalysis,
    ProbabilityCurvePoint,
)
from strategy_calculator.models.vol_surface import (
    SurfaceStats,
    TermStructureShape,
    VolatilitySurfaceData,
    VolatilitySurfacePoint,
)
from strategy_calculator.models.result import (
    CalculationError,
    CalculationResult,
    CalculationStatus,
    ChainIssue,
)

# Errors
from strategy_calculator.data.exceptions import (
    DataUnavailable,
    InvalidStrategyInput,
    NoLiquidContracts,
    StrategyCalculatorError,
    StrikeSelectionFailed,
)

# Pure functions
from strategy_calculator.features.contract_filter import FilteredChain, filter_contracts
from strategy_calculator.features.strike_selection import StrikeSelection, select_custom_strikes, select_strikes
from strategy_calculator.features.pricing import PricedStrategy, position_pnl, price_strategy
from strategy_calculator.features.probability import compute_probability
from strategy_calculator.features.expected_move import compute_expected_move
from strategy_calculator.features.vol_surface import (
    build_parametric_surface,
    build_surface_from_chain,
    compute_surface_stats,
)

# Data + services
from strategy_calculator.data.provider import OptionsDataProvider
from strategy_calculator.data.frame_provider import FrameChainProvider
from strategy_calculator.service.cache import TTLCache
from strategy_calculator.service.calculator import OptionsStrategyCalculator
