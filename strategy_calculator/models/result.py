"""Typed calculation outcomes, so batch callers never have to catch."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from strategy_calculator.models.probability import ExpectedMove, ProbabilityAnalysis
from strategy_calculator.models.strategy import StrategyPosition, StrategyType


class CalculationStatus(StrEnum):
    OK = "ok"
    DATA_UNAVAILABLE = "data_unavailable"
    NO_LIQUID_CONTRACTS = "no_liquid_contracts"
    STRIKE_SELECTION_FAILED = "strike_selection_failed"
    INVALID_STRATEGY_INPUT = "invalid_strategy_input"
    FAILED = "failed"            # unexpected error, isolated to one batch entry


class IssueSeverity(StrEnum):
    WARNING = "warning"
    ERROR = "error"


class ChainIssue(BaseModel):
    """Data-quality problem found on a quoted contract."""

    model_config = ConfigDict(frozen=True)

    strike: float
    contract_type: str
    severity: IssueSeverity
    message: str


class CalculationError(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: CalculationStatus
    message: str
    side: str | None = None          # "calls" | "puts" when a single side failed


class CalculationResult(BaseModel):
    """Outcome of one strategy calculation for one symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    strategy_type: StrategyType | None = None
    status: CalculationStatus
    position: StrategyPosition | None = None
    probability: ProbabilityAnalysis | None = None
    expected_move: ExpectedMove | None = None
    error: CalculationError | None = None
    warnings: list[ChainIssue] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == CalculationStatus.OK

    @classmethod
    def failure(
        cls,
        symbol: str,
        strategy_type: StrategyType | None,
        status: CalculationStatus,
        message: str,
        side: str | None = None,
    ) -> CalculationResult:
        return cls(
            symbol=symbol,
            strategy_type=strategy_type,
            status=status,
            error=CalculationError(kind=status, message=message, side=side),
        )
