"""Typed exceptions for the calculation engine and its data boundary."""

from __future__ import annotations


class StrategyCalculatorError(Exception):
    """Base class for engine errors."""


class DataUnavailable(StrategyCalculatorError):
    """Quote or chain fetch failed or timed out. Recoverable: retry or skip."""

    def __init__(self, provider: str, symbol: str, message: str) -> None:
        self.provider = provider
        self.symbol = symbol
        super().__init__(f"[{provider}] Failed to fetch {symbol}: {message}")


class NoLiquidContracts(StrategyCalculatorError):
    """Filtered candidate set is empty for one side of the chain."""

    def __init__(self, symbol: str, strategy_type: str, side: str) -> None:
        self.symbol = symbol
        self.strategy_type = strategy_type
        self.side = side
        super().__init__(f"No liquid {side} for {strategy_type} on {symbol}")


class StrikeSelectionFailed(StrategyCalculatorError):
    """Candidates exist but none satisfies the strategy's strike structure."""

    def __init__(self, symbol: str, strategy_type: str, reason: str) -> None:
        self.symbol = symbol
        self.strategy_type = strategy_type
        self.reason = reason
        super().__init__(f"Strike selection failed for {strategy_type} on {symbol}: {reason}")


class InvalidStrategyInput(StrategyCalculatorError, ValueError):
    """Malformed request: unknown strategy, non-positive price or DTE, missing fields."""
