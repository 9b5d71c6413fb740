"""Calculation services."""

from strategy_calculator.service.cache import TTLCache
from strategy_calculator.service.calculator import OptionsStrategyCalculator

__all__ = [
    "OptionsStrategyCalculator",
    "TTLCache",
]
