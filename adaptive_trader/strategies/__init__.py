"""Strategies: base interface, regime-specific implementations and the selector."""

from adaptive_trader.strategies.base import BaseStrategy, Suitability
from adaptive_trader.strategies.day_trading import DayTradingStrategy
from adaptive_trader.strategies.grid_trading import GridTradingStrategy
from adaptive_trader.strategies.mean_reversion import MeanReversionStrategy
from adaptive_trader.strategies.momentum import MomentumStrategy
from adaptive_trader.strategies.multi_indicator import MultiIndicatorStrategy
from adaptive_trader.strategies.registry import STRATEGY_CLASSES, create_strategy, parse_strategy_id
from adaptive_trader.strategies.selector import Evaluation, SelectorSettings, StrategySelector

__all__ = [
    "BaseStrategy",
    "Suitability",
    "DayTradingStrategy",
    "GridTradingStrategy",
    "MeanReversionStrategy",
    "MomentumStrategy",
    "MultiIndicatorStrategy",
    "STRATEGY_CLASSES",
    "create_strategy",
    "parse_strategy_id",
    "Evaluation",
    "SelectorSettings",
    "StrategySelector",
]
