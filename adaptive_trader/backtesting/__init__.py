"""Backtesting: deterministic candle replay and strategy comparison."""

from adaptive_trader.backtesting.engine import (
    BacktestConfig,
    BacktestEngine,
    BacktestRun,
    BacktestSummary,
    EquityPoint,
    StrategyComparison,
    compare_strategies,
    validate_backtest_config,
)

__all__ = [
    "BacktestConfig",
    "BacktestEngine",
    "BacktestRun",
    "BacktestSummary",
    "EquityPoint",
    "StrategyComparison",
    "compare_strategies",
    "validate_backtest_config",
]
