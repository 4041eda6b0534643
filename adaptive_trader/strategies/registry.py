"""Strategy id -> implementation class, and construction with config overrides."""

from __future__ import annotations
from typing import Dict, Optional, Type

from adaptive_trader.core.config import ConfigurationError
from adaptive_trader.core.types import StrategyId
from adaptive_trader.strategies.base import BaseStrategy, risk_profile_with_overrides
from adaptive_trader.strategies.day_trading import DayTradingStrategy
from adaptive_trader.strategies.grid_trading import GridTradingStrategy
from adaptive_trader.strategies.mean_reversion import MeanReversionStrategy
from adaptive_trader.strategies.momentum import MomentumStrategy
from adaptive_trader.strategies.multi_indicator import MultiIndicatorStrategy

STRATEGY_CLASSES: Dict[StrategyId, Type[BaseStrategy]] = {
    StrategyId.MOMENTUM: MomentumStrategy,
    StrategyId.MEAN_REVERSION: MeanReversionStrategy,
    StrategyId.GRID_TRADING: GridTradingStrategy,
    StrategyId.DAY_TRADING: DayTradingStrategy,
    StrategyId.MULTI_INDICATOR: MultiIndicatorStrategy,
}


def parse_strategy_id(value) -> StrategyId:
    """Accept a StrategyId or its string value; raise ConfigurationError otherwise."""
    if isinstance(value, StrategyId):
        return value
    try:
        return StrategyId(str(value))
    except ValueError:
        valid = ", ".join(s.value for s in StrategyId)
        raise ConfigurationError(f"Unknown strategy '{value}'. Valid: {valid}") from None


def create_strategy(
    strategy_id,
    overrides: Optional[dict] = None,
    composer_weights: Optional[Dict[str, float]] = None,
) -> BaseStrategy:
    """
    Build a strategy. `overrides` holds risk profile keys (stop_loss_pct, take_profit_pct,
    use_trailing_stop, trailing_stop_pct, use_take_profit_ladder, max_hold_minutes, min_hold_minutes).
    """
    sid = parse_strategy_id(strategy_id)
    cls = STRATEGY_CLASSES[sid]
    profile = risk_profile_with_overrides(cls.default_risk_profile, overrides)
    if sid == StrategyId.MULTI_INDICATOR:
        return MultiIndicatorStrategy(risk_profile=profile, weights=composer_weights)
    return cls(risk_profile=profile)
