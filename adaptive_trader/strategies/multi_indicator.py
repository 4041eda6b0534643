"""Multi-indicator fallback: the weighted signal composer with every indicator enabled."""

from __future__ import annotations
from datetime import datetime
from typing import Dict, Optional

import pandas as pd

from adaptive_trader.core.types import RiskProfile, Signal, StrategyId
from adaptive_trader.signals.composer import DEFAULT_WEIGHTS, ComposerParams, compose_signal
from adaptive_trader.strategies.base import BaseStrategy, Suitability


class MultiIndicatorStrategy(BaseStrategy):
    strategy_id = StrategyId.MULTI_INDICATOR
    name = "Multi-Indicator"
    description = "Combines SMA, RSI, MACD, Bollinger Bands and volume"
    default_risk_profile = RiskProfile(
        stop_loss_pct=2.0,
        take_profit_pct=5.0,
        use_trailing_stop=True,
        trailing_stop_pct=1.5,
    )

    def __init__(
        self,
        risk_profile: Optional[RiskProfile] = None,
        weights: Optional[Dict[str, float]] = None,
        params: Optional[ComposerParams] = None,
    ):
        super().__init__(risk_profile)
        self.weights = dict(weights) if weights else dict(DEFAULT_WEIGHTS)
        self.params = params or ComposerParams()

    def evaluate(self, window: pd.DataFrame, now: Optional[datetime] = None) -> Signal:
        return compose_signal(window, self.weights, self.params, strategy=self.strategy_id.value)

    def suitability(self, window: pd.DataFrame) -> Suitability:
        if not self.has_enough_data(window):
            return Suitability(False, 0, "Insufficient data")
        return Suitability(True, 50, "General-purpose fallback, no regime preference")
