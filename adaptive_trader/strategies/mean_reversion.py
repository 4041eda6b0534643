"""Mean reversion: buy oversold, sell overbought, target a return to the Bollinger middle band."""

from __future__ import annotations
import math
from datetime import datetime
from typing import Optional

import pandas as pd

from adaptive_trader.core.types import Position, RiskProfile, Side, Signal, SignalAction, StrategyId
from adaptive_trader.indicators.interpret import interpret_bollinger, interpret_rsi
from adaptive_trader.indicators.library import (
    bollinger_bands,
    last_value,
    pct_returns,
    percent_b,
    round_half_up,
    rsi,
    sma,
    std,
)
from adaptive_trader.strategies.base import BaseStrategy, Suitability


class MeanReversionStrategy(BaseStrategy):
    strategy_id = StrategyId.MEAN_REVERSION
    name = "Mean Reversion"
    description = "Buys oversold, sells overbought, expects return to mean"
    default_risk_profile = RiskProfile(
        stop_loss_pct=1.5,
        take_profit_pct=3.0,
        use_trailing_stop=False,
        trailing_stop_pct=0.0,
    )

    def __init__(
        self,
        risk_profile: Optional[RiskProfile] = None,
        rsi_period: int = 14,
        rsi_oversold: float = 30.0,
        rsi_overbought: float = 70.0,
        bb_period: int = 20,
        bb_std: float = 2.0,
        mean_exit_band: float = 0.01,
    ):
        super().__init__(risk_profile)
        self.rsi_period = rsi_period
        self.rsi_oversold = rsi_oversold
        self.rsi_overbought = rsi_overbought
        self.bb_period = bb_period
        self.bb_std = bb_std
        self.mean_exit_band = mean_exit_band

    def evaluate(self, window: pd.DataFrame, now: Optional[datetime] = None) -> Signal:
        if not self.has_enough_data(window):
            return self.insufficient(window)
        closes = window["close"].astype(float).tolist()
        price = closes[-1]
        current_rsi = last_value(rsi(closes, self.rsi_period))
        bands = bollinger_bands(closes, self.bb_period, self.bb_std)
        upper, middle, lower = last_value(bands.upper), last_value(bands.middle), last_value(bands.lower)
        if current_rsi is None or middle is None:
            return self.insufficient(window)

        pb = percent_b(price, upper, lower)
        distance = abs(price - middle) / middle * 100 if middle else 0.0
        readings = (interpret_rsi(current_rsi), interpret_bollinger(price, upper, middle, lower))
        metadata = {
            "rsi": current_rsi,
            "percent_b": pb,
            "mean_price": middle,
            "target_price": middle,
            "distance_from_mean_pct": distance,
        }

        if current_rsi < self.rsi_oversold and pb < 0.2:
            rsi_strength = (self.rsi_oversold - current_rsi) / self.rsi_oversold
            bb_strength = (0.2 - pb) / 0.2
            confidence = min(round_half_up((rsi_strength * 0.6 + bb_strength * 0.4) * 100), 100)
            reason = (f"Oversold mean reversion: RSI {current_rsi:.1f} ({self.rsi_oversold:g}), "
                      f"Price at {pb * 100:.0f}% of BB")
            action = SignalAction.BUY
        elif current_rsi > self.rsi_overbought and pb > 0.8:
            rsi_strength = (current_rsi - self.rsi_overbought) / (100 - self.rsi_overbought)
            bb_strength = (pb - 0.8) / 0.2
            confidence = min(round_half_up((rsi_strength * 0.6 + bb_strength * 0.4) * 100), 100)
            reason = (f"Overbought mean reversion: RSI {current_rsi:.1f} ({self.rsi_overbought:g}), "
                      f"Price at {pb * 100:.0f}% of BB")
            action = SignalAction.SELL
        else:
            reason = (f"No mean reversion setup: RSI {current_rsi:.1f}, Price at {pb * 100:.0f}% of BB "
                      f"({distance:.1f}% from mean)")
            return Signal(SignalAction.HOLD, 0, reason, strategy=self.strategy_id.value, price=price,
                          readings=readings, metadata=metadata)

        metadata["potential_profit_pct"] = abs(middle - price) / price * 100 if price else 0.0
        return Signal(action, confidence, reason, strategy=self.strategy_id.value, price=price,
                      readings=readings, metadata=metadata)

    def check_exit(self, position: Position, window: pd.DataFrame, now: Optional[datetime] = None) -> Optional[str]:
        """Exit once price is back within 1% of the mean."""
        if window is None or len(window) < self.bb_period:
            return None
        closes = window["close"].astype(float).tolist()
        middle = last_value(bollinger_bands(closes, self.bb_period, self.bb_std).middle)
        if middle is None:
            return None
        price = closes[-1]
        if position.side == Side.LONG and price >= middle * (1 - self.mean_exit_band):
            return "mean-reversion-target"
        if position.side == Side.SHORT and price <= middle * (1 + self.mean_exit_band):
            return "mean-reversion-target"
        return None

    def suitability(self, window: pd.DataFrame) -> Suitability:
        if not self.has_enough_data(window):
            return Suitability(False, 0, "Insufficient data")
        closes = window["close"].astype(float).tolist()
        returns_vol = std(pct_returns(closes))
        mean = sma(closes, 50)
        deviations = [
            abs((closes[i] - mean[i]) / mean[i])
            for i in range(len(closes) - 50, len(closes))
            if not math.isnan(mean[i]) and mean[i] != 0
        ]
        avg_dev = sum(deviations) / len(deviations) * 100 if deviations else 0.0
        low, high = self.volatility_band
        volatility_score = 1.0 if low <= returns_vol <= high else 0.5
        ranging_score = 1.0 if avg_dev < 2.0 else 0.5
        score = (volatility_score * 0.5 + ranging_score * 0.5) * 100
        suitable = score >= self.suitability_cutoff
        if suitable:
            reason = f"Good ranging market: {returns_vol:.2f}% volatility, {avg_dev:.2f}% avg deviation"
        else:
            reason = f"Not ideal: {returns_vol:.2f}% volatility, {avg_dev:.2f}% avg deviation from mean"
        return Suitability(
            suitable=suitable,
            score=round_half_up(score),
            reason=reason,
            metrics={"volatility_pct": returns_vol, "avg_deviation_pct": avg_dev},
        )
