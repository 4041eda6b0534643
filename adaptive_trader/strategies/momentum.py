"""
Momentum: ride strong trends with MACD, EMA and volume confirmation.
Long: MACD bullish, price above EMA20, momentum above threshold, volume >= 1.2x average.
Short: the mirror image.
"""

from __future__ import annotations
from datetime import datetime
from typing import Optional

import pandas as pd

from adaptive_trader.core.types import Position, RiskProfile, Side, Signal, SignalAction, StrategyId, Vote
from adaptive_trader.indicators.interpret import interpret_macd
from adaptive_trader.indicators.library import (
    analyze_volume,
    ema,
    last_value,
    macd,
    momentum,
    pct_returns,
    round_half_up,
    std,
)
from adaptive_trader.strategies.base import BaseStrategy, Suitability


class MomentumStrategy(BaseStrategy):
    strategy_id = StrategyId.MOMENTUM
    name = "Momentum"
    description = "Rides strong trends with MACD and volume confirmation"
    default_risk_profile = RiskProfile(
        stop_loss_pct=2.5,
        take_profit_pct=6.0,
        use_trailing_stop=True,
        trailing_stop_pct=2.0,
    )

    def __init__(
        self,
        risk_profile: Optional[RiskProfile] = None,
        macd_fast: int = 12,
        macd_slow: int = 26,
        macd_signal: int = 9,
        ema_period: int = 20,
        momentum_period: int = 14,
        volume_period: int = 20,
        min_momentum: float = 1.0,
        min_volume_ratio: float = 1.2,
    ):
        super().__init__(risk_profile)
        self.macd_fast = macd_fast
        self.macd_slow = macd_slow
        self.macd_signal = macd_signal
        self.ema_period = ema_period
        self.momentum_period = momentum_period
        self.volume_period = volume_period
        self.min_momentum = min_momentum
        self.min_volume_ratio = min_volume_ratio

    def evaluate(self, window: pd.DataFrame, now: Optional[datetime] = None) -> Signal:
        if not self.has_enough_data(window):
            return self.insufficient(window)
        closes = window["close"].astype(float).tolist()
        price = closes[-1]

        result = macd(closes, self.macd_fast, self.macd_slow, self.macd_signal)
        reading = interpret_macd(last_value(result.histogram), last_value(result.histogram, 2))
        trend_ema = last_value(ema(closes, self.ema_period))
        above_ema = trend_ema is not None and price > trend_ema
        mom = last_value(momentum(closes, self.momentum_period)) or 0.0
        vol = analyze_volume(window["volume"].astype(float).tolist(), self.volume_period)
        e20 = last_value(ema(closes, 20))
        e50 = last_value(ema(closes, 50))
        trend_strength = abs((e20 - e50) / e50) * 100 if e20 is not None and e50 else 0.0

        metadata = {
            "macd_histogram": reading.value,
            "momentum_pct": mom,
            "volume_ratio": vol.ratio,
            "trend_strength": trend_strength,
            "ema20": e20,
            "ema50": e50,
        }
        volume_ok = vol.ratio >= self.min_volume_ratio

        if reading.signal == Vote.BUY and above_ema and mom > self.min_momentum and volume_ok:
            action, label = SignalAction.BUY, "bullish"
        elif reading.signal == Vote.SELL and not above_ema and mom < -self.min_momentum and volume_ok:
            action, label = SignalAction.SELL, "bearish"
        else:
            issues = []
            if reading.signal == Vote.NEUTRAL:
                issues.append("MACD neutral")
            if abs(mom) < self.min_momentum:
                issues.append(f"Low momentum ({mom:.1f}%)")
            if not volume_ok:
                issues.append(f"Low volume ({vol.ratio * 100:.0f}%)")
            if not issues:
                issues.append("indicators disagree")
            return Signal(SignalAction.HOLD, 0, f"No strong momentum: {', '.join(issues)}",
                          strategy=self.strategy_id.value, price=price, readings=(reading,), metadata=metadata)

        confidence = round_half_up((
            reading.strength * 0.4
            + min(abs(mom) / 5.0, 1.0) * 0.3
            + min((vol.ratio - 1.0) / 0.5, 1.0) * 0.2
            + min(trend_strength / 2.0, 1.0) * 0.1
        ) * 100)
        reason = (f"Strong {label} momentum: MACD {reading.condition}, {mom:.1f}% momentum, "
                  f"{vol.ratio * 100:.0f}% volume")
        return Signal(action, confidence, reason, strategy=self.strategy_id.value, price=price,
                      readings=(reading,), metadata=metadata)

    def check_exit(self, position: Position, window: pd.DataFrame, now: Optional[datetime] = None) -> Optional[str]:
        """Exit when the MACD histogram crosses against the position."""
        if window is None or len(window) < 50:
            return None
        result = macd(window["close"].astype(float).tolist(), self.macd_fast, self.macd_slow, self.macd_signal)
        hist = last_value(result.histogram)
        prev = last_value(result.histogram, 2)
        if hist is None or prev is None:
            return None
        if position.side == Side.LONG and hist < 0 <= prev:
            return "momentum-reversal-bearish"
        if position.side == Side.SHORT and hist > 0 >= prev:
            return "momentum-reversal-bullish"
        return None

    def suitability(self, window: pd.DataFrame) -> Suitability:
        if not self.has_enough_data(window):
            return Suitability(False, 0, "Insufficient data")
        closes = window["close"].astype(float).tolist()
        e20 = last_value(ema(closes, 20))
        e50 = last_value(ema(closes, 50))
        separation = abs((e20 - e50) / e50) * 100 if e20 is not None and e50 else 0.0
        mom = abs(last_value(momentum(closes, 14)) or 0.0)
        returns_vol = std(pct_returns(closes[-50:]))

        trend_score = min(separation / 1.0, 1.0)
        momentum_score = min(mom / 1.0, 1.0)
        volatility_score = min(returns_vol / 1.0, 1.0)
        score = (trend_score * 0.4 + momentum_score * 0.4 + volatility_score * 0.2) * 100
        suitable = score >= self.suitability_cutoff
        label = "Strong trending market" if suitable else "Weak trend"
        return Suitability(
            suitable=suitable,
            score=round_half_up(score),
            reason=f"{label}: {separation:.2f}% trend, {mom:.2f}% momentum",
            metrics={"ema_separation": separation, "momentum_pct": mom, "volatility_pct": returns_vol},
        )
