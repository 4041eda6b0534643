"""
Market regime classifier: trend, volatility and range analyses combined into
one of trending-up / trending-down / ranging / volatile / choppy, plus the
strategy best suited to that regime.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

import pandas as pd

from adaptive_trader.core.types import StrategyId, window_time
from adaptive_trader.indicators.library import (
    atr,
    bollinger_bands,
    ema,
    last_value,
    momentum,
    round_half_up,
    sma,
)

logger = logging.getLogger("adaptive_trader.regime")


class RegimeType(str, Enum):
    TRENDING_UP = "trending-up"
    TRENDING_DOWN = "trending-down"
    RANGING = "ranging"
    VOLATILE = "volatile"
    CHOPPY = "choppy"


REGIME_STRATEGIES: Dict[RegimeType, Optional[StrategyId]] = {
    RegimeType.TRENDING_UP: StrategyId.MOMENTUM,
    RegimeType.TRENDING_DOWN: StrategyId.MOMENTUM,
    RegimeType.RANGING: StrategyId.MEAN_REVERSION,
    RegimeType.VOLATILE: StrategyId.GRID_TRADING,
    RegimeType.CHOPPY: None,
}


@dataclass(frozen=True)
class RegimeThresholds:
    """Hand-tuned cut-offs. Defaults reproduce the reference behaviour; recalibrate per market."""
    min_candles: int = 100
    strong_trend: float = 70.0
    weak_trend: float = 50.0
    separation_scale: float = 20.0
    momentum_scale: float = 10.0
    momentum_period: int = 14
    atr_period: int = 14
    bb_period: int = 20
    bb_std: float = 2.0
    high_atr_pct: float = 2.0
    high_bb_width: float = 4.0
    moderate_atr_pct: float = 1.0
    moderate_bb_width: float = 2.0
    range_lookback: int = 50
    full_oscillations: int = 8
    max_avg_deviation: float = 2.0
    max_deviation: float = 5.0
    ranging_score: float = 0.6
    choppy_confidence: int = 30


@dataclass(frozen=True)
class TrendAnalysis:
    aligned: bool
    direction: str  # "up" | "down" | "sideways"
    strength: int
    ema20: Optional[float]
    ema50: Optional[float]
    ema100: Optional[float]
    ema_separation: float
    momentum_pct: float


@dataclass(frozen=True)
class VolatilityAnalysis:
    level: str  # "high" | "moderate" | "low"
    score: float
    atr: Optional[float]
    atr_pct: float
    bb_width: float

    @property
    def high(self) -> bool:
        return self.level == "high"


@dataclass(frozen=True)
class RangeAnalysis:
    ranging: bool
    score: float
    oscillations: int
    avg_deviation: float
    max_deviation: float
    mean: Optional[float]


@dataclass(frozen=True)
class RegimeAssessment:
    regime: RegimeType
    confidence: int
    reason: str
    recommended_strategy: Optional[StrategyId]
    trend: Optional[TrendAnalysis] = None
    volatility: Optional[VolatilityAnalysis] = None
    range: Optional[RangeAnalysis] = None
    price: Optional[float] = None
    assessed_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RegimeChange:
    changed: bool
    message: str
    previous: Optional[RegimeType] = None
    current: Optional[RegimeType] = None
    from_strategy: Optional[StrategyId] = None
    to_strategy: Optional[StrategyId] = None
    confidence_delta: int = 0
    should_switch: bool = False


def analyze_trend(closes, t: RegimeThresholds) -> TrendAnalysis:
    e20 = last_value(ema(closes, 20))
    e50 = last_value(ema(closes, 50))
    e100 = last_value(ema(closes, 100))
    up = down = False
    separation = 0.0
    if e20 is not None and e50 is not None and e100 is not None:
        up = e20 > e50 > e100
        down = e20 < e50 < e100
        if e50 != 0:
            separation = abs((e20 - e50) / e50) * 100
    mom = last_value(momentum(closes, t.momentum_period))
    mom_pct = abs(mom) if mom is not None else 0.0
    strength = round_half_up(min(separation * t.separation_scale + mom_pct * t.momentum_scale, 100.0))
    direction = "up" if up else "down" if down else "sideways"
    return TrendAnalysis(
        aligned=up or down,
        direction=direction,
        strength=strength,
        ema20=e20,
        ema50=e50,
        ema100=e100,
        ema_separation=separation,
        momentum_pct=mom_pct,
    )


def analyze_volatility(window: pd.DataFrame, t: RegimeThresholds) -> VolatilityAnalysis:
    closes = window["close"].astype(float).tolist()
    price = closes[-1]
    current_atr = last_value(atr(window["high"].tolist(), window["low"].tolist(), closes, t.atr_period))
    atr_pct = current_atr / price * 100 if current_atr is not None and price else 0.0
    bands = bollinger_bands(closes, t.bb_period, t.bb_std)
    upper, middle, lower = last_value(bands.upper), last_value(bands.middle), last_value(bands.lower)
    bb_width = (upper - lower) / middle * 100 if middle else 0.0
    if atr_pct > t.high_atr_pct or bb_width > t.high_bb_width:
        level, score = "high", 0.9
    elif atr_pct > t.moderate_atr_pct or bb_width > t.moderate_bb_width:
        level, score = "moderate", 0.6
    else:
        level, score = "low", 0.3
    return VolatilityAnalysis(level=level, score=score, atr=current_atr, atr_pct=atr_pct, bb_width=bb_width)


def analyze_range(closes, t: RegimeThresholds) -> RangeAnalysis:
    """Oscillation around SMA50 over the last `range_lookback` bars."""
    lookback = t.range_lookback
    mean = sma(closes, 50)
    oscillations = 0
    total_dev = 0.0
    max_dev = 0.0
    for i in range(max(len(closes) - lookback, 1), len(closes)):
        if math.isnan(mean[i]) or math.isnan(mean[i - 1]) or mean[i] == 0:
            continue
        prev_above = closes[i - 1] > mean[i - 1]
        cur_above = closes[i] > mean[i]
        if prev_above != cur_above:
            oscillations += 1
        dev = abs((closes[i] - mean[i]) / mean[i]) * 100
        total_dev += dev
        max_dev = max(max_dev, dev)
    avg_dev = total_dev / lookback
    osc_score = min(oscillations / t.full_oscillations, 1.0)
    dev_score = 1.0 if avg_dev < t.max_avg_deviation else t.max_avg_deviation / avg_dev
    bounds_score = 1.0 if max_dev < t.max_deviation else t.max_deviation / max_dev
    score = osc_score * 0.5 + dev_score * 0.3 + bounds_score * 0.2
    return RangeAnalysis(
        ranging=score >= t.ranging_score,
        score=score,
        oscillations=oscillations,
        avg_deviation=avg_dev,
        max_deviation=max_dev,
        mean=last_value(mean),
    )


def detect_regime(
    window: pd.DataFrame,
    thresholds: Optional[RegimeThresholds] = None,
    now: Optional[datetime] = None,
) -> RegimeAssessment:
    """Classify the latest window. Fewer than `min_candles` candles gives choppy with 0 confidence."""
    t = thresholds or RegimeThresholds()
    if window is None or len(window) < t.min_candles:
        return RegimeAssessment(
            regime=RegimeType.CHOPPY,
            confidence=0,
            reason="Insufficient data for regime detection",
            recommended_strategy=None,
            assessed_at=now,
        )
    now = now or window_time(window)
    closes = window["close"].astype(float).tolist()
    trend = analyze_trend(closes, t)
    vol = analyze_volatility(window, t)
    rng = analyze_range(closes, t)

    if trend.aligned and trend.strength > t.strong_trend:
        regime = RegimeType.TRENDING_UP if trend.direction == "up" else RegimeType.TRENDING_DOWN
        confidence = trend.strength
        reason = (f"Strong {trend.direction}trend: {trend.strength}% strength, "
                  f"{trend.ema_separation:.2f}% EMA separation")
    elif vol.high and rng.ranging:
        regime = RegimeType.VOLATILE
        confidence = round_half_up((vol.score * 0.6 + rng.score * 0.4) * 100)
        reason = f"High volatility ranging: {vol.atr_pct:.2f}% ATR, {rng.oscillations} price swings"
    elif rng.ranging and not vol.high:
        regime = RegimeType.RANGING
        confidence = round_half_up(rng.score * 100)
        reason = f"Ranging market: {rng.oscillations} oscillations, {vol.atr_pct:.2f}% volatility"
    elif trend.aligned and trend.strength > t.weak_trend:
        regime = RegimeType.TRENDING_UP if trend.direction == "up" else RegimeType.TRENDING_DOWN
        confidence = trend.strength
        reason = f"Moderate {trend.direction}trend: {trend.strength}% strength"
    else:
        regime = RegimeType.CHOPPY
        confidence = t.choppy_confidence
        reason = (f"Choppy market: No clear trend ({trend.strength}%), "
                  f"{vol.level} volatility ({vol.atr_pct:.2f}%)")

    return RegimeAssessment(
        regime=regime,
        confidence=int(confidence),
        reason=reason,
        recommended_strategy=REGIME_STRATEGIES[regime],
        trend=trend,
        volatility=vol,
        range=rng,
        price=closes[-1],
        assessed_at=now,
    )


def detect_regime_change(previous: Optional[RegimeAssessment], current: RegimeAssessment) -> RegimeChange:
    if previous is None:
        return RegimeChange(changed=False, message="Initial regime detection", current=current.regime,
                            to_strategy=current.recommended_strategy)
    if previous.regime == current.regime:
        return RegimeChange(changed=False, message=f"Regime stable: {current.regime.value}",
                            previous=previous.regime, current=current.regime,
                            from_strategy=previous.recommended_strategy,
                            to_strategy=current.recommended_strategy)
    return RegimeChange(
        changed=True,
        message=(f"Regime changed: {previous.regime.value} -> {current.regime.value} "
                 f"({current.confidence}% confidence)"),
        previous=previous.regime,
        current=current.regime,
        from_strategy=previous.recommended_strategy,
        to_strategy=current.recommended_strategy,
        confidence_delta=current.confidence - previous.confidence,
        should_switch=previous.recommended_strategy != current.recommended_strategy,
    )


def regime_summary(assessment: RegimeAssessment) -> str:
    strategy = assessment.recommended_strategy.value if assessment.recommended_strategy else "hold"
    return f"{assessment.regime.value.upper()} ({assessment.confidence}%) -> Strategy: {strategy}"
