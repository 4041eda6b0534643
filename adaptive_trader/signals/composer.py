"""
Signal composer: weighted vote of SMA crossover, RSI, MACD, Bollinger and volume.
Each indicator adds weight * strength to the buy or sell side. Volume only
amplifies a side that already has at least one vote.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pandas as pd

from adaptive_trader.core.types import IndicatorReading, Signal, SignalAction, StrategyId, Vote
from adaptive_trader.indicators.interpret import interpret_bollinger, interpret_macd, interpret_rsi
from adaptive_trader.indicators.library import (
    analyze_volume,
    bollinger_bands,
    last_sma_signal,
    last_value,
    macd,
    rsi,
    round_half_up,
)

logger = logging.getLogger("adaptive_trader.signals")

DEFAULT_WEIGHTS: Dict[str, float] = {
    "sma": 1.0,
    "macd": 1.0,
    "rsi": 0.9,
    "bollinger": 0.8,
    "volume": 0.5,
}


@dataclass(frozen=True)
class ComposerParams:
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bb_period: int = 20
    bb_std: float = 2.0
    sma_short: int = 12
    sma_long: int = 26
    volume_period: int = 20
    min_candles: int = 100


def compose_signal(
    window: pd.DataFrame,
    weights: Optional[Dict[str, float]] = None,
    params: Optional[ComposerParams] = None,
    strategy: str = StrategyId.MULTI_INDICATOR.value,
) -> Signal:
    """
    Combine indicator readings on the latest candle into one Signal.
    A weight of 0 (or a missing key) disables that indicator.
    """
    weights = DEFAULT_WEIGHTS if weights is None else weights
    params = params or ComposerParams()
    if window is None or len(window) < params.min_candles:
        logger.debug("compose_signal: %d candles < %d", 0 if window is None else len(window), params.min_candles)
        return Signal.hold("Insufficient data for analysis", strategy=strategy)

    closes = window["close"].astype(float).tolist()
    price = closes[-1]
    votes: List[Tuple[Vote, float, str]] = []
    readings: List[IndicatorReading] = []

    w = weights.get("sma", 0.0)
    if w > 0:
        last = last_sma_signal(closes, params.sma_short, params.sma_long)
        vote = last[1] if last else Vote.NEUTRAL
        readings.append(IndicatorReading(
            "SMA", float(last[0]) if last else None, vote, 1.0 if last else 0.0,
            "crossover" if last else "no_crossover",
            f"SMA {vote.value.upper()}",
        ))
        if vote != Vote.NEUTRAL:
            votes.append((vote, w, "SMA"))

    w = weights.get("rsi", 0.0)
    if w > 0:
        reading = interpret_rsi(last_value(rsi(closes, params.rsi_period)))
        readings.append(reading)
        if reading.signal != Vote.NEUTRAL:
            votes.append((reading.signal, w * reading.strength, "RSI"))

    w = weights.get("macd", 0.0)
    if w > 0:
        result = macd(closes, params.macd_fast, params.macd_slow, params.macd_signal)
        reading = interpret_macd(last_value(result.histogram), last_value(result.histogram, 2))
        readings.append(reading)
        if reading.signal != Vote.NEUTRAL:
            votes.append((reading.signal, w * reading.strength, "MACD"))

    w = weights.get("bollinger", 0.0)
    if w > 0:
        bands = bollinger_bands(closes, params.bb_period, params.bb_std)
        reading = interpret_bollinger(price, last_value(bands.upper), last_value(bands.middle),
                                      last_value(bands.lower))
        readings.append(reading)
        if reading.signal != Vote.NEUTRAL:
            votes.append((reading.signal, w * reading.strength, "BB"))

    w = weights.get("volume", 0.0)
    if w > 0:
        vol = analyze_volume(window["volume"].astype(float).tolist(), params.volume_period)
        strength = "Strong" if vol.above_average else "Weak"
        readings.append(IndicatorReading(
            "Volume", vol.ratio, Vote.NEUTRAL, 0.0,
            "above_average" if vol.above_average else "normal",
            f"Volume {vol.ratio * 100:.0f}% of average - {strength}",
        ))
        if vol.above_average:
            sides = {v for v, _, _ in votes}
            for side in (Vote.BUY, Vote.SELL):
                if side in sides:
                    votes.append((side, w, "Volume"))

    buy_score = sum(weight for v, weight, _ in votes if v == Vote.BUY)
    sell_score = sum(weight for v, weight, _ in votes if v == Vote.SELL)
    total = buy_score + sell_score
    metadata = {"buy_score": round(buy_score, 4), "sell_score": round(sell_score, 4)}

    if total == 0 or buy_score == sell_score:
        return Signal(SignalAction.HOLD, 0, "Mixed signals, no clear direction", strategy=strategy,
                      price=price, readings=tuple(readings), metadata=metadata)

    if buy_score > sell_score:
        action, winner, label = SignalAction.BUY, Vote.BUY, "bullish"
        confidence = round_half_up(buy_score / total * 100)
    else:
        action, winner, label = SignalAction.SELL, Vote.SELL, "bearish"
        confidence = round_half_up(sell_score / total * 100)
    sources = [src for v, _, src in votes if v == winner]
    reason = f"{len(sources)} {label} indicators: {', '.join(sources)}"
    return Signal(action, confidence, reason, strategy=strategy, price=price,
                  readings=tuple(readings), metadata=metadata)


def is_signal_strong(signal: Signal, min_confidence: float = 60) -> bool:
    return signal.action != SignalAction.HOLD and signal.confidence >= min_confidence


def signal_strength_label(confidence: float) -> str:
    if confidence >= 80:
        return "Very Strong"
    if confidence >= 70:
        return "Strong"
    if confidence >= 60:
        return "Moderate"
    if confidence >= 50:
        return "Weak"
    return "Very Weak"
