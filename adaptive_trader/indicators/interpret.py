"""Turn raw indicator values into buy/sell/neutral readings with a 0-1 strength."""

from __future__ import annotations
from typing import Optional

from adaptive_trader.core.types import IndicatorReading, Vote
from adaptive_trader.indicators.library import is_missing, percent_b


def interpret_rsi(value: Optional[float]) -> IndicatorReading:
    if is_missing(value):
        return IndicatorReading("RSI", None, Vote.NEUTRAL, 0.0, "calculating")
    if value > 70:
        return IndicatorReading("RSI", value, Vote.SELL, min((value - 70) / 30, 1.0), "overbought",
                                f"RSI at {value:.1f} - Overbought")
    if value < 30:
        return IndicatorReading("RSI", value, Vote.BUY, min((30 - value) / 30, 1.0), "oversold",
                                f"RSI at {value:.1f} - Oversold")
    if value > 60:
        return IndicatorReading("RSI", value, Vote.SELL, 0.3, "strong",
                                f"RSI at {value:.1f} - Bullish but strong")
    if value < 40:
        return IndicatorReading("RSI", value, Vote.BUY, 0.3, "weak",
                                f"RSI at {value:.1f} - Bearish but weak")
    return IndicatorReading("RSI", value, Vote.NEUTRAL, 0.0, "neutral", f"RSI at {value:.1f} - Neutral")


def interpret_macd(histogram: Optional[float], prev_histogram: Optional[float]) -> IndicatorReading:
    """Crossovers (histogram changing sign) are strong; otherwise strength scales with |histogram|."""
    if is_missing(histogram):
        return IndicatorReading("MACD", None, Vote.NEUTRAL, 0.0, "calculating")
    prev = 0.0 if is_missing(prev_histogram) else prev_histogram
    if histogram > 0 and prev <= 0:
        return IndicatorReading("MACD", histogram, Vote.BUY, 0.8, "bullish_crossover",
                                "MACD crossed above signal - Bullish")
    if histogram < 0 and prev >= 0:
        return IndicatorReading("MACD", histogram, Vote.SELL, 0.8, "bearish_crossover",
                                "MACD crossed below signal - Bearish")
    if histogram > 0:
        return IndicatorReading("MACD", histogram, Vote.BUY, min(abs(histogram) / 100, 0.5), "bullish",
                                "MACD above signal - Bullish momentum")
    if histogram < 0:
        return IndicatorReading("MACD", histogram, Vote.SELL, min(abs(histogram) / 100, 0.5), "bearish",
                                "MACD below signal - Bearish momentum")
    return IndicatorReading("MACD", histogram, Vote.NEUTRAL, 0.0, "neutral", "MACD neutral")


def interpret_bollinger(price: float, upper: Optional[float], middle: Optional[float],
                        lower: Optional[float]) -> IndicatorReading:
    if is_missing(upper) or is_missing(middle) or is_missing(lower):
        return IndicatorReading("Bollinger", None, Vote.NEUTRAL, 0.0, "calculating")
    pb = percent_b(price, upper, lower)
    if pb <= 0.1:
        return IndicatorReading("Bollinger", pb, Vote.BUY, 0.7, "oversold",
                                "Price at lower Bollinger Band - Oversold")
    if pb >= 0.9:
        return IndicatorReading("Bollinger", pb, Vote.SELL, 0.7, "overbought",
                                "Price at upper Bollinger Band - Overbought")
    if 0.4 <= pb <= 0.6:
        return IndicatorReading("Bollinger", pb, Vote.NEUTRAL, 0.0, "neutral", "Price at middle Bollinger Band")
    return IndicatorReading("Bollinger", pb, Vote.SELL if pb > 0.5 else Vote.BUY, 0.3, "normal",
                            f"Price at {pb * 100:.0f}% of Bollinger Bands")
