"""Indicators: moving averages, oscillators, bands, volume and their interpretation."""

from adaptive_trader.indicators.library import (
    BollingerBands,
    MacdResult,
    VolumeAnalysis,
    analyze_volume,
    atr,
    bollinger_bands,
    ema,
    last_sma_signal,
    last_value,
    macd,
    momentum,
    rsi,
    sma,
    sma_crossovers,
    volatility,
)
from adaptive_trader.indicators.interpret import interpret_bollinger, interpret_macd, interpret_rsi

__all__ = [
    "BollingerBands",
    "MacdResult",
    "VolumeAnalysis",
    "analyze_volume",
    "atr",
    "bollinger_bands",
    "ema",
    "last_sma_signal",
    "last_value",
    "macd",
    "momentum",
    "rsi",
    "sma",
    "sma_crossovers",
    "volatility",
    "interpret_bollinger",
    "interpret_macd",
    "interpret_rsi",
]
