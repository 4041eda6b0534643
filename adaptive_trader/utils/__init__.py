"""Utilities: candle interval helpers."""

from adaptive_trader.utils.timeframes import candles_per_day, timeframe_delta, timeframe_minutes

__all__ = ["candles_per_day", "timeframe_delta", "timeframe_minutes"]
