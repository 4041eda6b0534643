"""Candle interval strings ('5m', '1h', '1d', '1w') to minutes and timedeltas."""

from datetime import timedelta

_UNIT_MINUTES = {"m": 1, "h": 60, "d": 60 * 24, "w": 60 * 24 * 7}


def timeframe_minutes(tf: str) -> int:
    """Convert an interval such as '15m', '4h' or '1d' to minutes."""
    tf = tf.strip().lower()
    unit = tf[-1:] if tf else ""
    if unit not in _UNIT_MINUTES or not tf[:-1].isdigit() or int(tf[:-1]) <= 0:
        raise ValueError(f"Unsupported timeframe: {tf}")
    return int(tf[:-1]) * _UNIT_MINUTES[unit]


def timeframe_delta(tf: str) -> timedelta:
    return timedelta(minutes=timeframe_minutes(tf))


def candles_per_day(tf: str) -> float:
    return 24 * 60 / timeframe_minutes(tf)
