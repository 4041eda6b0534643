"""
Technical indicators over plain numeric sequences.
Every series function returns a float ndarray of the same length as its input,
left-padded with NaN until enough history exists. The windows are pandas rolling
and ewm computations, so live and backtest runs share one code path.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from adaptive_trader.core.types import Vote


@dataclass(frozen=True)
class MacdResult:
    macd: np.ndarray
    signal: np.ndarray
    histogram: np.ndarray


@dataclass(frozen=True)
class BollingerBands:
    upper: np.ndarray
    middle: np.ndarray
    lower: np.ndarray


@dataclass(frozen=True)
class VolumeAnalysis:
    current: float
    average: float
    ratio: float
    increasing: bool
    above_average: bool


def _series(values: Sequence[float]) -> pd.Series:
    # positional index so crossover indices are bar offsets
    return pd.Series(np.asarray(values, dtype=float))


def _empty(n: int) -> np.ndarray:
    return np.full(n, np.nan, dtype=float)


def _wilder(values: pd.Series, period: int) -> np.ndarray:
    """
    Wilder smoothing: the first `period` values after index 0 are averaged and placed at
    index `period`, then avg = (avg * (period - 1) + x) / period, i.e. ewm with alpha 1/period.
    """
    out = _empty(len(values))
    if period <= 0 or len(values) < period + 1:
        return out
    smoothed = values.iloc[period:].copy()
    smoothed.iloc[0] = values.iloc[1:period + 1].mean()
    out[period:] = smoothed.ewm(alpha=1.0 / period, adjust=False).mean().to_numpy()
    return out


def is_missing(value: Optional[float]) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def last_value(series: np.ndarray, offset: int = 1) -> Optional[float]:
    """Value `offset` positions from the end, or None if absent/NaN."""
    if len(series) < offset:
        return None
    v = float(series[-offset])
    return None if math.isnan(v) else v


def sma(values: Sequence[float], period: int) -> np.ndarray:
    s = _series(values)
    if period <= 0:
        return _empty(len(s))
    return s.rolling(period).mean().to_numpy()


def ema(values: Sequence[float], period: int) -> np.ndarray:
    """
    Exponential moving average, seeded with the SMA of the first `period` valid values.
    Leading NaNs are skipped so the function can be chained (MACD signal line).
    """
    s = _series(values)
    out = _empty(len(s))
    valid = s.notna().to_numpy()
    if period <= 0 or not valid.any():
        return out
    start = int(valid.argmax())
    seed_idx = start + period - 1
    if seed_idx >= len(s):
        return out
    seeded = s.iloc[seed_idx:].copy()
    seeded.iloc[0] = s.iloc[start:seed_idx + 1].mean()
    out[seed_idx:] = seeded.ewm(span=period, adjust=False).mean().to_numpy()
    return out


def rsi(closes: Sequence[float], period: int = 14) -> np.ndarray:
    """Wilder RSI. First value at index `period`; zero average loss gives 100."""
    delta = _series(closes).diff()
    avg_gain = _wilder(delta.clip(lower=0), period)
    avg_loss = _wilder((-delta).clip(lower=0), period)
    with np.errstate(divide="ignore", invalid="ignore"):
        rs = avg_gain / avg_loss
        out = 100.0 - 100.0 / (1.0 + rs)
    out[avg_loss == 0] = 100.0
    return out


def macd(closes: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9) -> MacdResult:
    """MACD line = EMA(fast) - EMA(slow); signal = EMA of the MACD line; histogram = difference."""
    line = ema(closes, fast) - ema(closes, slow)
    signal_line = ema(line, signal)
    return MacdResult(macd=line, signal=signal_line, histogram=line - signal_line)


def bollinger_bands(closes: Sequence[float], period: int = 20, num_std: float = 2.0) -> BollingerBands:
    """Middle = SMA; bands at +/- num_std population standard deviations."""
    rolling = _series(closes).rolling(period)
    middle = rolling.mean()
    sd = rolling.std(ddof=0)
    return BollingerBands(
        upper=(middle + sd * num_std).to_numpy(),
        middle=middle.to_numpy(),
        lower=(middle - sd * num_std).to_numpy(),
    )


def percent_b(price: float, upper: float, lower: float) -> float:
    """Position of price inside the bands (0 = lower, 1 = upper). Flat bands give 0.5."""
    width = upper - lower
    if width <= 0:
        return 0.5
    return (price - lower) / width


def atr(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], period: int = 14) -> np.ndarray:
    """Average true range with Wilder smoothing. First value at index `period`."""
    high, low, close = _series(highs), _series(lows), _series(closes)
    prev_close = close.shift()
    true_range = pd.concat(
        [high - low, (high - prev_close).abs(), (low - prev_close).abs()], axis=1
    ).max(axis=1)
    return _wilder(true_range, period)


def momentum(values: Sequence[float], period: int = 14) -> np.ndarray:
    """Percent change versus `period` bars back."""
    s = _series(values)
    base = s.shift(period).replace(0.0, np.nan)
    return ((s - base) / base * 100.0).to_numpy()


def volatility(values: Sequence[float], period: int = 20) -> np.ndarray:
    """Trailing population standard deviation."""
    return _series(values).rolling(period).std(ddof=0).to_numpy()


def pct_returns(values: Sequence[float]) -> List[float]:
    """Bar-to-bar percent returns, skipping bars after a zero price."""
    s = _series(values)
    prev = s.shift()
    keep = prev.notna() & (prev != 0)
    return ((s - prev) / prev * 100.0)[keep].tolist()


def std(values: Sequence[float]) -> float:
    """Population standard deviation (0 for fewer than two values)."""
    s = _series(values)
    if len(s) < 2:
        return 0.0
    return float(s.std(ddof=0))


def analyze_volume(volumes: Sequence[float], period: int = 20) -> VolumeAnalysis:
    """Current volume against the trailing average (current bar included)."""
    s = _series(volumes)
    current = float(s.iloc[-1]) if len(s) else 0.0
    if len(s) < period:
        return VolumeAnalysis(current=current, average=0.0, ratio=0.0, increasing=False, above_average=False)
    average = float(s.tail(period).mean())
    ratio = current / average if average > 0 else 0.0
    last3 = s.tail(3)
    increasing = len(last3) == 3 and bool(last3.diff().iloc[1:].gt(0).all())
    return VolumeAnalysis(
        current=current,
        average=average,
        ratio=ratio,
        increasing=increasing,
        above_average=ratio > 1.2,
    )


def sma_crossovers(values: Sequence[float], short: int, long: int) -> List[Tuple[int, Vote]]:
    """
    Indices where SMA(short) crosses SMA(long).
    prev diff <= 0 and current diff > 0 is a buy; prev >= 0 and current < 0 is a sell.
    """
    s = _series(values)
    diff = (s.rolling(short).mean() - s.rolling(long).mean()).dropna()
    prev = diff.shift()
    buys = (prev <= 0) & (diff > 0)
    sells = (prev >= 0) & (diff < 0)
    crosses: List[Tuple[int, Vote]] = []
    for i in diff.index[buys | sells]:
        crosses.append((int(i), Vote.BUY if buys[i] else Vote.SELL))
    return crosses


def last_sma_signal(values: Sequence[float], short: int = 12, long: int = 26) -> Optional[Tuple[int, Vote]]:
    """Most recent SMA crossover, or None if the averages never crossed."""
    crosses = sma_crossovers(values, short, long)
    return crosses[-1] if crosses else None


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive inputs."""
    return int(math.floor(value + 0.5))
