"""Shared builders for candle frames, positions and trades."""

from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd
import pytest

from adaptive_trader.core.types import Position, Side, Trade

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_frame(closes, volumes=None, spread=0.002, start=START, step=timedelta(hours=1)) -> pd.DataFrame:
    """OHLCV frame around a close series; open is the previous close."""
    closes = np.asarray(closes, dtype=float)
    n = len(closes)
    opens = np.concatenate([closes[:1], closes[:-1]])
    highs = np.maximum(opens, closes) * (1 + spread / 2)
    lows = np.minimum(opens, closes) * (1 - spread / 2)
    if volumes is None:
        volumes = np.full(n, 1000.0)
    return pd.DataFrame({
        "time": pd.date_range(start, periods=n, freq=pd.Timedelta(step)),
        "open": opens,
        "high": highs,
        "low": lows,
        "close": closes,
        "volume": np.asarray(volumes, dtype=float),
    })


def trend_closes(n: int = 200, rate: float = 0.01, base: float = 100.0):
    return [base * (1 + rate) ** i for i in range(n)]


def sine_closes(n: int = 200, amplitude_pct: float = 0.5, period: int = 7, base: float = 100.0):
    return [base * (1 + amplitude_pct / 100 * np.sin(2 * np.pi * i / period)) for i in range(n)]


def drop_closes(flat: int = 150, tail: int = 0):
    """Flat at 100, five one-point drops, then flat at 95."""
    return [100.0] * flat + [99.0, 98.0, 97.0, 96.0, 95.0] + [95.0] * tail


def spike_volumes(n: int, last: float = 3000.0, base: float = 1000.0):
    vols = [base] * n
    vols[-1] = last
    return vols


def make_position(symbol="BTCUSD", side=Side.LONG, entry=100.0, quantity=1.0, strategy="",
                  entry_time=START, stop_pct=2.0, tp_pct=5.0, **kwargs) -> Position:
    sign = 1 if side == Side.LONG else -1
    return Position(
        id=kwargs.pop("id", f"{symbol}-{side.value}"),
        symbol=symbol,
        side=side,
        entry_price=entry,
        quantity=quantity,
        initial_quantity=quantity,
        entry_time=entry_time,
        stop_loss_price=entry * (1 - sign * stop_pct / 100),
        take_profit_price=entry * (1 + sign * tp_pct / 100),
        strategy=strategy,
        high_water_price=entry,
        low_water_price=entry,
        current_price=entry,
        **kwargs,
    )


def make_trade(pnl: float, symbol="BTCUSD", exit_time=START, strategy="", pnl_pct=None) -> Trade:
    return Trade(
        symbol=symbol,
        side=Side.LONG,
        quantity=1.0,
        entry_price=100.0,
        exit_price=100.0 + pnl,
        pnl=pnl,
        pnl_pct=pnl if pnl_pct is None else pnl_pct,
        entry_time=exit_time - timedelta(minutes=10),
        exit_time=exit_time,
        exit_reason="signal",
        strategy=strategy,
    )


@pytest.fixture
def uptrend():
    return make_frame(trend_closes(200, 0.01), spike_volumes(200))


@pytest.fixture
def downtrend():
    return make_frame(trend_closes(200, -0.01), spike_volumes(200))


@pytest.fixture
def ranging():
    return make_frame(sine_closes(200, 0.5))


@pytest.fixture
def random_walk():
    rng = np.random.RandomState(7)
    closes = 100 * np.cumprod(1 + rng.normal(0, 0.01, 400))
    volumes = rng.uniform(800, 1500, 400)
    return make_frame(closes, volumes)
