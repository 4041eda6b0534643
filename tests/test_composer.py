"""Unit tests for signals.composer."""

import pytest

from adaptive_trader.core.types import SignalAction
from adaptive_trader.signals.composer import (
    DEFAULT_WEIGHTS,
    compose_signal,
    is_signal_strong,
    signal_strength_label,
)

from conftest import make_frame, spike_volumes


def falling(n=120):
    return [200.0 - 0.5 * i for i in range(n)]


def rising(n=120):
    return [100.0 + 0.5 * i for i in range(n)]


def test_insufficient_data_holds():
    signal = compose_signal(make_frame(falling(50)))
    assert signal.action == SignalAction.HOLD
    assert signal.confidence == 0
    assert signal.reason == "Insufficient data for analysis"


def test_oversold_rsi_alone_is_full_confidence_buy():
    signal = compose_signal(make_frame(falling()), weights={"rsi": 1.0})
    assert signal.action == SignalAction.BUY
    assert signal.confidence == 100
    assert signal.reason == "1 bullish indicators: RSI"
    assert signal.strategy == "multi-indicator"
    assert signal.price == pytest.approx(falling()[-1])


def test_overbought_rsi_alone_is_sell():
    signal = compose_signal(make_frame(rising()), weights={"rsi": 1.0})
    assert signal.action == SignalAction.SELL
    assert signal.confidence == 100


def test_zero_weights_disable_everything():
    signal = compose_signal(make_frame(falling()), weights={"rsi": 0.0, "macd": 0.0})
    assert signal.action == SignalAction.HOLD
    assert signal.reason == "Mixed signals, no clear direction"
    assert signal.readings == ()


def test_volume_only_amplifies_existing_side():
    frame = make_frame(falling(), spike_volumes(120))
    signal = compose_signal(frame, weights={"rsi": 1.0, "volume": 0.5})
    assert signal.action == SignalAction.BUY
    assert signal.metadata["buy_score"] == pytest.approx(1.5)
    assert signal.metadata["sell_score"] == 0
    assert signal.reason == "2 bullish indicators: RSI, Volume"


def test_volume_without_votes_is_hold():
    frame = make_frame([100.0] * 120, spike_volumes(120))
    signal = compose_signal(frame, weights={"volume": 1.0})
    assert signal.action == SignalAction.HOLD


def test_default_weights_confidence_in_range(random_walk):
    signal = compose_signal(random_walk, DEFAULT_WEIGHTS)
    assert 0 <= signal.confidence <= 100
    names = {r.name for r in signal.readings}
    assert {"SMA", "RSI", "MACD", "Bollinger", "Volume"} <= names


def test_signal_strength_helpers():
    signal = compose_signal(make_frame(falling()), weights={"rsi": 1.0})
    assert is_signal_strong(signal, 60)
    assert signal_strength_label(85) == "Very Strong"
    assert signal_strength_label(72) == "Strong"
    assert signal_strength_label(61) == "Moderate"
    assert signal_strength_label(50) == "Weak"
    assert signal_strength_label(10) == "Very Weak"
