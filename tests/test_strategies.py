"""Unit tests for the five strategies and the strategy registry."""

from datetime import timedelta

import pytest

from adaptive_trader.core.config import ConfigurationError
from adaptive_trader.core.types import Side, SignalAction, StrategyId
from adaptive_trader.signals.composer import compose_signal
from adaptive_trader.strategies.day_trading import DayTradingStrategy
from adaptive_trader.strategies.grid_trading import GridTradingStrategy
from adaptive_trader.strategies.mean_reversion import MeanReversionStrategy
from adaptive_trader.strategies.momentum import MomentumStrategy
from adaptive_trader.strategies.multi_indicator import MultiIndicatorStrategy
from adaptive_trader.strategies.registry import create_strategy, parse_strategy_id

from conftest import START, drop_closes, make_frame, make_position, make_trade, spike_volumes, trend_closes


# --- momentum ---------------------------------------------------------------

def test_momentum_insufficient_data():
    signal = MomentumStrategy().evaluate(make_frame(trend_closes(50)))
    assert signal.action == SignalAction.HOLD
    assert signal.reason == "Insufficient data for momentum analysis"
    assert signal.strategy == "momentum"


def test_momentum_buy_in_uptrend_with_volume(uptrend):
    signal = MomentumStrategy().evaluate(uptrend)
    assert signal.action == SignalAction.BUY
    assert signal.strategy == "momentum"
    assert 0 < signal.confidence <= 100
    assert signal.reason.startswith("Strong bullish momentum")


def test_momentum_sell_in_accelerating_decline():
    closes = [300.0 - 0.005 * i * i for i in range(200)]
    signal = MomentumStrategy().evaluate(make_frame(closes, spike_volumes(200)))
    assert signal.action == SignalAction.SELL
    assert signal.reason.startswith("Strong bearish momentum")


def test_momentum_needs_volume_confirmation():
    signal = MomentumStrategy().evaluate(make_frame(trend_closes(200)))
    assert signal.action == SignalAction.HOLD
    assert "Low volume" in signal.reason


def test_momentum_exit_on_macd_reversal():
    closes = trend_closes(150)
    closes.append(closes[-1] * 0.9)
    position = make_position(side=Side.LONG, entry=closes[-2], strategy="momentum")
    assert MomentumStrategy().check_exit(position, make_frame(closes)) == "momentum-reversal-bearish"
    assert MomentumStrategy().check_exit(position, make_frame(trend_closes(150))) is None


def test_momentum_suitability_prefers_trends(uptrend, ranging):
    strategy = MomentumStrategy()
    assert strategy.suitability(uptrend).suitable
    assert strategy.suitability(uptrend).score > strategy.suitability(ranging).score


# --- mean reversion ---------------------------------------------------------

def test_mean_reversion_buys_oversold_drop():
    signal = MeanReversionStrategy().evaluate(make_frame(drop_closes()))
    assert signal.action == SignalAction.BUY
    assert signal.confidence == 100
    assert signal.metadata["target_price"] == pytest.approx(99.25)
    assert signal.reason.startswith("Oversold mean reversion")


def test_mean_reversion_sells_overbought_spike():
    closes = [100.0] * 150 + [101.0, 102.0, 103.0, 104.0, 105.0]
    signal = MeanReversionStrategy().evaluate(make_frame(closes))
    assert signal.action == SignalAction.SELL
    assert signal.confidence == 100


def test_mean_reversion_holds_in_the_middle(ranging):
    signal = MeanReversionStrategy().evaluate(ranging)
    assert signal.action == SignalAction.HOLD
    assert signal.reason.startswith("No mean reversion setup")


def test_mean_reversion_exit_at_mean():
    strategy = MeanReversionStrategy()
    flat = make_frame([100.0] * 150)
    assert strategy.check_exit(make_position(side=Side.LONG, entry=95.0), flat) == "mean-reversion-target"
    assert strategy.check_exit(make_position(side=Side.SHORT, entry=105.0), flat) == "mean-reversion-target"
    dropped = make_frame(drop_closes())
    assert strategy.check_exit(make_position(side=Side.LONG, entry=99.0), dropped) is None


# --- grid -------------------------------------------------------------------

def grid_frame(last_close):
    return make_frame([100.0] * 59 + [last_close])


def test_grid_first_evaluation_lays_grid():
    strategy = GridTradingStrategy(grid_spacing_pct=1.0, use_atr_spacing=False)
    signal = strategy.evaluate(make_frame([100.0] * 60))
    assert signal.action == SignalAction.HOLD
    assert signal.confidence == 70
    assert signal.metadata["setup"] is True
    assert signal.metadata["lower"] == pytest.approx(90.0)
    assert signal.metadata["upper"] == pytest.approx(110.0)
    assert signal.reason == "Grid setup: 20 levels, 1.00% spacing"


def test_grid_levels_trigger_once():
    strategy = GridTradingStrategy(grid_spacing_pct=1.0, use_atr_spacing=False)
    strategy.evaluate(make_frame([100.0] * 60))

    buy = strategy.evaluate(grid_frame(98.5))
    assert buy.action == SignalAction.BUY
    assert buy.reason == "Price hit buy grid level 1 at $99.00"

    again = strategy.evaluate(grid_frame(98.5))
    assert again.action == SignalAction.HOLD
    assert again.reason == "Price between grid levels"

    sell = strategy.evaluate(grid_frame(101.2))
    assert sell.action == SignalAction.SELL
    assert sell.metadata["level"] == 1


def test_grid_breakout_requests_exit_all_and_resets():
    strategy = GridTradingStrategy(grid_spacing_pct=1.0, use_atr_spacing=False)
    strategy.evaluate(make_frame([100.0] * 60))
    signal = strategy.evaluate(grid_frame(80.0))
    assert signal.action == SignalAction.HOLD
    assert signal.exit_all is True
    assert signal.confidence == 90
    assert signal.metadata["direction"] == "down"
    assert strategy.grid is None


def test_grid_exit_at_opposite_level():
    strategy = GridTradingStrategy(grid_spacing_pct=1.0, use_atr_spacing=False)
    strategy.evaluate(make_frame([100.0] * 60))
    long = make_position(side=Side.LONG, entry=99.0)
    assert strategy.check_exit(long, grid_frame(101.5)) == "grid-take-profit"
    assert strategy.check_exit(long, grid_frame(100.0)) is None
    assert strategy.check_exit(long, grid_frame(120.0)) == "grid-bounds-exceeded"


def test_grid_reset_drops_state():
    strategy = GridTradingStrategy(use_atr_spacing=False)
    strategy.evaluate(make_frame([100.0] * 60))
    strategy.reset()
    assert strategy.grid is None


# --- day trading ------------------------------------------------------------

def test_day_trading_insufficient_data():
    signal = DayTradingStrategy().evaluate(make_frame([100.0] * 30))
    assert signal.action == SignalAction.HOLD
    assert signal.strategy == "day-trading"


def test_day_trading_risk_profile():
    profile = DayTradingStrategy().risk_profile
    assert profile.max_hold == timedelta(minutes=30)
    assert profile.min_hold == timedelta(minutes=5)
    assert not profile.use_take_profit_ladder


def test_day_trading_daily_trade_limit():
    strategy = DayTradingStrategy()
    trades = [make_trade(1.0) for _ in range(20)]
    status = strategy.check_daily_limits(trades)
    assert not status.can_trade
    assert status.trades_remaining == 0
    assert strategy.entry_block_reason(trades) == "Max trades reached (20/20)"


def test_day_trading_daily_loss_limit():
    strategy = DayTradingStrategy()
    trades = [make_trade(-5.0, pnl_pct=-1.25), make_trade(-5.0, pnl_pct=-1.25)]
    assert strategy.entry_block_reason(trades) == "Max daily loss reached (-2.50%)"
    assert strategy.entry_block_reason([make_trade(2.0)]) is None


def test_day_trading_break_even_timeout():
    strategy = DayTradingStrategy()
    position = make_position(entry=100.0, min_hold=timedelta(minutes=5), entry_time=START)
    window = make_frame([100.0] * 60)
    assert strategy.check_exit(position, window, START + timedelta(minutes=10)) == "break-even-timeout"
    assert strategy.check_exit(position, window, START + timedelta(minutes=3)) is None
    moved = make_frame([100.0] * 59 + [101.0])
    assert strategy.check_exit(position, moved, START + timedelta(minutes=10)) is None


# --- multi-indicator and registry -------------------------------------------

def test_multi_indicator_is_composer(random_walk):
    weights = {"rsi": 1.0, "macd": 1.0}
    ours = MultiIndicatorStrategy(weights=weights).evaluate(random_walk)
    direct = compose_signal(random_walk, weights)
    assert (ours.action, ours.confidence, ours.reason) == (direct.action, direct.confidence, direct.reason)


def test_create_strategy_with_overrides():
    strategy = create_strategy("day-trading", {"stop_loss_pct": 0.8, "max_hold_minutes": 45})
    assert isinstance(strategy, DayTradingStrategy)
    assert strategy.risk_profile.stop_loss_pct == 0.8
    assert strategy.risk_profile.max_hold == timedelta(minutes=45)
    assert strategy.risk_profile.take_profit_pct == 1.0


def test_create_strategy_rejects_unknown_keys():
    with pytest.raises(ConfigurationError):
        create_strategy(StrategyId.MOMENTUM, {"grid_levels": 4})


def test_parse_strategy_id():
    assert parse_strategy_id("grid-trading") == StrategyId.GRID_TRADING
    assert parse_strategy_id(StrategyId.MOMENTUM) == StrategyId.MOMENTUM
    with pytest.raises(ConfigurationError, match="Unknown strategy 'scalper'"):
        parse_strategy_id("scalper")
