"""Unit tests for strategies.selector."""

from datetime import timedelta

import pytest

from adaptive_trader.core.config import Config, ConfigurationError
from adaptive_trader.core.types import SignalAction, StrategyId
from adaptive_trader.regime.classifier import RegimeThresholds, RegimeType
from adaptive_trader.strategies.selector import SelectorSettings, StrategySelector

from conftest import START, make_frame, trend_closes


def test_insufficient_data_holds_without_strategy():
    evaluation = StrategySelector().evaluate(make_frame(trend_closes(40)))
    assert evaluation.signal.action == SignalAction.HOLD
    assert evaluation.signal.reason == "Insufficient data for strategy analysis"
    assert evaluation.strategy_used is None
    assert evaluation.regime is None
    assert not evaluation.actionable


def test_uptrend_routes_to_momentum(uptrend):
    selector = StrategySelector()
    evaluation = selector.evaluate(uptrend)
    assert evaluation.regime.regime == RegimeType.TRENDING_UP
    assert evaluation.strategy_used == StrategyId.MOMENTUM
    assert evaluation.auto_switched
    assert evaluation.signal.strategy == "momentum"
    assert selector.current_strategy.strategy_id == StrategyId.MOMENTUM
    assert evaluation.regime_change.message == "Initial regime detection"


def test_ranging_routes_to_mean_reversion(ranging):
    evaluation = StrategySelector().evaluate(ranging)
    assert evaluation.strategy_used == StrategyId.MEAN_REVERSION


def test_forced_strategy_wins(uptrend):
    selector = StrategySelector(SelectorSettings(force_strategy=StrategyId.MEAN_REVERSION))
    evaluation = selector.evaluate(uptrend)
    assert evaluation.strategy_used == StrategyId.MEAN_REVERSION
    assert not evaluation.auto_switched
    assert evaluation.regime.regime == RegimeType.TRENDING_UP


def test_auto_switch_off_uses_default(uptrend):
    settings = SelectorSettings(auto_switch=False, default_strategy=StrategyId.GRID_TRADING)
    evaluation = StrategySelector(settings).evaluate(uptrend)
    assert evaluation.strategy_used == StrategyId.GRID_TRADING


def test_low_regime_confidence_falls_back_to_multi_indicator(uptrend):
    selector = StrategySelector(SelectorSettings(min_regime_confidence=101))
    assert selector.evaluate(uptrend).strategy_used == StrategyId.MULTI_INDICATOR


def test_choppy_regime_holds(ranging):
    thresholds = RegimeThresholds(ranging_score=2.0, strong_trend=101, weak_trend=101)
    selector = StrategySelector(SelectorSettings(min_regime_confidence=20), regime_thresholds=thresholds)
    evaluation = selector.evaluate(ranging)
    assert evaluation.regime.regime == RegimeType.CHOPPY
    assert evaluation.strategy_used is None
    assert evaluation.signal.action == SignalAction.HOLD
    assert evaluation.signal.strategy == "hold"
    assert evaluation.signal.reason == "No strategy for choppy regime"
    assert selector.current_strategy is None


def test_regime_refreshes_on_interval_only(uptrend, downtrend):
    selector = StrategySelector(SelectorSettings(regime_check_interval=timedelta(minutes=5)))
    selector.evaluate(uptrend, START)

    soon = selector.evaluate(downtrend, START + timedelta(minutes=1))
    assert soon.regime.regime == RegimeType.TRENDING_UP
    assert soon.regime_change is None

    later = selector.evaluate(downtrend, START + timedelta(minutes=5))
    assert later.regime.regime == RegimeType.TRENDING_DOWN
    assert later.regime_change.changed
    assert not later.regime_change.should_switch
    assert selector.last_regime_check == START + timedelta(minutes=5)


def test_switching_resets_previous_strategy_state():
    frame = make_frame([100.0] * 120)
    selector = StrategySelector(SelectorSettings(force_strategy=StrategyId.GRID_TRADING))
    selector.evaluate(frame, START)
    assert selector.strategy(StrategyId.GRID_TRADING).grid is not None

    selector.set_strategy("multi-indicator")
    selector.evaluate(frame, START + timedelta(minutes=1))
    assert selector.strategy(StrategyId.GRID_TRADING).grid is None
    assert selector.current_strategy.strategy_id == StrategyId.MULTI_INDICATOR


def test_set_strategy_and_enable_auto_switch(uptrend):
    selector = StrategySelector()
    with pytest.raises(ConfigurationError):
        selector.set_strategy("martingale")
    selector.set_strategy(StrategyId.DAY_TRADING)
    assert selector.evaluate(uptrend).strategy_used == StrategyId.DAY_TRADING
    selector.enable_auto_switch()
    assert selector.forced_strategy is None
    assert selector.status()["auto_switch"] is True


def test_status_reports_regime(uptrend):
    selector = StrategySelector()
    selector.evaluate(uptrend)
    status = selector.status()
    assert status["current_strategy"] == "momentum"
    assert status["regime"]["type"] == "trending-up"
    assert status["regime"]["recommended"] == "momentum"


def test_recommend_ranks_by_suitability(uptrend):
    recommendation = StrategySelector().recommend(uptrend)
    scores = [r.suitability.score for r in recommendation.rankings]
    assert len(scores) == 4
    assert scores == sorted(scores, reverse=True)
    assert recommendation.regime_recommended == StrategyId.MOMENTUM
    assert recommendation.best is recommendation.rankings[0]


def test_settings_from_config():
    config = Config(auto_switch=False, force_strategy="grid-trading", regime_check_interval_s=60,
                    min_signal_confidence=70)
    settings = SelectorSettings.from_config(config)
    assert settings.force_strategy == StrategyId.GRID_TRADING
    assert settings.regime_check_interval == timedelta(seconds=60)
    assert settings.min_signal_confidence == 70
    assert not settings.auto_switch
