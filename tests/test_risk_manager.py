"""Unit tests for risk.manager."""

import math
from datetime import timedelta

import pytest

from adaptive_trader.core.config import Config
from adaptive_trader.risk.manager import (
    AccountRiskController,
    CircuitBreaker,
    compute_exposure,
    kelly_position_size,
    risk_based_position_size,
)

from conftest import START, make_position, make_trade


def test_breaker_trips_after_consecutive_losses_and_cools_down():
    breaker = CircuitBreaker(3, timedelta(minutes=60))
    assert breaker.record(-10, START) is False
    assert breaker.record(-10, START) is False
    assert breaker.record(-10, START) is True

    halted = breaker.check(START + timedelta(minutes=30))
    assert halted.halted
    assert halted.remaining_cooldown_minutes == 30
    assert halted.reason == "Circuit breaker tripped: 3 consecutive losses"

    resumed = breaker.check(START + timedelta(minutes=60))
    assert not resumed.halted
    assert breaker.consecutive_losses == 0


def test_breaker_win_resets_flat_does_not():
    breaker = CircuitBreaker(3)
    breaker.record(-1, START)
    breaker.record(-1, START)
    breaker.record(0, START)
    assert breaker.consecutive_losses == 2
    breaker.record(5, START)
    assert breaker.consecutive_losses == 0


def test_validate_entry_blocked_by_breaker_first():
    risk = AccountRiskController(max_consecutive_losses=2)
    for _ in range(2):
        risk.record_trade(make_trade(-10), START)
    result = risk.validate_entry("BTCUSD", 5.0, [], 10000, START + timedelta(minutes=15))
    assert not result.allowed
    assert result.reason == "Circuit breaker tripped: 2 consecutive losses (resumes in 45 min)"

    risk.reset_circuit_breaker()
    assert risk.validate_entry("BTCUSD", 100.0, [], 10000, START).allowed


def test_validate_entry_min_notional():
    result = AccountRiskController().validate_entry("BTCUSD", 5.0, [], 10000, START)
    assert result.reason == "Order amount 5.00 below minimum notional 10.00"


def test_validate_entry_total_exposure():
    open_positions = [
        make_position("AAA", entry=100.0, quantity=25.0),
        make_position("BBB", entry=100.0, quantity=25.0),
        make_position("CCC", entry=100.0, quantity=20.0),
    ]
    result = AccountRiskController().validate_entry("DDD", 1000.0, open_positions, 10000, START)
    assert not result.allowed
    assert result.reason == "Would exceed max total exposure (80.0% > 75%)"


def test_validate_entry_symbol_exposure():
    open_positions = [make_position("AAA", entry=100.0, quantity=20.0)]
    risk = AccountRiskController()
    result = risk.validate_entry("AAA", 1000.0, open_positions, 10000, START)
    assert result.reason == "Would exceed max exposure for AAA (30.0% > 25%)"
    approved = risk.validate_entry("BBB", 1000.0, open_positions, 10000, START)
    assert approved.allowed
    assert approved.amount == 1000.0


def test_validate_entry_limits_are_inclusive():
    risk = AccountRiskController()
    under_total = [
        make_position("AAA", entry=100.0, quantity=20.0),
        make_position("BBB", entry=100.0, quantity=20.0),
        make_position("CCC", entry=100.0, quantity=24.0),
    ]
    # 74% total after the entry
    assert risk.validate_entry("DDD", 1000.0, under_total, 10000, START).allowed

    at_caps = [
        make_position("AAA", entry=100.0, quantity=15.0),
        make_position("BBB", entry=100.0, quantity=25.0),
        make_position("CCC", entry=100.0, quantity=25.0),
    ]
    # AAA lands exactly on 25% and the account exactly on 75%
    result = risk.validate_entry("AAA", 1000.0, at_caps, 10000, START)
    assert result.allowed
    assert not risk.validate_entry("AAA", 1000.01, at_caps, 10000, START).allowed


def test_compute_exposure_report():
    report = compute_exposure([make_position("AAA", quantity=30.0), make_position("BBB", quantity=10.0)], 10000)
    assert report.total == pytest.approx(4000.0)
    assert report.total_pct == pytest.approx(0.4)
    assert report.by_symbol["AAA"].exposure_pct == pytest.approx(0.3)
    assert report.symbol_exceeded
    assert not report.total_exceeded
    assert not report.within_limits


def test_kelly_formula():
    kelly = kelly_position_size(60, 150, 100, 10000, 0.25)
    assert kelly.position_size == pytest.approx(833.33, abs=0.01)
    assert kelly.win_loss_ratio == pytest.approx(1.5)
    assert kelly.recommendation == "Optimal position size: $833.33 (8.3% of portfolio)"


def test_kelly_unprofitable_and_insufficient():
    assert kelly_position_size(20, 50, -100, 10000).recommendation == \
        "Current strategy not profitable - avoid trading"
    empty = kelly_position_size(0, 0, 0, 10000)
    assert empty.position_size == 0
    assert empty.recommendation == "Insufficient data for Kelly calculation"


def test_kelly_from_trade_history():
    risk = AccountRiskController()
    for pnl in (150, 150, 150, -100, -100):
        risk.record_trade(make_trade(pnl), START)
    kelly = risk.kelly_position_size(10000)
    assert kelly.position_size == pytest.approx(833.33, abs=0.01)


def test_risk_based_position_size():
    sized = risk_based_position_size(10000, 100.0, 90.0, risk_pct=2.0)
    assert sized.quantity == pytest.approx(20.0)
    assert sized.position_size == pytest.approx(2000.0)
    assert not sized.capped

    capped = risk_based_position_size(10000, 100.0, 98.0, risk_pct=2.0, max_position_pct=25)
    assert capped.capped
    assert capped.position_size == pytest.approx(2500.0)
    assert capped.quantity == pytest.approx(25.0)
    assert capped.risk_usd == pytest.approx(50.0)

    assert risk_based_position_size(10000, 100.0, 100.0).position_size == 0.0


def test_value_at_risk_needs_ten_trades():
    risk = AccountRiskController()
    for _ in range(9):
        risk.record_trade(make_trade(10), START)
    var = risk.value_at_risk(0.95)
    assert var.sample_size == 9
    assert var.daily_pct == 0
    assert "need at least 10 trades" in var.message


def test_value_at_risk_historical_percentile():
    risk = AccountRiskController()
    for pnl in [-200, -100] + [50] * 18:
        risk.record_trade(make_trade(pnl), START)
    var95 = risk.value_at_risk(0.95, 10000)
    assert var95.daily_pct == pytest.approx(1.0)
    assert var95.weekly_pct == pytest.approx(math.sqrt(7))
    assert var95.monthly_usd == pytest.approx(100 * math.sqrt(30))
    assert risk.value_at_risk(0.99, 10000).daily_pct == pytest.approx(2.0)


def test_value_at_risk_ignores_trade_order():
    risk = AccountRiskController()
    for pnl in [50] * 9 + [-200] + [50] * 9 + [-100]:
        risk.record_trade(make_trade(pnl), START)
    var = risk.value_at_risk(0.95, 10000)
    assert var.sample_size == 20
    assert var.daily_pct == pytest.approx(1.0)
    assert var.message == "There is a 95% chance that daily losses will not exceed 1.00%"


def test_drawdown_tracks_peak_equity():
    risk = AccountRiskController(initial_equity=10000, max_drawdown_pct=20)
    risk.record_trade(make_trade(1000), START)
    risk.record_trade(make_trade(-2200), START)
    dd = risk.drawdown()
    assert dd.peak == 11000
    assert dd.drawdown_pct == pytest.approx(20.0)
    assert not dd.alert
    risk.record_trade(make_trade(-100), START)
    assert risk.drawdown().alert
    assert risk.equity == pytest.approx(8700)


def test_risk_summary_levels():
    risk = AccountRiskController()
    assert risk.risk_summary([], 10000, START).level == "LOW"

    risk.record_trade(make_trade(-10), START)
    risk.record_trade(make_trade(-10), START)
    warned = risk.risk_summary([], 10000, START)
    assert warned.level == "MEDIUM"
    assert warned.alerts[0].message == "2 consecutive losses"

    risk.record_trade(make_trade(-10), START)
    halted = risk.risk_summary([], 10000, START + timedelta(minutes=1))
    assert halted.level == "HIGH"
    assert halted.breaker.halted


def test_from_config():
    risk = AccountRiskController.from_config(Config(max_consecutive_losses=5, portfolio_value=5000))
    assert risk.breaker.max_consecutive_losses == 5
    assert risk.equity == 5000
