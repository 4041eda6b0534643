"""Unit tests for positions.levels and positions.manager."""

from datetime import timedelta

import pytest

from adaptive_trader.core.types import Fill, PositionStatus, RiskProfile, Side
from adaptive_trader.positions.levels import (
    stop_loss_price,
    take_profit_price,
    trailing_stop_update,
    validate_risk_profile,
)
from adaptive_trader.positions.manager import DuplicatePositionError, PositionManager, UnknownPositionError

from conftest import START, make_position

PLAIN = RiskProfile(stop_loss_pct=2.0, take_profit_pct=5.0, use_trailing_stop=False,
                    trailing_stop_pct=0.0, use_take_profit_ladder=False)


def open_long(manager, profile=PLAIN, price=100.0, qty=1.0, symbol="BTCUSD"):
    fill = Fill(symbol, Side.LONG, price, qty, strategy="multi-indicator", time=START, order_id=f"{symbol}-1")
    return manager.open_position(fill, profile)


def test_levels_long_and_short():
    assert stop_loss_price(Side.LONG, 100.0, 2.0) == pytest.approx(98.0)
    assert take_profit_price(Side.LONG, 100.0, 5.0) == pytest.approx(105.0)
    assert stop_loss_price(Side.SHORT, 100.0, 2.0) == pytest.approx(102.0)
    assert take_profit_price(Side.SHORT, 100.0, 5.0) == pytest.approx(95.0)


def test_trailing_update_only_in_profit_and_only_tighter():
    assert trailing_stop_update(Side.LONG, 99.0, 100.0, 98.0, 1.5) is None
    assert trailing_stop_update(Side.LONG, 103.0, 100.0, 98.0, 1.5) == pytest.approx(101.455)
    assert trailing_stop_update(Side.LONG, 102.0, 100.0, 101.455, 1.5) is None
    assert trailing_stop_update(Side.SHORT, 97.0, 100.0, 102.0, 1.5) == pytest.approx(98.455)


def test_validate_risk_profile():
    assert validate_risk_profile(RiskProfile()).valid
    bad_stop = validate_risk_profile(RiskProfile(stop_loss_pct=0))
    assert "Stop-loss percent must be between 0 and 50" in bad_stop.errors
    wide_trail = validate_risk_profile(RiskProfile(stop_loss_pct=1.0, trailing_stop_pct=2.0))
    assert not wide_trail.valid
    scalp = validate_risk_profile(RiskProfile(stop_loss_pct=0.5, take_profit_pct=0.6, trailing_stop_pct=0.3))
    assert scalp.valid
    assert scalp.warnings == ["Risk/reward ratio 1.20 is below 1.5:1"]


def test_open_sets_levels_and_ladder():
    manager = PositionManager()
    profile = RiskProfile(stop_loss_pct=2.0, take_profit_pct=4.0, use_trailing_stop=False)
    position = open_long(manager, profile)
    assert position.id == "BTCUSD-1"
    assert position.stop_loss_price == pytest.approx(98.0)
    assert position.take_profit_price == pytest.approx(104.0)
    assert [r.price for r in position.take_profit_ladder] == pytest.approx([102.0, 103.0, 104.0, 106.0])
    assert manager.has_open("BTCUSD")


def test_ladder_disabled_by_manager_flag():
    position = open_long(PositionManager(use_take_profit_ladder=False), RiskProfile())
    assert position.take_profit_ladder == []


def test_one_position_per_symbol():
    manager = PositionManager()
    open_long(manager)
    with pytest.raises(DuplicatePositionError):
        open_long(manager)
    open_long(manager, symbol="ETHUSD")
    assert len(manager.open_positions()) == 2


def test_invalid_fill_rejected():
    with pytest.raises(ValueError):
        PositionManager().open_position(Fill("BTCUSD", Side.LONG, 100.0, 0.0), PLAIN)


def test_stop_loss_detected_without_changing_quantity():
    manager = PositionManager()
    position = open_long(manager)
    event = manager.update_price(position.id, 97.9, START)
    assert event.reason == "stop-loss"
    assert event.quantity == 1.0
    assert manager.get(position.id).quantity == 1.0

    trade = manager.apply_exit(event)
    assert trade.pnl == pytest.approx(-2.1)
    assert trade.pnl_pct == pytest.approx(-2.1)
    assert not trade.partial
    assert manager.get(position.id) is None
    assert position.status == PositionStatus.CLOSED
    assert position.exit_reason == "stop-loss"


def test_take_profit_detected():
    manager = PositionManager()
    position = open_long(manager)
    assert manager.update_price(position.id, 104.0, START) is None
    event = manager.update_price(position.id, 105.5, START)
    assert event.reason == "take-profit"


def test_short_stop_loss():
    manager = PositionManager()
    fill = Fill("BTCUSD", Side.SHORT, 100.0, 2.0, time=START, order_id="s1")
    manager.open_position(fill, PLAIN)
    event = manager.update_price("s1", 102.5, START)
    assert event.reason == "stop-loss"
    trade = manager.apply_exit(event, fees=1.0)
    assert trade.pnl == pytest.approx(-6.0)


def test_trailing_stop_ratchets_and_fires():
    profile = RiskProfile(stop_loss_pct=2.0, take_profit_pct=10.0, use_trailing_stop=True,
                          trailing_stop_pct=1.5, use_take_profit_ladder=False)
    manager = PositionManager()
    position = open_long(manager, profile)

    assert manager.update_price(position.id, 103.0, START) is None
    assert position.stop_loss_price == pytest.approx(101.455)
    assert position.trailing_activated

    assert manager.update_price(position.id, 102.0, START) is None
    assert position.stop_loss_price == pytest.approx(101.455)
    assert position.high_water_price == 103.0

    event = manager.update_price(position.id, 101.4, START)
    assert event.reason == "stop-loss"
    assert position.trailing_activated


def test_short_trailing_stop_only_moves_down():
    profile = RiskProfile(stop_loss_pct=2.0, take_profit_pct=10.0, use_trailing_stop=True,
                          trailing_stop_pct=1.5, use_take_profit_ladder=False)
    manager = PositionManager()
    fill = Fill("BTCUSD", Side.SHORT, 100.0, 1.0, strategy="multi-indicator", time=START, order_id="s1")
    position = manager.open_position(fill, profile)
    assert position.stop_loss_price == pytest.approx(102.0)

    stops = []
    for price in (97.0, 98.0, 96.0, 97.2):
        assert manager.update_price(position.id, price, START) is None
        stops.append(position.stop_loss_price)
    assert stops == pytest.approx([98.455, 98.455, 97.44, 97.44])
    assert all(later <= earlier for earlier, later in zip(stops, stops[1:]))
    assert position.low_water_price == 96.0

    event = manager.update_price(position.id, 97.5, START)
    assert event.reason == "stop-loss"
    assert manager.apply_exit(event).pnl == pytest.approx(2.5)


def test_partial_ladder_exit_then_full_take_profit():
    profile = RiskProfile(stop_loss_pct=2.0, take_profit_pct=5.0, use_trailing_stop=False)
    manager = PositionManager()
    position = open_long(manager, profile, qty=4.0)

    event = manager.update_price(position.id, 102.6, START)
    assert event.reason == "partial-take-profit"
    assert event.partial
    assert event.rung_index == 0
    assert event.quantity == pytest.approx(1.0)

    trade = manager.apply_exit(event)
    assert trade.partial
    assert trade.pnl == pytest.approx(2.6)
    assert position.quantity == pytest.approx(3.0)
    assert position.realized_pnl == pytest.approx(2.6)
    assert position.take_profit_ladder[0].hit

    assert manager.update_price(position.id, 102.6, START) is None

    rung_two = manager.update_price(position.id, 103.8, START)
    assert rung_two.rung_index == 1
    manager.apply_exit(rung_two)
    assert position.quantity == pytest.approx(2.0)

    final = manager.update_price(position.id, 105.5, START)
    assert final.reason == "take-profit"
    assert final.quantity == pytest.approx(2.0)
    closing = manager.apply_exit(final)
    assert not closing.partial
    assert position.realized_pnl == pytest.approx(2.6 + 3.8 + 11.0)


def test_max_hold_time():
    profile = RiskProfile(stop_loss_pct=2.0, take_profit_pct=5.0, use_trailing_stop=False,
                          use_take_profit_ladder=False, max_hold=timedelta(minutes=30))
    manager = PositionManager()
    position = open_long(manager, profile)
    assert manager.update_price(position.id, 100.0, START + timedelta(minutes=29)) is None
    event = manager.update_price(position.id, 100.0, START + timedelta(minutes=31))
    assert event.reason == "max-hold-time"


def test_stop_checked_before_max_hold():
    profile = RiskProfile(stop_loss_pct=2.0, take_profit_pct=5.0, use_trailing_stop=False,
                          use_take_profit_ladder=False, max_hold=timedelta(minutes=30))
    manager = PositionManager()
    position = open_long(manager, profile)
    event = manager.update_price(position.id, 97.0, START + timedelta(hours=2))
    assert event.reason == "stop-loss"


def test_check_symbol_and_summary():
    manager = PositionManager()
    open_long(manager, qty=2.0)
    assert manager.check_symbol("BTCUSD", 101.0, START) == []
    summary = manager.summary("BTCUSD")
    assert summary["has_position"]
    assert summary["unrealized_pnl"] == pytest.approx(2.0)
    assert summary["unrealized_pnl_pct"] == pytest.approx(1.0)
    assert manager.summary("ETHUSD")["has_position"] is False


def test_close_unknown_position():
    with pytest.raises(UnknownPositionError):
        PositionManager().close_position("nope", 100.0, "signal")


def test_restore_skips_symbol_conflicts():
    manager = PositionManager()
    open_long(manager)
    restored = manager.restore([
        make_position(symbol="BTCUSD", id="other"),
        make_position(symbol="ETHUSD", id="eth"),
    ])
    assert restored == 1
    assert manager.get("eth") is not None
    assert manager.get("other") is None
