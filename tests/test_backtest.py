"""Unit tests for backtesting.engine."""

from datetime import timedelta

import pytest

from adaptive_trader.core.config import ConfigurationError
from adaptive_trader.backtesting.engine import (
    BacktestConfig,
    BacktestEngine,
    compare_strategies,
    prepare_candles,
    validate_backtest_config,
)

from conftest import START, drop_closes, make_frame


def test_validate_collects_every_error():
    config = BacktestConfig(strategy="scalper", position_size=20000.0, interval="1x", fee_rate=0.5)
    with pytest.raises(ConfigurationError) as excinfo:
        validate_backtest_config(config)
    message = str(excinfo.value)
    assert "Unknown strategy 'scalper'" in message
    assert "Position size cannot exceed initial capital" in message
    assert "Unsupported timeframe: 1x" in message
    assert "Fee rate must be between 0% and 1%" in message


def test_validate_date_range():
    with pytest.raises(ConfigurationError, match="Start date must be before end date"):
        validate_backtest_config(BacktestConfig(start=START, end=START))
    with pytest.raises(ConfigurationError, match="cannot exceed 365 days"):
        validate_backtest_config(BacktestConfig(start=START, end=START + timedelta(days=400)))
    validate_backtest_config(BacktestConfig(start=START, end=START + timedelta(days=30)))


def test_insufficient_history():
    with pytest.raises(ConfigurationError, match="Insufficient historical data"):
        BacktestEngine().run(BacktestConfig(), make_frame([100.0] * 100))


def test_prepare_candles_filters_and_sorts(random_walk):
    shuffled = random_walk.sample(frac=1.0, random_state=3)
    df = prepare_candles(shuffled, START + timedelta(hours=50), START + timedelta(hours=300))
    assert len(df) == 251
    assert df["time"].is_monotonic_increasing
    with pytest.raises(ConfigurationError, match="missing columns"):
        prepare_candles(random_walk.drop(columns=["volume"]))


def test_open_position_closed_at_end_of_backtest():
    frame = make_frame(drop_closes(150, tail=45))
    config = BacktestConfig(strategy="mean-reversion", manage_exits=False)
    run = BacktestEngine().run(config, frame)

    assert len(run.trades) == 1
    trade = run.trades[0]
    assert trade.exit_reason == "end-of-backtest"
    assert trade.strategy == "mean-reversion"
    assert trade.entry_price == pytest.approx(99 * 1.001)
    assert trade.exit_price == pytest.approx(95 * 0.999)

    qty = 1000.0 / (99 * 1.001)
    value = qty * 95 * 0.999
    assert trade.quantity == pytest.approx(qty)
    assert trade.fees == pytest.approx(2.6 + value * 0.0026)
    assert run.summary.final_capital == pytest.approx(10000.0 + trade.pnl)
    assert run.summary.candles_processed == 200
    assert run.strategy_usage == {"mean-reversion": 100}


def test_capital_conservation_and_determinism(random_walk):
    first = BacktestEngine().run(BacktestConfig(), random_walk)
    second = BacktestEngine().run(BacktestConfig(), random_walk)

    assert first.trades == second.trades
    assert first.equity_curve == second.equity_curve
    assert len(first.equity_curve) == len(first.trades) + 1
    assert first.summary == second.summary
    total = sum(t.pnl for t in first.trades)
    assert first.summary.final_capital == pytest.approx(10000.0 + total)
    assert first.metrics.total_pnl == pytest.approx(total)
    assert sum(first.strategy_usage.values()) == 300
    assert first.equity_curve[0].capital == 10000.0


def test_date_range_limits_processed_candles(random_walk):
    config = BacktestConfig(start=START + timedelta(hours=50), end=START + timedelta(hours=300))
    run = BacktestEngine().run(config, random_walk)
    assert run.summary.candles_processed == 251
    assert run.summary.total_days == pytest.approx(250 / 24)


def test_compare_strategies_ranks_by_return(random_walk):
    results = compare_strategies(BacktestConfig(), random_walk)
    assert len(results) == 6
    assert {r.strategy for r in results} == {
        "auto", "momentum", "mean-reversion", "grid-trading", "day-trading", "multi-indicator"}
    returns = [r.summary.total_return_pct for r in results]
    assert returns == sorted(returns, reverse=True)
    assert all(r.error == "" for r in results)
