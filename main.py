#!/usr/bin/env python3
"""
Adaptive Trader CLI: backtest | live (paper)
Usage:
  python main.py backtest --candles data.csv [--config config.yaml] [--strategy auto] [--compare] [--monte-carlo 1000]
  python main.py live --candles data.csv [--config config.yaml] [--loop]
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import pandas as pd

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from adaptive_trader.analytics.monte_carlo import summarize
from adaptive_trader.automation.orchestrator import AutomationOrchestrator
from adaptive_trader.backtesting.engine import BacktestConfig, compare_strategies
from adaptive_trader.core.config import ConfigurationError, load_config
from adaptive_trader.core.logger import setup_logging
from adaptive_trader.core.types import CANDLE_COLUMNS
from adaptive_trader.engine import TradingEngine
from adaptive_trader.execution.paper import PaperExchange
from adaptive_trader.persistence.store import InMemoryPositionStore, JsonFilePositionStore

logger = logging.getLogger("adaptive_trader")


def load_candles(path: Path) -> pd.DataFrame:
    """CSV with columns time, open, high, low, close, volume. Numeric time is epoch seconds or ms."""
    df = pd.read_csv(path)
    missing = [c for c in CANDLE_COLUMNS if c not in df.columns]
    if missing:
        raise ConfigurationError(f"{path}: missing columns {missing}")
    if pd.api.types.is_numeric_dtype(df["time"]):
        unit = "ms" if df["time"].max() > 1e11 else "s"
        df["time"] = pd.to_datetime(df["time"], unit=unit, utc=True)
    else:
        df["time"] = pd.to_datetime(df["time"], utc=True)
    return df[CANDLE_COLUMNS].sort_values("time").reset_index(drop=True)


def print_run(run) -> None:
    s = run.summary
    m = run.metrics
    print("\n--- Backtest Results ---")
    print(f"Strategy: {run.config.strategy} | {run.config.symbol} | {s.candles_processed} candles, {s.total_days:.1f} days")
    print(f"Total trades: {s.total_trades} ({s.trades_per_day:.2f}/day)")
    print(f"Final capital: {s.final_capital:.2f} (return {s.total_return:.2f} / {s.total_return_pct:.2f}%)")
    print(f"Annualized return: {s.annualized_return_pct:.2f}%")
    if m:
        print(f"Wins/losses: {m.winning_trades}/{m.losing_trades} | win rate {m.win_rate * 100:.1f}%")
        print(f"Sharpe ratio: {m.sharpe_ratio:.2f} | Sortino ratio: {m.sortino_ratio:.2f}")
        print(f"Max drawdown: {m.max_drawdown_pct:.2f}%")
        print(f"Profit factor: {m.profit_factor:.2f} | Expectancy: {m.expectancy:.2f} USD/trade")
    if run.strategy_usage:
        usage = ", ".join(f"{k}={v}" for k, v in sorted(run.strategy_usage.items()))
        print(f"Strategy usage (bars): {usage}")


def run_backtest(args) -> int:
    """Run a backtest (or a strategy comparison) over a candle CSV."""
    config = load_config(args.config, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    if args.candles is None:
        logger.error("Backtest needs candle data: pass --candles path/to/candles.csv")
        return 1
    candles = load_candles(args.candles)
    bt_config = BacktestConfig.from_config(config, symbol=args.symbol, strategy=args.strategy)
    engine = TradingEngine(config)

    if args.compare:
        print("\n--- Strategy Comparison (best total return first) ---")
        for row in compare_strategies(bt_config, candles, engine.backtest_engine()):
            if row.error:
                print(f"{row.strategy:>16}: failed ({row.error})")
                continue
            print(f"{row.strategy:>16}: {row.summary.total_return_pct:7.2f}% | trades {row.summary.total_trades:4d} "
                  f"| win rate {row.metrics.win_rate * 100:5.1f}% | max DD {row.metrics.max_drawdown_pct:6.2f}%")
        return 0

    run = engine.run_backtest(bt_config, candles)
    print_run(run)
    if args.monte_carlo:
        mc = summarize([t.pnl for t in run.trades], bt_config.initial_capital, args.monte_carlo, args.seed)
        if mc is None:
            print("\nMonte Carlo: no trades to resample")
        else:
            print(f"\n--- Monte Carlo ({mc.simulations} reshuffles) ---")
            print(f"Final equity mean {mc.final_equity_mean:.2f} | 5% {mc.final_equity_p5:.2f} "
                  f"| 95% {mc.final_equity_p95:.2f}")
            print(f"Max drawdown mean {mc.max_drawdown_mean:.2f}% | worst {mc.max_drawdown_worst:.2f}%")
            print(f"Probability of loss: {mc.probability_of_loss * 100:.1f}%")
    return 0


async def _paper_replay(orchestrator: AutomationOrchestrator, exchange: PaperExchange, loop_mode: bool) -> None:
    symbols = exchange.symbols()
    if loop_mode:
        await orchestrator.start(symbols)
        try:
            while not exchange.exhausted():
                await asyncio.sleep(orchestrator.config.decision_interval_s)
                exchange.advance()
        finally:
            await orchestrator.stop()
        return
    orchestrator.engine.restore_positions()
    while True:
        for symbol in symbols:
            try:
                await orchestrator.run_decision_tick(symbol)
            except Exception as e:
                logger.exception("Decision tick failed for %s: %s", symbol, e)
        await orchestrator.run_monitor_tick()
        if not exchange.advance():
            break


def run_live(args) -> int:
    """Paper automation: replay a candle CSV through the decision and monitor loops."""
    config = load_config(args.config, ROOT)
    setup_logging(config.log_level, config.log_dir, config.log_file)
    if args.candles is None:
        logger.error("Paper mode needs candle data: pass --candles path/to/candles.csv")
        return 1
    symbol = (args.symbol or config.symbols[0]).upper()
    candles = load_candles(args.candles)
    exchange = PaperExchange({symbol: candles}, start_index=min(config.candle_limit, len(candles)) - 1,
                             fee_rate=config.backtest_fee_rate, slippage=config.backtest_slippage)
    store = JsonFilePositionStore(config.positions_path) if config.positions_path else InMemoryPositionStore()
    engine = TradingEngine(config, store=store)
    orchestrator = AutomationOrchestrator(engine, exchange, config, clock=lambda: exchange.current_time(symbol))
    logger.info("Paper trading %s over %d candles", symbol, len(candles))
    try:
        asyncio.run(_paper_replay(orchestrator, exchange, args.loop))
    except KeyboardInterrupt:
        logger.info("Shutdown by user")

    pnl = sum(t.pnl for t in engine.trades)
    summary = engine.get_risk_summary()
    print("\n--- Paper Session ---")
    print(f"Closed trades: {len(engine.trades)} | realized P&L: {pnl:.2f}")
    print(f"Open positions: {len(engine.positions.open_positions())}")
    print(f"Risk level: {summary.level} | drawdown {summary.drawdown.drawdown_pct:.2f}%")
    for alert in summary.alerts:
        print(f"  [{alert.severity}] {alert.message} -> {alert.action}")
    return 0


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Adaptive Trader CLI")
    parser.add_argument("mode", choices=["backtest", "live"], help="Run backtest or paper automation")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--candles", type=Path, default=None, help="OHLCV CSV (time,open,high,low,close,volume)")
    parser.add_argument("--symbol", default=None, help="Symbol label (default: first configured symbol)")
    parser.add_argument("--strategy", default=None, help="auto or a strategy id (backtest)")
    parser.add_argument("--compare", action="store_true", help="Backtest every strategy and rank them")
    parser.add_argument("--monte-carlo", type=int, default=0, metavar="N", help="Reshuffle trades N times")
    parser.add_argument("--seed", type=int, default=None, help="Monte Carlo seed")
    parser.add_argument("--loop", action="store_true", help="Paper mode: run the timed asyncio loops")
    args = parser.parse_args(argv)
    try:
        if args.mode == "backtest":
            return run_backtest(args)
        return run_live(args)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 1


if __name__ == "__main__":
    exit(main())
