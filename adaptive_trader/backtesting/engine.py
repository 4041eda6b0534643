"""
Backtest engine: replays historical candles through the same selector, strategies and
position manager the live engine uses. Long-only, one position at a time, fixed quote
size per trade, slippage and fees on both legs. The candle time is the only clock, so a
run is fully deterministic for a given config and candle frame.
"""

from __future__ import annotations
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pandas as pd

from adaptive_trader.analytics.metrics import PerformanceMetrics, compute_metrics
from adaptive_trader.core.config import ConfigurationError
from adaptive_trader.core.types import CANDLE_COLUMNS, Fill, Side, SignalAction, StrategyId, Trade, as_datetime
from adaptive_trader.positions.manager import PositionManager
from adaptive_trader.regime.classifier import RegimeThresholds
from adaptive_trader.strategies.registry import parse_strategy_id
from adaptive_trader.strategies.selector import SelectorSettings, StrategySelector
from adaptive_trader.utils.timeframes import timeframe_minutes

logger = logging.getLogger("adaptive_trader.backtest")

AUTO = "auto"
MAX_BACKTEST_DAYS = 365


@dataclass(frozen=True)
class BacktestConfig:
    strategy: str = AUTO
    symbol: str = "BTCUSD"
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    initial_capital: float = 10000.0
    position_size: float = 1000.0
    fee_rate: float = 0.0026
    slippage: float = 0.001
    interval: str = "1h"
    window_size: int = 200
    min_history: int = 100
    min_confidence: float = 0.0
    manage_exits: bool = True

    @classmethod
    def from_config(cls, config, symbol: Optional[str] = None, strategy: Optional[str] = None) -> "BacktestConfig":
        return cls(
            strategy=strategy or config.backtest_strategy,
            symbol=symbol or config.symbols[0],
            start=as_datetime(config.backtest_start) if config.backtest_start else None,
            end=as_datetime(config.backtest_end) if config.backtest_end else None,
            initial_capital=config.backtest_initial_capital,
            position_size=config.backtest_position_size,
            fee_rate=config.backtest_fee_rate,
            slippage=config.backtest_slippage,
            interval=config.interval,
        )


def validate_backtest_config(config: BacktestConfig) -> None:
    """Raise ConfigurationError listing every problem with the config."""
    errors = []
    if not config.symbol:
        errors.append("Symbol is required")
    if config.strategy != AUTO:
        try:
            parse_strategy_id(config.strategy)
        except ConfigurationError as e:
            errors.append(str(e))
    if config.initial_capital <= 0:
        errors.append("Initial capital must be positive")
    if config.position_size <= 0:
        errors.append("Position size must be positive")
    if config.position_size > config.initial_capital:
        errors.append("Position size cannot exceed initial capital")
    if config.start is not None and config.end is not None:
        if config.start >= config.end:
            errors.append("Start date must be before end date")
        elif config.end - config.start > timedelta(days=MAX_BACKTEST_DAYS):
            errors.append(f"Backtest period cannot exceed {MAX_BACKTEST_DAYS} days")
    if not 0 <= config.fee_rate <= 0.01:
        errors.append("Fee rate must be between 0% and 1%")
    if not 0 <= config.slippage <= 0.05:
        errors.append("Slippage must be between 0% and 5%")
    try:
        timeframe_minutes(config.interval)
    except ValueError as e:
        errors.append(str(e))
    if config.window_size < config.min_history:
        errors.append("window_size must be at least min_history")
    if errors:
        raise ConfigurationError("; ".join(errors))


@dataclass(frozen=True)
class EquityPoint:
    time: datetime
    capital: float
    trades: int


@dataclass(frozen=True)
class BacktestSummary:
    total_trades: int
    total_days: float
    trades_per_day: float
    initial_capital: float
    final_capital: float
    total_return: float
    total_return_pct: float
    annualized_return_pct: float
    candles_processed: int


@dataclass
class BacktestRun:
    """Backtest output. Derived once, never mutated afterwards."""
    config: BacktestConfig
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)
    summary: Optional[BacktestSummary] = None
    metrics: Optional[PerformanceMetrics] = None
    strategy_usage: Dict[str, int] = field(default_factory=dict)


def _align(value: datetime, series: pd.Series) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    tz = getattr(series.dt, "tz", None)
    if tz is not None and ts.tzinfo is None:
        return ts.tz_localize(tz)
    if tz is None and ts.tzinfo is not None:
        return ts.tz_convert("UTC").tz_localize(None)
    return ts


def prepare_candles(candles: pd.DataFrame, start: Optional[datetime] = None,
                    end: Optional[datetime] = None) -> pd.DataFrame:
    """Sorted copy of the OHLCV frame restricted to [start, end]."""
    missing = [c for c in CANDLE_COLUMNS if c not in candles.columns]
    if missing:
        raise ConfigurationError(f"Candle frame is missing columns: {missing}")
    df = candles[CANDLE_COLUMNS].copy()
    df["time"] = pd.to_datetime(df["time"])
    df = df.sort_values("time").reset_index(drop=True)
    if start is not None:
        df = df[df["time"] >= _align(start, df["time"])]
    if end is not None:
        df = df[df["time"] <= _align(end, df["time"])]
    return df.reset_index(drop=True)


class BacktestEngine:
    """
    Bar-by-bar replay. At bar i the selector sees candles [i-window_size+1, i]; entries and
    exits fill at that bar's close adjusted by slippage. Each bar runs in the live order:
    evaluate, stop / target / ladder / max-hold triggers, strategy exit, signal exit, entry.
    """

    def __init__(
        self,
        strategy_overrides: Optional[Dict[str, dict]] = None,
        composer_weights: Optional[Dict[str, float]] = None,
        regime_thresholds: Optional[RegimeThresholds] = None,
        use_take_profit_ladder: bool = True,
    ):
        self.strategy_overrides = strategy_overrides or {}
        self.composer_weights = composer_weights
        self.regime_thresholds = regime_thresholds
        self.use_take_profit_ladder = use_take_profit_ladder

    def _selector(self, config: BacktestConfig) -> StrategySelector:
        forced = None if config.strategy == AUTO else parse_strategy_id(config.strategy)
        settings = SelectorSettings(
            auto_switch=True,
            force_strategy=forced,
            min_signal_confidence=config.min_confidence,
            min_candles=config.min_history,
        )
        return StrategySelector(settings, self.strategy_overrides, self.composer_weights, self.regime_thresholds)

    def run(self, config: BacktestConfig, candles: pd.DataFrame) -> BacktestRun:
        validate_backtest_config(config)
        df = prepare_candles(candles, config.start, config.end)
        if len(df) <= config.min_history:
            raise ConfigurationError(
                f"Insufficient historical data for backtesting (need more than {config.min_history} candles, "
                f"got {len(df)})"
            )
        logger.info("Backtest %s on %s: %d candles (%s)", config.strategy, config.symbol, len(df), config.interval)

        selector = self._selector(config)
        positions = PositionManager(self.use_take_profit_ladder)
        times = [as_datetime(t) for t in df["time"]]
        closes = df["close"].astype(float).tolist()
        capital = config.initial_capital
        trades: List[Trade] = []
        equity_curve = [EquityPoint(times[0], capital, 0)]
        usage: Dict[str, int] = {}
        open_id: Optional[str] = None
        entry_fee = 0.0
        entry_qty = 0.0

        def exit_long(price_close: float, now: datetime, reason: str, event=None) -> None:
            nonlocal capital, open_id
            position = positions.get(open_id)
            exit_price = price_close * (1 - config.slippage)
            qty = position.quantity if event is None else min(event.quantity, position.quantity)
            value = qty * exit_price
            fee = value * config.fee_rate
            fees = entry_fee * (qty / entry_qty) + fee
            if event is None:
                trade = positions.close_position(open_id, exit_price, reason, now, fees)
            else:
                trade = positions.apply_exit(event, exit_price, now, fees)
            capital += value - fee
            trades.append(trade)
            equity_curve.append(EquityPoint(now, capital, len(trades)))
            if positions.get(open_id) is None:
                open_id = None
            logger.debug("[%s] %s %s @ %.4f | P&L %.2f | capital %.2f",
                         now, "EXIT" if not trade.partial else "PARTIAL", reason, exit_price, trade.pnl, capital)

        for i in range(config.min_history, len(df)):
            now = times[i]
            close = closes[i]
            window = df.iloc[max(0, i + 1 - config.window_size): i + 1]
            evaluation = selector.evaluate(window, now)
            signal = evaluation.signal
            used = evaluation.strategy_used.value if evaluation.strategy_used else "hold"
            usage[used] = usage.get(used, 0) + 1

            if open_id is not None and config.manage_exits:
                event = positions.update_price(open_id, close, now)
                if event is not None:
                    exit_long(close, now, event.reason, event if event.partial else None)
                if open_id is not None:
                    position = positions.get(open_id)
                    reason = selector.strategy(position.strategy).check_exit(position, window, now)
                    if reason:
                        exit_long(close, now, reason)

            if open_id is None:
                if (signal.action == SignalAction.BUY and signal.confidence >= config.min_confidence
                        and capital >= config.position_size):
                    entry_price = close * (1 + config.slippage)
                    entry_qty = config.position_size / entry_price
                    entry_fee = config.position_size * config.fee_rate
                    profile = selector.strategy(evaluation.strategy_used).risk_profile
                    position = positions.open_position(
                        Fill(config.symbol, Side.LONG, entry_price, entry_qty,
                             strategy=used, time=now, order_id=f"bt-{len(trades) + 1}-{i}"),
                        profile,
                        now,
                    )
                    open_id = position.id
                    capital -= config.position_size + entry_fee
                    logger.debug("[%s] BUY %.6f @ %.4f | capital %.2f", now, entry_qty, entry_price, capital)
            elif signal.action == SignalAction.SELL and signal.confidence >= config.min_confidence:
                exit_long(close, now, "signal")
            elif signal.exit_all:
                exit_long(close, now, "exit-all")

        if open_id is not None:
            exit_long(closes[-1], times[-1], "end-of-backtest")
            logger.debug("Force closed open position at end of backtest")

        start = _align(config.start, df["time"]) if config.start else df["time"].iloc[0]
        end = _align(config.end, df["time"]) if config.end else df["time"].iloc[-1]
        total_days = (end - start).total_seconds() / 86400
        total_return = capital - config.initial_capital
        if total_days > 0 and capital > 0:
            annualized = ((capital / config.initial_capital) ** (365 / total_days) - 1) * 100
        else:
            annualized = 0.0
        summary = BacktestSummary(
            total_trades=len(trades),
            total_days=total_days,
            trades_per_day=len(trades) / total_days if total_days > 0 else 0.0,
            initial_capital=config.initial_capital,
            final_capital=capital,
            total_return=total_return,
            total_return_pct=total_return / config.initial_capital * 100,
            annualized_return_pct=annualized,
            candles_processed=len(df),
        )
        metrics = compute_metrics(
            [t.pnl for t in trades],
            initial_capital=config.initial_capital,
            equity=[p.capital for p in equity_curve],
        )
        logger.info("Backtest %s finished: %d trades, return %.2f%%, final capital %.2f",
                    config.strategy, len(trades), summary.total_return_pct, capital)
        return BacktestRun(config=config, trades=trades, equity_curve=equity_curve,
                           summary=summary, metrics=metrics, strategy_usage=usage)


@dataclass(frozen=True)
class StrategyComparison:
    strategy: str
    summary: Optional[BacktestSummary] = None
    metrics: Optional[PerformanceMetrics] = None
    error: str = ""


def compare_strategies(
    config: BacktestConfig,
    candles: pd.DataFrame,
    engine: Optional[BacktestEngine] = None,
) -> List[StrategyComparison]:
    """Run every strategy (and auto selection) on the same candles, best total return first."""
    engine = engine or BacktestEngine()
    results: List[StrategyComparison] = []
    for name in [AUTO] + [s.value for s in StrategyId]:
        cfg = dataclasses.replace(config, strategy=name)
        try:
            run = engine.run(cfg, candles)
        except ConfigurationError as e:
            logger.warning("Backtest of %s failed: %s", name, e)
            results.append(StrategyComparison(strategy=name, error=str(e)))
            continue
        results.append(StrategyComparison(strategy=name, summary=run.summary, metrics=run.metrics))
    results.sort(key=lambda r: r.summary.total_return_pct if r.summary else float("-inf"), reverse=True)
    return results
