"""
Automation orchestrator: one decision loop per symbol plus one position monitor loop.

Decision tick: fetch candles -> evaluate -> strategy exits -> signal exits -> maybe open.
Monitor tick: for every symbol with open positions, fetch the price and execute triggered
stop / target / ladder / max-hold exits.

Both loops take the symbol's asyncio.Lock around every read-modify-write on that symbol's
positions. Account-level steps (entry check -> order -> register, exit order -> record) also
hold one orchestrator-wide lock, so concurrent symbols see each other's exposure and losses.
The account lock is always taken inside a symbol lock, never the other way round.
Exchange calls are awaited with a timeout; a failing tick is logged and skipped without
affecting other symbols or the monitor.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from adaptive_trader.core.config import Config
from adaptive_trader.core.types import Fill, Position, Side, Trade
from adaptive_trader.engine import TradingEngine
from adaptive_trader.execution.base import ExchangeClient, ExchangeError
from adaptive_trader.positions.manager import ExitEvent
from adaptive_trader.strategies.selector import Evaluation

logger = logging.getLogger("adaptive_trader.automation")

Explainer = Callable[[str, Evaluation], Awaitable[str]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SymbolStats:
    ticks: int = 0
    errors: int = 0
    last_tick: Optional[datetime] = None
    last_error: str = ""
    last_action: str = ""
    last_confidence: int = 0
    last_strategy: str = ""
    last_explanation: str = ""


class AutomationOrchestrator:
    def __init__(
        self,
        engine: TradingEngine,
        exchange: ExchangeClient,
        config: Optional[Config] = None,
        clock: Optional[Callable[[], datetime]] = None,
        explain: Optional[Explainer] = None,
    ):
        self.engine = engine
        self.exchange = exchange
        self.config = config or engine.config
        self.clock = clock or _utcnow
        self.explain = explain
        self.symbols: List[str] = []
        self.stats: Dict[str, SymbolStats] = {}
        self.monitor_ticks = 0
        self.monitor_errors = 0
        self.started_at: Optional[datetime] = None
        self._locks: Dict[str, asyncio.Lock] = {}
        self._account_lock_obj: Optional[asyncio.Lock] = None
        self._tasks: Dict[str, asyncio.Task] = {}
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return bool(self._tasks) or self._monitor_task is not None

    def _lock(self, symbol: str) -> asyncio.Lock:
        lock = self._locks.get(symbol)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[symbol] = lock
        return lock

    @property
    def _account_lock(self) -> asyncio.Lock:
        if self._account_lock_obj is None:
            self._account_lock_obj = asyncio.Lock()
        return self._account_lock_obj

    async def _call(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.config.request_timeout_s)

    # --- lifecycle -----------------------------------------------------------

    async def start(self, symbols: Optional[List[str]] = None) -> None:
        if self.running:
            logger.warning("Automation already running for %s", ", ".join(self.symbols))
            return
        self.symbols = [s.upper() for s in (symbols or self.config.symbols)]
        restored = self.engine.restore_positions()
        self.started_at = self.clock()
        for symbol in self.symbols:
            self.stats.setdefault(symbol, SymbolStats())
            self._tasks[symbol] = asyncio.create_task(self._decision_loop(symbol), name=f"decision-{symbol}")
        self._monitor_task = asyncio.create_task(self._monitor_loop(), name="position-monitor")
        logger.info("Automation started for %s (decision every %.0fs, monitor every %.0fs, %d restored)",
                    ", ".join(self.symbols), self.config.decision_interval_s,
                    self.config.monitor_interval_s, restored)

    async def stop(self) -> None:
        """Cancel every loop and wait for them. Open positions stay in the store."""
        tasks = list(self._tasks.values())
        if self._monitor_task is not None:
            tasks.append(self._monitor_task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        self._monitor_task = None
        logger.info("Automation stopped (%d open position(s) kept)", len(self.engine.positions.open_positions()))

    def status(self) -> dict:
        return {
            "running": self.running,
            "symbols": list(self.symbols),
            "started_at": self.started_at,
            "open_positions": len(self.engine.positions.open_positions()),
            "monitor_ticks": self.monitor_ticks,
            "monitor_errors": self.monitor_errors,
            "symbol_stats": {s: vars(st).copy() for s, st in self.stats.items()},
            "strategies": {s: self.engine.selector(s).status() for s in self.symbols},
        }

    # --- loops ---------------------------------------------------------------

    async def _decision_loop(self, symbol: str) -> None:
        while True:
            try:
                await self.run_decision_tick(symbol)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                stats = self.stats.setdefault(symbol, SymbolStats())
                stats.errors += 1
                stats.last_error = str(e) or type(e).__name__
                logger.exception("Decision tick failed for %s: %s", symbol, e)
            await asyncio.sleep(self.config.decision_interval_s)

    async def _monitor_loop(self) -> None:
        while True:
            try:
                await self.run_monitor_tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.monitor_errors += 1
                logger.exception("Monitor tick failed: %s", e)
            await asyncio.sleep(self.config.monitor_interval_s)

    # --- ticks ---------------------------------------------------------------

    async def run_decision_tick(self, symbol: str) -> Optional[Evaluation]:
        """One decision cycle for `symbol`. Exchange errors propagate to the caller."""
        stats = self.stats.setdefault(symbol, SymbolStats())
        async with self._lock(symbol):
            window = await self._call(self.exchange.get_candles(symbol, self.config.interval,
                                                                self.config.candle_limit))
            if window is None or len(window) == 0:
                raise ExchangeError(f"No candles returned for {symbol}")
            now = self.clock()
            evaluation = self.engine.evaluate_symbol(symbol, window, now)
            signal = evaluation.signal
            stats.ticks += 1
            stats.last_tick = now
            stats.last_action = signal.action.value
            stats.last_confidence = signal.confidence
            stats.last_strategy = evaluation.strategy_used.value if evaluation.strategy_used else "none"

            for position, reason in self.engine.strategy_exits(symbol, window, now):
                await self._close(position, reason, now)

            for position in self.engine.positions.open_positions(symbol):
                if signal.exit_all:
                    await self._close(position, "exit-all", now)
                elif evaluation.actionable and signal.side is not None and signal.side != position.side:
                    await self._close(position, "signal", now)

            if evaluation.actionable and not self.engine.positions.has_open(symbol):
                await self._enter(symbol, evaluation, float(window["close"].iloc[-1]), now)

        if self.explain is not None and evaluation.actionable:
            await self._explain(symbol, evaluation, stats)
        return evaluation

    async def run_monitor_tick(self) -> List[Trade]:
        """Check exit triggers for every symbol with open positions. Per-symbol failures are isolated."""
        self.monitor_ticks += 1
        trades: List[Trade] = []
        symbols = sorted({p.symbol for p in self.engine.positions.open_positions()})
        for symbol in symbols:
            try:
                async with self._lock(symbol):
                    price = await self._call(self.exchange.get_current_price(symbol))
                    now = self.clock()
                    for event in self.engine.on_price_tick(symbol, price, now):
                        trade = await self._execute_exit(event, now)
                        if trade is not None:
                            trades.append(trade)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.monitor_errors += 1
                logger.exception("Position monitor failed for %s: %s", symbol, e)
        return trades

    # --- order flow ----------------------------------------------------------

    async def _enter(self, symbol: str, evaluation: Evaluation, price: float, now: datetime) -> None:
        async with self._account_lock:
            await self._enter_locked(symbol, evaluation, price, now)

    async def _enter_locked(self, symbol: str, evaluation: Evaluation, price: float, now: datetime) -> None:
        signal = evaluation.signal
        side = signal.side
        amount = self.engine.entry_amount(symbol, signal, price)
        check = self.engine.check_entry(symbol, signal, amount, now=now)
        if not check.allowed:
            logger.info("%s %s signal (%d%%) not taken: %s", symbol, side.value, signal.confidence, check.reason)
            return
        order = await self._call(self.exchange.place_order(symbol, side, amount))
        if not order.success:
            logger.warning("Entry order for %s failed: %s", symbol, order.message)
            return
        fill = Fill(
            symbol=symbol,
            side=side,
            price=order.avg_price,
            quantity=order.quantity,
            strategy=evaluation.strategy_used.value,
            time=now,
            order_id=order.order_id,
        )
        result = self.engine.open_position(fill, now=now, validate=False)
        if not result.ok:
            logger.error("Filled %s order %s could not be registered: %s", symbol, order.order_id, result.reason)
            return
        logger.info("%s %s opened via %s (%d%%): %s", symbol, side.value, fill.strategy,
                    signal.confidence, signal.reason)

    async def _close(self, position: Position, reason: str, now: datetime) -> Optional[Trade]:
        event = ExitEvent(position.id, position.symbol, reason, position.current_price,
                          position.quantity, time=now)
        return await self._execute_exit(event, now)

    async def _execute_exit(self, event: ExitEvent, now: datetime) -> Optional[Trade]:
        position = self.engine.positions.get(event.position_id)
        if position is None:
            return None
        close_side = Side.SHORT if position.side == Side.LONG else Side.LONG
        async with self._account_lock:
            order = await self._call(self.exchange.place_quantity_order(event.symbol, close_side, event.quantity))
            if not order.success:
                logger.warning("Exit order for %s (%s) failed: %s", event.symbol, event.reason, order.message)
                return None
            return self.engine.apply_exit(event, fill_price=order.avg_price, now=now)

    async def _explain(self, symbol: str, evaluation: Evaluation, stats: SymbolStats) -> None:
        try:
            text = await self._call(self.explain(symbol, evaluation))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Signal explanation for %s unavailable: %s", symbol, e)
            return
        stats.last_explanation = text or ""
        if text:
            logger.info("%s explanation: %s", symbol, text)
