"""
Trading engine: owns the per-symbol strategy selectors, the position table, the account risk
controller and the position store. The automation loop and the CLI talk to this object only.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from adaptive_trader.backtesting.engine import BacktestConfig, BacktestEngine, BacktestRun
from adaptive_trader.core.config import Config, ConfigurationError
from adaptive_trader.core.types import Fill, Position, RiskProfile, Signal, StrategyId, Trade
from adaptive_trader.persistence.store import InMemoryPositionStore, PositionStore
from adaptive_trader.positions.levels import stop_loss_price, validate_risk_profile
from adaptive_trader.positions.manager import DuplicatePositionError, ExitEvent, PositionManager
from adaptive_trader.risk.manager import AccountRiskController, RiskResult, RiskSummary, risk_based_position_size
from adaptive_trader.strategies.base import BaseStrategy
from adaptive_trader.strategies.registry import parse_strategy_id
from adaptive_trader.strategies.selector import Evaluation, SelectorSettings, StrategySelector

logger = logging.getLogger("adaptive_trader.engine")

STRATEGY_IDS = frozenset(s.value for s in StrategyId)


@dataclass(frozen=True)
class OpenResult:
    ok: bool
    reason: str = ""
    position: Optional[Position] = None
    warnings: List[str] = field(default_factory=list)


def _utcnow(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


class TradingEngine:
    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[PositionStore] = None,
        risk: Optional[AccountRiskController] = None,
    ):
        self.config = config or Config()
        self.settings = SelectorSettings.from_config(self.config)
        self.positions = PositionManager(self.config.use_take_profit_ladder)
        self.risk = risk or AccountRiskController.from_config(self.config)
        self.store = store or InMemoryPositionStore()
        self.trades: List[Trade] = []
        self._selectors: Dict[str, StrategySelector] = {}

    # --- strategy selection --------------------------------------------------

    def selector(self, symbol: str) -> StrategySelector:
        sel = self._selectors.get(symbol)
        if sel is None:
            sel = StrategySelector(self.settings, self.config.strategy_overrides, self.config.composer_weights)
            self._selectors[symbol] = sel
        return sel

    def strategy_for(self, symbol: str, strategy_id) -> BaseStrategy:
        return self.selector(symbol).strategy(parse_strategy_id(strategy_id))

    def evaluate_symbol(self, symbol: str, window: pd.DataFrame, now: Optional[datetime] = None) -> Evaluation:
        evaluation = self.selector(symbol).evaluate(window, now)
        signal = evaluation.signal
        logger.debug("%s: %s (%d%%) via %s | %s", symbol, signal.action.value, signal.confidence,
                     signal.strategy, signal.reason)
        return evaluation

    def strategy_exits(self, symbol: str, window: pd.DataFrame,
                       now: Optional[datetime] = None) -> List[Tuple[Position, str]]:
        """Open positions of `symbol` whose own strategy asks to exit."""
        exits = []
        for p in self.positions.open_positions(symbol):
            if not p.strategy:
                continue
            reason = self.strategy_for(symbol, p.strategy).check_exit(p, window, now)
            if reason:
                exits.append((p, reason))
        return exits

    # --- sizing and entry checks ---------------------------------------------

    @property
    def portfolio_value(self) -> float:
        return self.risk.equity

    def entry_amount(self, symbol: str, signal: Signal, price: float,
                     portfolio_value: Optional[float] = None) -> float:
        """Quote amount for a new entry according to sizing_mode (fixed | risk | kelly)."""
        pv = portfolio_value or self.portfolio_value
        mode = self.config.sizing_mode
        if mode == "risk" and signal.side is not None and signal.strategy in STRATEGY_IDS:
            profile = self.strategy_for(symbol, signal.strategy).risk_profile
            stop = stop_loss_price(signal.side, price, profile.stop_loss_pct)
            return risk_based_position_size(pv, price, stop, self.config.risk_per_trade_pct,
                                            self.config.max_exposure_per_symbol * 100).position_size
        if mode == "kelly":
            kelly = self.risk.kelly_position_size(pv)
            if kelly.position_size > 0 or kelly.win_loss_ratio > 0:
                return kelly.position_size
            logger.debug("Kelly sizing unavailable (%s); using fixed amount", kelly.recommendation)
        return self.config.trade_quote_amount

    def todays_trades(self, symbol: str, now: Optional[datetime] = None) -> List[Trade]:
        day = _utcnow(now).date()
        return [t for t in self.trades if t.symbol == symbol and t.exit_time.date() == day]

    def check_entry(self, symbol: str, signal: Signal, amount: float,
                    portfolio_value: Optional[float] = None, now: Optional[datetime] = None) -> RiskResult:
        """All pre-trade checks for a new position. Nothing is mutated."""
        if self.positions.has_open(symbol):
            return RiskResult(allowed=False, reason=f"{symbol} already has an open position")
        if signal.strategy in STRATEGY_IDS:
            block = self.strategy_for(symbol, signal.strategy).entry_block_reason(self.todays_trades(symbol, now))
            if block:
                return RiskResult(allowed=False, reason=block)
        return self.risk.validate_entry(symbol, amount, self.positions.open_positions(),
                                        portfolio_value or self.portfolio_value, now)

    # --- lifecycle -----------------------------------------------------------

    def open_position(
        self,
        fill: Fill,
        profile: Optional[RiskProfile] = None,
        portfolio_value: Optional[float] = None,
        now: Optional[datetime] = None,
        validate: bool = True,
    ) -> OpenResult:
        """
        Register an executed entry. With validate=True the account limits are checked first
        and a violation returns ok=False without touching any state. An invalid risk profile
        raises ConfigurationError.
        """
        if profile is None:
            profile = self.strategy_for(fill.symbol, fill.strategy).risk_profile if fill.strategy else RiskProfile()
        check = validate_risk_profile(profile)
        if not check.valid:
            raise ConfigurationError("Invalid risk profile: " + "; ".join(check.errors))
        if validate:
            result = self.risk.validate_entry(fill.symbol, fill.notional, self.positions.open_positions(),
                                              portfolio_value or self.portfolio_value, now)
            if not result.allowed:
                logger.info("Entry rejected for %s: %s", fill.symbol, result.reason)
                return OpenResult(ok=False, reason=result.reason)
        try:
            position = self.positions.open_position(fill, profile, now)
        except DuplicatePositionError as e:
            return OpenResult(ok=False, reason=str(e))
        self.store.create(position)
        for warning in check.warnings:
            logger.debug("%s risk profile: %s", fill.strategy or "default", warning)
        return OpenResult(ok=True, position=position, warnings=check.warnings)

    def restore_positions(self) -> int:
        return self.positions.restore(self.store.query_open())

    def on_price_tick(self, symbol: str, price: float, now: Optional[datetime] = None) -> List[ExitEvent]:
        """Mark positions of `symbol` to `price`; returns the exits to execute."""
        events = self.positions.check_symbol(symbol, price, now)
        for p in self.positions.open_positions(symbol):
            self.store.update(p)
        return events

    def apply_exit(self, event: ExitEvent, fill_price: Optional[float] = None,
                   now: Optional[datetime] = None, fees: float = 0.0) -> Trade:
        position = self.positions.get(event.position_id)
        trade = self.positions.apply_exit(event, fill_price, now, fees)
        self._after_exit(position, trade, now)
        return trade

    def close_position(self, position_id: str, exit_price: float, reason: str,
                       now: Optional[datetime] = None, fees: float = 0.0) -> Trade:
        position = self.positions.get(position_id)
        trade = self.positions.close_position(position_id, exit_price, reason, now, fees)
        self._after_exit(position, trade, now)
        return trade

    def _after_exit(self, position: Optional[Position], trade: Trade, now: Optional[datetime]) -> None:
        self.trades.append(trade)
        if position is not None:
            self.store.update(position)
        if self.risk.record_trade(trade, now):
            logger.warning("Trading halted by circuit breaker after %s %s", trade.symbol, trade.exit_reason)

    # --- reporting -----------------------------------------------------------

    def get_risk_summary(
        self,
        open_positions: Optional[Iterable[Position]] = None,
        portfolio_value: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> RiskSummary:
        positions = list(open_positions) if open_positions is not None else self.positions.open_positions()
        return self.risk.risk_summary(positions, portfolio_value or self.portfolio_value, now)

    def backtest_engine(self) -> BacktestEngine:
        """Backtester sharing this engine's strategy overrides and composer weights."""
        return BacktestEngine(
            strategy_overrides=self.config.strategy_overrides,
            composer_weights=self.config.composer_weights,
            use_take_profit_ladder=self.config.use_take_profit_ladder,
        )

    def run_backtest(self, config: BacktestConfig, candles: pd.DataFrame) -> BacktestRun:
        return self.backtest_engine().run(config, candles)
