"""
Grid trading: a ladder of buy levels below and sell levels above the price at setup.
The first evaluation lays the grid; later evaluations trigger on unfilled levels and
request an exit of everything once price leaves the grid by more than 5%.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import pandas as pd

from adaptive_trader.core.types import Position, RiskProfile, Side, Signal, SignalAction, StrategyId
from adaptive_trader.indicators.library import atr, last_value, pct_returns, round_half_up, sma, std
from adaptive_trader.strategies.base import BaseStrategy, Suitability

logger = logging.getLogger("adaptive_trader.strategies.grid")


@dataclass
class GridLevel:
    level: int
    price: float
    side: Side
    filled: bool = False


@dataclass
class GridState:
    center: float
    spacing_pct: float
    buy_levels: List[GridLevel] = field(default_factory=list)
    sell_levels: List[GridLevel] = field(default_factory=list)

    @property
    def lower(self) -> float:
        return self.buy_levels[-1].price

    @property
    def upper(self) -> float:
        return self.sell_levels[-1].price

    def utilization(self) -> float:
        levels = self.buy_levels + self.sell_levels
        return sum(1 for lv in levels if lv.filled) / len(levels) * 100 if levels else 0.0


class GridTradingStrategy(BaseStrategy):
    strategy_id = StrategyId.GRID_TRADING
    name = "Grid Trading"
    description = "Places buy/sell orders at price intervals to profit from volatility"
    min_candles = 50
    volatility_band = (0.3, 2.0)
    default_risk_profile = RiskProfile(
        stop_loss_pct=5.0,
        take_profit_pct=1.0,
        use_trailing_stop=False,
        trailing_stop_pct=0.0,
        use_take_profit_ladder=False,
    )

    def __init__(
        self,
        risk_profile: Optional[RiskProfile] = None,
        grid_levels: int = 10,
        grid_spacing_pct: float = 0.5,
        use_atr_spacing: bool = True,
        breakout_pct: float = 5.0,
        setup_confidence: int = 70,
        level_confidence: int = 70,
        breakout_confidence: int = 90,
    ):
        super().__init__(risk_profile)
        self.grid_levels = grid_levels
        self.grid_spacing_pct = grid_spacing_pct
        self.use_atr_spacing = use_atr_spacing
        self.breakout_pct = breakout_pct
        self.setup_confidence = setup_confidence
        self.level_confidence = level_confidence
        self.breakout_confidence = breakout_confidence
        self.grid: Optional[GridState] = None

    def reset(self) -> None:
        self.grid = None

    def build_grid(self, price: float, window: pd.DataFrame) -> GridState:
        spacing = self.grid_spacing_pct
        if self.use_atr_spacing and len(window) >= 20:
            current_atr = last_value(atr(window["high"].tolist(), window["low"].tolist(),
                                         window["close"].tolist(), 14))
            if current_atr and price:
                spacing = current_atr / price * 100
        grid = GridState(center=price, spacing_pct=spacing)
        for i in range(1, self.grid_levels + 1):
            grid.buy_levels.append(GridLevel(i, price * (1 - spacing * i / 100), Side.LONG))
            grid.sell_levels.append(GridLevel(i, price * (1 + spacing * i / 100), Side.SHORT))
        return grid

    def _breakout(self, price: float) -> Optional[str]:
        if self.grid is None:
            return None
        if price > self.grid.upper * (1 + self.breakout_pct / 100):
            return "up"
        if price < self.grid.lower * (1 - self.breakout_pct / 100):
            return "down"
        return None

    def evaluate(self, window: pd.DataFrame, now: Optional[datetime] = None) -> Signal:
        if not self.has_enough_data(window):
            return self.insufficient(window)
        price = float(window["close"].iloc[-1])
        sid = self.strategy_id.value

        if self.grid is None:
            self.grid = self.build_grid(price, window)
            logger.info("Grid set up at %.4f: %d levels, %.2f%% spacing",
                        price, self.grid_levels * 2, self.grid.spacing_pct)
            return Signal.hold(
                f"Grid setup: {self.grid_levels * 2} levels, {self.grid.spacing_pct:.2f}% spacing",
                strategy=sid, price=price, confidence=self.setup_confidence, setup=True,
                lower=self.grid.lower, upper=self.grid.upper, spacing_pct=self.grid.spacing_pct,
            )

        direction = self._breakout(price)
        if direction is not None:
            bound = self.grid.upper if direction == "up" else self.grid.lower
            relation = ">" if direction == "up" else "<"
            reason = f"Price broke {'above' if direction == 'up' else 'below'} grid ({price:.2f} {relation} {bound:.2f})"
            logger.warning("Grid breakout %s at %.4f; requesting exit of all grid positions", direction, price)
            self.grid = None
            return Signal(SignalAction.HOLD, self.breakout_confidence, reason, strategy=sid, price=price,
                          metadata={"breakout": True, "direction": direction}, exit_all=True)

        metadata = {"lower": self.grid.lower, "upper": self.grid.upper}
        for level in self.grid.buy_levels:
            if not level.filled and price <= level.price:
                level.filled = True
                metadata.update(level=level.level, level_price=level.price, utilization=self.grid.utilization())
                return Signal(SignalAction.BUY, self.level_confidence,
                              f"Price hit buy grid level {level.level} at ${level.price:.2f}",
                              strategy=sid, price=price, metadata=metadata)
        for level in self.grid.sell_levels:
            if not level.filled and price >= level.price:
                level.filled = True
                metadata.update(level=level.level, level_price=level.price, utilization=self.grid.utilization())
                return Signal(SignalAction.SELL, self.level_confidence,
                              f"Price hit sell grid level {level.level} at ${level.price:.2f}",
                              strategy=sid, price=price, metadata=metadata)
        metadata["utilization"] = self.grid.utilization()
        return Signal(SignalAction.HOLD, 0, "Price between grid levels", strategy=sid, price=price,
                      metadata=metadata)

    def check_exit(self, position: Position, window: pd.DataFrame, now: Optional[datetime] = None) -> Optional[str]:
        """Close at the next opposite grid level, or everything on a breakout."""
        if self.grid is None or window is None or len(window) == 0:
            return None
        price = float(window["close"].iloc[-1])
        if self._breakout(price) is not None:
            return "grid-bounds-exceeded"
        if position.side == Side.LONG and any(price >= lv.price for lv in self.grid.sell_levels):
            return "grid-take-profit"
        if position.side == Side.SHORT and any(price <= lv.price for lv in self.grid.buy_levels):
            return "grid-take-profit"
        return None

    def suitability(self, window: pd.DataFrame) -> Suitability:
        if window is None or len(window) < 100:
            return Suitability(False, 0, "Insufficient data")
        closes = window["close"].astype(float).tolist()
        returns_vol = std(pct_returns(closes))
        mean = sma(closes, 50)
        crosses = 0
        max_dev = 0.0
        for i in range(len(closes) - 50, len(closes)):
            if math.isnan(mean[i]) or mean[i] == 0:
                continue
            max_dev = max(max_dev, abs((closes[i] - mean[i]) / mean[i]) * 100)
            if not math.isnan(mean[i - 1]) and (closes[i - 1] > mean[i - 1]) != (closes[i] > mean[i]):
                crosses += 1
        low, high = self.volatility_band
        volatility_score = 1.0 if low <= returns_vol <= high else 0.5
        ranging_score = 1.0 if crosses >= 5 else crosses / 5
        bounds_score = 1.0 if max_dev <= 5.0 else 0.5
        score = (volatility_score * 0.4 + ranging_score * 0.4 + bounds_score * 0.2) * 100
        suitable = score >= self.suitability_cutoff
        if suitable:
            reason = f"Good ranging market: {returns_vol:.2f}% volatility, {crosses} price oscillations"
        else:
            reason = (f"Not ideal: {returns_vol:.2f}% volatility, {crosses} oscillations, "
                      f"{max_dev:.1f}% max deviation")
        return Suitability(
            suitable=suitable,
            score=round_half_up(score),
            reason=reason,
            metrics={"volatility_pct": returns_vol, "oscillations": crosses, "max_deviation_pct": max_dev},
        )
