"""
Strategy selector: keeps the market regime fresh on a fixed cadence and routes each
evaluation to the strategy the regime recommends, unless a strategy is forced,
auto-switching is off, or the regime confidence is too low to trust.
One selector per symbol; it holds the strategy instances (grid state included).
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pandas as pd

from adaptive_trader.core.types import Signal, SignalAction, StrategyId, window_time
from adaptive_trader.regime.classifier import (
    RegimeAssessment,
    RegimeChange,
    RegimeThresholds,
    detect_regime,
    detect_regime_change,
    regime_summary,
)
from adaptive_trader.strategies.base import BaseStrategy, Suitability
from adaptive_trader.strategies.registry import create_strategy, parse_strategy_id

logger = logging.getLogger("adaptive_trader.selector")


@dataclass(frozen=True)
class SelectorSettings:
    auto_switch: bool = True
    default_strategy: StrategyId = StrategyId.MULTI_INDICATOR
    force_strategy: Optional[StrategyId] = None
    regime_check_interval: timedelta = timedelta(seconds=300)
    min_regime_confidence: float = 60.0
    min_signal_confidence: float = 55.0
    min_candles: int = 100

    @classmethod
    def from_config(cls, config) -> "SelectorSettings":
        return cls(
            auto_switch=config.auto_switch,
            default_strategy=parse_strategy_id(config.default_strategy),
            force_strategy=parse_strategy_id(config.force_strategy) if config.force_strategy else None,
            regime_check_interval=timedelta(seconds=config.regime_check_interval_s),
            min_regime_confidence=config.min_regime_confidence,
            min_signal_confidence=config.min_signal_confidence,
        )


@dataclass(frozen=True)
class Evaluation:
    """Signal enriched with the regime context it was produced under."""
    signal: Signal
    regime: Optional[RegimeAssessment]
    strategy_used: Optional[StrategyId]
    regime_confidence: int = 0
    auto_switched: bool = False
    regime_change: Optional[RegimeChange] = None
    min_signal_confidence: float = 0.0

    @property
    def actionable(self) -> bool:
        """Entry-worthy: a buy/sell at or above the signal confidence threshold."""
        return self.signal.action != SignalAction.HOLD and self.signal.confidence >= self.min_signal_confidence


@dataclass(frozen=True)
class StrategyRanking:
    strategy: StrategyId
    suitability: Suitability


@dataclass(frozen=True)
class Recommendation:
    regime: Optional[RegimeAssessment]
    regime_recommended: Optional[StrategyId]
    rankings: List[StrategyRanking] = field(default_factory=list)

    @property
    def best(self) -> Optional[StrategyRanking]:
        return self.rankings[0] if self.rankings else None


class StrategySelector:
    def __init__(
        self,
        settings: Optional[SelectorSettings] = None,
        strategy_overrides: Optional[Dict[str, dict]] = None,
        composer_weights: Optional[Dict[str, float]] = None,
        regime_thresholds: Optional[RegimeThresholds] = None,
    ):
        self.settings = settings or SelectorSettings()
        self.strategy_overrides = strategy_overrides or {}
        self.composer_weights = composer_weights
        self.regime_thresholds = regime_thresholds or RegimeThresholds()
        self.auto_switch = self.settings.auto_switch
        self.forced_strategy: Optional[StrategyId] = self.settings.force_strategy
        self.regime: Optional[RegimeAssessment] = None
        self.last_regime_check: Optional[datetime] = None
        self.current_strategy: Optional[BaseStrategy] = None
        self._strategies: Dict[StrategyId, BaseStrategy] = {}

    def strategy(self, strategy_id) -> BaseStrategy:
        """Cached strategy instance for this selector."""
        sid = parse_strategy_id(strategy_id)
        if sid not in self._strategies:
            self._strategies[sid] = create_strategy(
                sid, self.strategy_overrides.get(sid.value), self.composer_weights
            )
        return self._strategies[sid]

    def refresh_regime(self, window: pd.DataFrame, now: datetime) -> Optional[RegimeChange]:
        """Recompute the regime if the check interval elapsed. Returns the change report when recomputed."""
        due = (
            self.regime is None
            or self.last_regime_check is None
            or now - self.last_regime_check >= self.settings.regime_check_interval
        )
        if not due:
            return None
        new_regime = detect_regime(window, self.regime_thresholds, now)
        change = detect_regime_change(self.regime, new_regime)
        if change.changed:
            logger.info("Market regime change: %s", change.message)
            if change.should_switch:
                logger.info("Recommended strategy: %s -> %s",
                            change.from_strategy.value if change.from_strategy else "hold",
                            change.to_strategy.value if change.to_strategy else "hold")
        elif self.regime is None:
            logger.info("Initial regime: %s", regime_summary(new_regime))
        self.regime = new_regime
        self.last_regime_check = now
        return change

    def select_strategy_id(self) -> Optional[StrategyId]:
        """Forced -> default (auto-switch off) -> fallback (low regime confidence) -> regime recommendation."""
        if self.forced_strategy is not None:
            return self.forced_strategy
        if not self.auto_switch:
            return self.settings.default_strategy
        if self.regime is None or self.regime.confidence < self.settings.min_regime_confidence:
            return StrategyId.MULTI_INDICATOR
        return self.regime.recommended_strategy

    def evaluate(self, window: pd.DataFrame, now: Optional[datetime] = None) -> Evaluation:
        if window is None or len(window) < self.settings.min_candles:
            return Evaluation(
                signal=Signal.hold("Insufficient data for strategy analysis", strategy="none"),
                regime=None,
                strategy_used=None,
                min_signal_confidence=self.settings.min_signal_confidence,
            )
        now = now or window_time(window)
        change = self.refresh_regime(window, now)
        selected = self.select_strategy_id()
        price = float(window["close"].iloc[-1])

        if selected is None:
            signal = Signal.hold(f"No strategy for {self.regime.regime.value} regime", strategy="hold",
                                 price=price)
            self._switch_to(None)
        else:
            strategy = self.strategy(selected)
            self._switch_to(strategy)
            signal = strategy.evaluate(window, now)

        return Evaluation(
            signal=signal,
            regime=self.regime,
            strategy_used=selected,
            regime_confidence=self.regime.confidence,
            auto_switched=(
                self.forced_strategy is None
                and self.auto_switch
                and selected is not None
                and selected == self.regime.recommended_strategy
            ),
            regime_change=change,
            min_signal_confidence=self.settings.min_signal_confidence,
        )

    def _switch_to(self, strategy: Optional[BaseStrategy]) -> None:
        if strategy is self.current_strategy:
            return
        previous = self.current_strategy
        if previous is not None:
            previous.reset()
        logger.info("Active strategy: %s -> %s",
                    previous.strategy_id.value if previous else "none",
                    strategy.strategy_id.value if strategy else "hold")
        self.current_strategy = strategy

    def set_strategy(self, strategy_id) -> StrategyId:
        """Force a strategy (disables regime routing). Raises ConfigurationError on unknown ids."""
        sid = parse_strategy_id(strategy_id)
        self.forced_strategy = sid
        logger.info("Strategy forced to %s (auto-switching disabled)", sid.value)
        return sid

    def enable_auto_switch(self) -> None:
        self.forced_strategy = None
        self.auto_switch = True
        logger.info("Auto-switching enabled")

    def status(self) -> dict:
        regime = self.regime
        return {
            "current_strategy": self.current_strategy.strategy_id.value if self.current_strategy else None,
            "forced_strategy": self.forced_strategy.value if self.forced_strategy else None,
            "auto_switch": self.auto_switch,
            "last_regime_check": self.last_regime_check,
            "regime": None if regime is None else {
                "type": regime.regime.value,
                "confidence": regime.confidence,
                "recommended": regime.recommended_strategy.value if regime.recommended_strategy else None,
                "reason": regime.reason,
            },
        }

    def recommend(self, window: pd.DataFrame) -> Recommendation:
        """Rank every regime-routable strategy by suitability for the window."""
        if window is None or len(window) < self.settings.min_candles:
            return Recommendation(regime=None, regime_recommended=StrategyId.MULTI_INDICATOR)
        regime = detect_regime(window, self.regime_thresholds)
        rankings = [
            StrategyRanking(sid, self.strategy(sid).suitability(window))
            for sid in (StrategyId.MEAN_REVERSION, StrategyId.MOMENTUM,
                        StrategyId.GRID_TRADING, StrategyId.DAY_TRADING)
        ]
        rankings.sort(key=lambda r: r.suitability.score, reverse=True)
        return Recommendation(regime=regime, regime_recommended=regime.recommended_strategy, rankings=rankings)

    def strategy_info(self, strategy_id) -> dict:
        return self.strategy(strategy_id).info()
