"""Abstract strategy: signal generation, market suitability and strategy-specific exits."""

from __future__ import annotations
import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional, Tuple

import pandas as pd

from adaptive_trader.core.config import ConfigurationError
from adaptive_trader.core.types import Position, RiskProfile, Signal, StrategyId, Trade


@dataclass(frozen=True)
class Suitability:
    """How well current market conditions fit a strategy (score 0-100)."""
    suitable: bool
    score: int
    reason: str
    metrics: dict = field(default_factory=dict)


def risk_profile_with_overrides(profile: RiskProfile, overrides: Optional[dict]) -> RiskProfile:
    """Apply config overrides (e.g. {"stop_loss_pct": 3, "max_hold_minutes": 45}) to a profile."""
    if not overrides:
        return profile
    values = dict(overrides)
    for key in ("max_hold", "min_hold"):
        minutes = values.pop(f"{key}_minutes", None)
        if minutes is not None:
            values[key] = timedelta(minutes=float(minutes))
    known = {f.name for f in dataclasses.fields(RiskProfile)}
    unknown = set(values) - known
    if unknown:
        raise ConfigurationError(f"Unknown risk profile keys: {sorted(unknown)}")
    return dataclasses.replace(profile, **values)


class BaseStrategy(ABC):
    """Strategy evaluates the latest window and returns a Signal. Never raises on short windows."""

    strategy_id: StrategyId
    name: str = ""
    description: str = ""
    min_candles: int = 100
    default_risk_profile: RiskProfile = RiskProfile()
    # hand-tuned suitability thresholds, candidates for recalibration against backtests
    suitability_cutoff: float = 60.0
    volatility_band: Tuple[float, float] = (0.5, 3.0)

    def __init__(self, risk_profile: Optional[RiskProfile] = None):
        self.risk_profile = risk_profile or self.default_risk_profile

    @abstractmethod
    def evaluate(self, window: pd.DataFrame, now: Optional[datetime] = None) -> Signal:
        """Signal for the last candle of the window."""
        pass

    @abstractmethod
    def suitability(self, window: pd.DataFrame) -> Suitability:
        pass

    def check_exit(self, position: Position, window: pd.DataFrame, now: Optional[datetime] = None) -> Optional[str]:
        """Strategy-specific exit reason for an open position, or None."""
        return None

    def entry_block_reason(self, todays_trades: Iterable[Trade]) -> Optional[str]:
        """Reason the strategy refuses new entries today, or None."""
        return None

    def reset(self) -> None:
        """Drop any per-symbol state."""

    def info(self) -> dict:
        p = self.risk_profile
        return {
            "id": self.strategy_id.value,
            "name": self.name,
            "description": self.description,
            "stop_loss_pct": p.stop_loss_pct,
            "take_profit_pct": p.take_profit_pct,
            "use_trailing_stop": p.use_trailing_stop,
            "trailing_stop_pct": p.trailing_stop_pct,
            "max_hold_minutes": p.max_hold.total_seconds() / 60 if p.max_hold else None,
        }

    def has_enough_data(self, window: pd.DataFrame) -> bool:
        return window is not None and len(window) >= self.min_candles

    def insufficient(self, window: pd.DataFrame) -> Signal:
        price = float(window["close"].iloc[-1]) if window is not None and len(window) else None
        return Signal.hold(f"Insufficient data for {self.name.lower()} analysis",
                           strategy=self.strategy_id.value, price=price)
