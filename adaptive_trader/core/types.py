"""
Core data types: candles, indicator readings, signals, positions, trades.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, List, Optional

import pandas as pd

CANDLE_COLUMNS = ["time", "open", "high", "low", "close", "volume"]


class Side(str, Enum):
    LONG = "buy"
    SHORT = "sell"

    @property
    def sign(self) -> int:
        return 1 if self is Side.LONG else -1


class SignalAction(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class Vote(str, Enum):
    """Opinion of a single indicator."""
    BUY = "buy"
    SELL = "sell"
    NEUTRAL = "neutral"


class StrategyId(str, Enum):
    MOMENTUM = "momentum"
    MEAN_REVERSION = "mean-reversion"
    GRID_TRADING = "grid-trading"
    DAY_TRADING = "day-trading"
    MULTI_INDICATOR = "multi-indicator"


class PositionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class Candle:
    """OHLCV candle."""
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Build an ascending OHLCV window from Candle objects."""
    rows = [[c.time, c.open, c.high, c.low, c.close, c.volume] for c in candles]
    df = pd.DataFrame(rows, columns=CANDLE_COLUMNS)
    return df.sort_values("time").reset_index(drop=True)


def as_datetime(value) -> datetime:
    """Convert a pandas/numpy/str timestamp to datetime."""
    if isinstance(value, datetime):
        return value
    return pd.Timestamp(value).to_pydatetime()


def window_time(window: pd.DataFrame) -> datetime:
    """Timestamp of the most recent candle in the window (or now if empty)."""
    if window is None or len(window) == 0:
        return datetime.now(timezone.utc)
    return as_datetime(window["time"].iloc[-1])


@dataclass(frozen=True)
class IndicatorReading:
    """One indicator's opinion on the latest candle."""
    name: str
    value: Optional[float]
    signal: Vote = Vote.NEUTRAL
    strength: float = 0.0
    condition: str = ""
    description: str = ""


@dataclass(frozen=True)
class Signal:
    """Buy/sell/hold decision with a 0-100 confidence. Produced fresh on every evaluation."""
    action: SignalAction
    confidence: int
    reason: str
    strategy: str = ""
    price: Optional[float] = None
    readings: tuple = ()
    metadata: dict = field(default_factory=dict)
    exit_all: bool = False

    @classmethod
    def hold(cls, reason: str, strategy: str = "", price: Optional[float] = None,
             confidence: int = 0, **metadata) -> "Signal":
        return cls(SignalAction.HOLD, confidence, reason, strategy=strategy, price=price, metadata=metadata)

    @property
    def side(self) -> Optional[Side]:
        if self.action == SignalAction.BUY:
            return Side.LONG
        if self.action == SignalAction.SELL:
            return Side.SHORT
        return None

    @property
    def is_actionable(self) -> bool:
        return self.action != SignalAction.HOLD or self.exit_all


@dataclass(frozen=True)
class RiskProfile:
    """Per-strategy stop/target template, percentages of entry price."""
    stop_loss_pct: float = 2.0
    take_profit_pct: float = 5.0
    use_trailing_stop: bool = True
    trailing_stop_pct: float = 1.5
    use_take_profit_ladder: bool = True
    max_hold: Optional[timedelta] = None
    min_hold: Optional[timedelta] = None


@dataclass(frozen=True)
class Fill:
    """Executed entry order handed to the position manager."""
    symbol: str
    side: Side
    price: float
    quantity: float
    strategy: str = ""
    time: Optional[datetime] = None
    order_id: Optional[str] = None

    @property
    def notional(self) -> float:
        return self.price * self.quantity


@dataclass
class LadderRung:
    """Partial take-profit target; fraction is of the initial quantity."""
    fraction: float
    target_pct: float
    price: float
    hit: bool = False


@dataclass
class Position:
    """Open or closed position state. Owned by the position manager."""
    id: str
    symbol: str
    side: Side
    entry_price: float
    quantity: float
    initial_quantity: float
    entry_time: datetime
    stop_loss_price: float
    take_profit_price: float
    strategy: str = ""
    trailing_enabled: bool = False
    trailing_pct: float = 0.0
    trailing_activated: bool = False
    take_profit_ladder: List[LadderRung] = field(default_factory=list)
    high_water_price: float = 0.0
    low_water_price: float = 0.0
    current_price: float = 0.0
    unrealized_pnl: float = 0.0
    unrealized_pnl_pct: float = 0.0
    realized_pnl: float = 0.0
    max_hold: Optional[timedelta] = None
    min_hold: Optional[timedelta] = None
    status: PositionStatus = PositionStatus.OPEN
    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    exit_reason: str = ""

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    @property
    def notional(self) -> float:
        """Entry value of the remaining quantity."""
        return self.entry_price * self.quantity

    def pnl_at(self, price: float, quantity: Optional[float] = None) -> float:
        qty = self.quantity if quantity is None else quantity
        return (price - self.entry_price) * qty * self.side.sign


@dataclass
class Trade:
    """Realized outcome of a full or partial close."""
    symbol: str
    side: Side
    quantity: float
    entry_price: float
    exit_price: float
    pnl: float
    pnl_pct: float
    entry_time: datetime
    exit_time: datetime
    exit_reason: str  # "stop-loss" | "take-profit" | "partial-take-profit" | "max-hold-time" | "signal" | ...
    fees: float = 0.0
    strategy: str = ""
    position_id: Optional[str] = None
    partial: bool = False
