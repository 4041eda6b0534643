"""Core: config, types, logging."""

from adaptive_trader.core.config import load_config, Config, ConfigurationError
from adaptive_trader.core.types import (
    Candle,
    Fill,
    IndicatorReading,
    LadderRung,
    Position,
    PositionStatus,
    RiskProfile,
    Side,
    Signal,
    SignalAction,
    StrategyId,
    Trade,
    Vote,
    candles_to_frame,
)
from adaptive_trader.core.logger import setup_logging

__all__ = [
    "load_config",
    "Config",
    "ConfigurationError",
    "Candle",
    "Fill",
    "IndicatorReading",
    "LadderRung",
    "Position",
    "PositionStatus",
    "RiskProfile",
    "Side",
    "Signal",
    "SignalAction",
    "StrategyId",
    "Trade",
    "Vote",
    "candles_to_frame",
    "setup_logging",
]
