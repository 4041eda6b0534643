"""Positions: stop/target arithmetic and the open-position lifecycle."""

from adaptive_trader.positions.levels import (
    is_stop_loss_hit,
    is_take_profit_hit,
    require_valid_risk_profile,
    stop_loss_price,
    take_profit_ladder,
    take_profit_price,
    trailing_stop_update,
    validate_risk_profile,
)
from adaptive_trader.positions.manager import (
    DuplicatePositionError,
    ExitEvent,
    PositionManager,
    UnknownPositionError,
)

__all__ = [
    "is_stop_loss_hit",
    "is_take_profit_hit",
    "require_valid_risk_profile",
    "stop_loss_price",
    "take_profit_ladder",
    "take_profit_price",
    "trailing_stop_update",
    "validate_risk_profile",
    "DuplicatePositionError",
    "ExitEvent",
    "PositionManager",
    "UnknownPositionError",
]
