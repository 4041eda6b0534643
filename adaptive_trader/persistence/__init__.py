"""Persistence: open-position store (in-memory and JSON file)."""

from adaptive_trader.persistence.store import (
    InMemoryPositionStore,
    JsonFilePositionStore,
    PositionStore,
    position_from_dict,
    position_to_dict,
)

__all__ = [
    "InMemoryPositionStore",
    "JsonFilePositionStore",
    "PositionStore",
    "position_from_dict",
    "position_to_dict",
]
