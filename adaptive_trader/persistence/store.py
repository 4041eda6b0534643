"""
Position store: where open positions survive a restart of the automation.
In-memory for tests and backtests, a JSON file for the paper/live loop.
"""

from __future__ import annotations
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

from adaptive_trader.core.types import LadderRung, Position, PositionStatus, Side

logger = logging.getLogger("adaptive_trader.store")


class PositionStore(ABC):
    @abstractmethod
    def create(self, position: Position) -> None:
        pass

    @abstractmethod
    def update(self, position: Position) -> None:
        """Persist the latest state (quantity, stop, status, exit fields)."""
        pass

    @abstractmethod
    def query_open(self) -> List[Position]:
        pass

    @abstractmethod
    def query_by_symbol(self, symbol: str) -> List[Position]:
        pass


class InMemoryPositionStore(PositionStore):
    def __init__(self):
        self._rows: Dict[str, Position] = {}
        self._lock = threading.Lock()

    def create(self, position: Position) -> None:
        with self._lock:
            if position.id in self._rows:
                raise ValueError(f"Position {position.id} already stored")
            self._rows[position.id] = position

    def update(self, position: Position) -> None:
        with self._lock:
            self._rows[position.id] = position

    def query_open(self) -> List[Position]:
        with self._lock:
            return [p for p in self._rows.values() if p.is_open]

    def query_by_symbol(self, symbol: str) -> List[Position]:
        with self._lock:
            return [p for p in self._rows.values() if p.symbol == symbol]


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _td(value: Optional[timedelta]) -> Optional[float]:
    return value.total_seconds() if value is not None else None


def position_to_dict(p: Position) -> dict:
    return {
        "id": p.id,
        "symbol": p.symbol,
        "side": p.side.value,
        "entry_price": p.entry_price,
        "quantity": p.quantity,
        "initial_quantity": p.initial_quantity,
        "entry_time": _dt(p.entry_time),
        "stop_loss_price": p.stop_loss_price,
        "take_profit_price": p.take_profit_price,
        "strategy": p.strategy,
        "trailing_enabled": p.trailing_enabled,
        "trailing_pct": p.trailing_pct,
        "trailing_activated": p.trailing_activated,
        "take_profit_ladder": [
            {"fraction": r.fraction, "target_pct": r.target_pct, "price": r.price, "hit": r.hit}
            for r in p.take_profit_ladder
        ],
        "high_water_price": p.high_water_price,
        "low_water_price": p.low_water_price,
        "current_price": p.current_price,
        "unrealized_pnl": p.unrealized_pnl,
        "unrealized_pnl_pct": p.unrealized_pnl_pct,
        "realized_pnl": p.realized_pnl,
        "max_hold_s": _td(p.max_hold),
        "min_hold_s": _td(p.min_hold),
        "status": p.status.value,
        "exit_price": p.exit_price,
        "exit_time": _dt(p.exit_time),
        "exit_reason": p.exit_reason,
    }


def position_from_dict(d: dict) -> Position:
    def dt(key: str) -> Optional[datetime]:
        return datetime.fromisoformat(d[key]) if d.get(key) else None

    def td(key: str) -> Optional[timedelta]:
        return timedelta(seconds=d[key]) if d.get(key) is not None else None

    return Position(
        id=d["id"],
        symbol=d["symbol"],
        side=Side(d["side"]),
        entry_price=float(d["entry_price"]),
        quantity=float(d["quantity"]),
        initial_quantity=float(d["initial_quantity"]),
        entry_time=dt("entry_time"),
        stop_loss_price=float(d["stop_loss_price"]),
        take_profit_price=float(d["take_profit_price"]),
        strategy=d.get("strategy", ""),
        trailing_enabled=bool(d.get("trailing_enabled", False)),
        trailing_pct=float(d.get("trailing_pct", 0.0)),
        trailing_activated=bool(d.get("trailing_activated", False)),
        take_profit_ladder=[LadderRung(**r) for r in d.get("take_profit_ladder", [])],
        high_water_price=float(d.get("high_water_price", d["entry_price"])),
        low_water_price=float(d.get("low_water_price", d["entry_price"])),
        current_price=float(d.get("current_price", d["entry_price"])),
        unrealized_pnl=float(d.get("unrealized_pnl", 0.0)),
        unrealized_pnl_pct=float(d.get("unrealized_pnl_pct", 0.0)),
        realized_pnl=float(d.get("realized_pnl", 0.0)),
        max_hold=td("max_hold_s"),
        min_hold=td("min_hold_s"),
        status=PositionStatus(d.get("status", "open")),
        exit_price=d.get("exit_price"),
        exit_time=dt("exit_time"),
        exit_reason=d.get("exit_reason", ""),
    )


class JsonFilePositionStore(PositionStore):
    """
    Whole table in one JSON file, rewritten on every change (write to a temp file, then replace).
    Stored objects are snapshots: later changes to a Position need an explicit update().
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._rows: Dict[str, dict] = self._load()

    def _load(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f) or {}
        rows = {row["id"]: row for row in data.get("positions", [])}
        logger.info("Loaded %d position record(s) from %s", len(rows), self.path)
        return rows

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump({"positions": list(self._rows.values())}, f, indent=2)
        os.replace(tmp, self.path)

    def create(self, position: Position) -> None:
        with self._lock:
            if position.id in self._rows:
                raise ValueError(f"Position {position.id} already stored")
            self._rows[position.id] = position_to_dict(position)
            self._flush()

    def update(self, position: Position) -> None:
        with self._lock:
            self._rows[position.id] = position_to_dict(position)
            self._flush()

    def query_open(self) -> List[Position]:
        with self._lock:
            rows = [r for r in self._rows.values() if r.get("status") == PositionStatus.OPEN.value]
        return [position_from_dict(r) for r in rows]

    def query_by_symbol(self, symbol: str) -> List[Position]:
        with self._lock:
            rows = [r for r in self._rows.values() if r.get("symbol") == symbol]
        return [position_from_dict(r) for r in rows]
