"""
Position lifecycle: open from a fill, update on every price tick (watermarks, P&L,
trailing stop), detect exits, and apply full or partial closes.

Exit triggers are checked in this order: stop-loss, take-profit, first un-hit ladder
rung, max holding time. Detection never changes quantity; apply_exit does, so a
failed exit order leaves the position intact for the next tick.
"""

from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from adaptive_trader.core.types import Fill, Position, PositionStatus, RiskProfile, Trade
from adaptive_trader.positions.levels import (
    is_stop_loss_hit,
    is_take_profit_hit,
    stop_loss_price,
    take_profit_ladder,
    take_profit_price,
    trailing_stop_update,
)

logger = logging.getLogger("adaptive_trader.positions")

QTY_EPSILON = 1e-12


class DuplicatePositionError(ValueError):
    """A symbol already has an open position."""


class UnknownPositionError(KeyError):
    pass


@dataclass(frozen=True)
class ExitEvent:
    """An exit the manager wants executed. fraction = share of the initial quantity (1.0 = everything left)."""
    position_id: str
    symbol: str
    reason: str
    price: float
    quantity: float
    fraction: float = 1.0
    rung_index: Optional[int] = None
    time: Optional[datetime] = None

    @property
    def partial(self) -> bool:
        return self.rung_index is not None


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


class PositionManager:
    """Table of open positions keyed by id. At most one open position per symbol."""

    def __init__(self, use_take_profit_ladder: bool = True):
        self.use_take_profit_ladder = use_take_profit_ladder
        self._positions: Dict[str, Position] = {}

    # --- queries -------------------------------------------------------------

    def get(self, position_id: str) -> Optional[Position]:
        return self._positions.get(position_id)

    def open_positions(self, symbol: Optional[str] = None) -> List[Position]:
        return [p for p in self._positions.values() if symbol is None or p.symbol == symbol]

    def position_for(self, symbol: str) -> Optional[Position]:
        for p in self._positions.values():
            if p.symbol == symbol:
                return p
        return None

    def has_open(self, symbol: str) -> bool:
        return self.position_for(symbol) is not None

    def summary(self, symbol: str) -> dict:
        positions = self.open_positions(symbol)
        if not positions:
            return {"has_position": False, "total_quantity": 0.0, "total_notional": 0.0,
                    "avg_entry_price": 0.0, "unrealized_pnl": 0.0, "unrealized_pnl_pct": 0.0}
        qty = sum(p.quantity for p in positions)
        notional = sum(p.notional for p in positions)
        upnl = sum(p.unrealized_pnl for p in positions)
        return {
            "has_position": True,
            "position_count": len(positions),
            "total_quantity": qty,
            "total_notional": notional,
            "avg_entry_price": notional / qty if qty else 0.0,
            "unrealized_pnl": upnl,
            "unrealized_pnl_pct": upnl / notional * 100 if notional else 0.0,
        }

    # --- lifecycle -----------------------------------------------------------

    def open_position(self, fill: Fill, profile: RiskProfile, now: Optional[datetime] = None) -> Position:
        """Create a position from an executed entry. Raises DuplicatePositionError if the symbol is taken."""
        existing = self.position_for(fill.symbol)
        if existing is not None:
            raise DuplicatePositionError(f"{fill.symbol} already has open position {existing.id}")
        if fill.price <= 0 or fill.quantity <= 0:
            raise ValueError(f"Invalid fill for {fill.symbol}: price={fill.price} quantity={fill.quantity}")
        entry_time = fill.time or _now(now)
        ladder = []
        if self.use_take_profit_ladder and profile.use_take_profit_ladder:
            ladder = take_profit_ladder(fill.side, fill.price, profile.take_profit_pct)
        position = Position(
            id=fill.order_id or uuid.uuid4().hex[:16],
            symbol=fill.symbol,
            side=fill.side,
            entry_price=fill.price,
            quantity=fill.quantity,
            initial_quantity=fill.quantity,
            entry_time=entry_time,
            stop_loss_price=stop_loss_price(fill.side, fill.price, profile.stop_loss_pct),
            take_profit_price=take_profit_price(fill.side, fill.price, profile.take_profit_pct),
            strategy=fill.strategy,
            trailing_enabled=profile.use_trailing_stop,
            trailing_pct=profile.trailing_stop_pct,
            take_profit_ladder=ladder,
            high_water_price=fill.price,
            low_water_price=fill.price,
            current_price=fill.price,
            max_hold=profile.max_hold,
            min_hold=profile.min_hold,
        )
        self._positions[position.id] = position
        logger.info(
            "Position opened %s: %s %.8f %s @ %.4f | SL %.4f (-%.2f%%) | TP %.4f (+%.2f%%)",
            position.id, position.side.value, position.quantity, position.symbol, position.entry_price,
            position.stop_loss_price, profile.stop_loss_pct, position.take_profit_price, profile.take_profit_pct,
        )
        return position

    def restore(self, positions: Iterable[Position]) -> int:
        """Reload open positions (e.g. from the position store after a restart)."""
        count = 0
        for p in positions:
            if not p.is_open:
                continue
            existing = self.position_for(p.symbol)
            if existing is not None and existing.id != p.id:
                logger.warning("Skipping restore of %s: %s already has %s", p.id, p.symbol, existing.id)
                continue
            self._positions[p.id] = p
            count += 1
        if count:
            logger.info("Restored %d open position(s)", count)
        return count

    def update_price(self, position_id: str, price: float, now: Optional[datetime] = None) -> Optional[ExitEvent]:
        """Mark to market, ratchet the trailing stop, and return the first triggered exit (if any)."""
        p = self._positions.get(position_id)
        if p is None:
            return None
        now = _now(now)
        p.current_price = price
        p.high_water_price = max(p.high_water_price, price)
        p.low_water_price = min(p.low_water_price, price)
        p.unrealized_pnl = p.pnl_at(price)
        p.unrealized_pnl_pct = (price - p.entry_price) / p.entry_price * 100 * p.side.sign

        if p.trailing_enabled and p.unrealized_pnl_pct > 0:
            new_stop = trailing_stop_update(p.side, price, p.entry_price, p.stop_loss_price, p.trailing_pct)
            if new_stop is not None:
                p.stop_loss_price = new_stop
                if not p.trailing_activated:
                    logger.info("Trailing stop activated for %s (%s)", p.symbol, p.id)
                p.trailing_activated = True
                logger.debug("Trailing stop for %s moved to %.4f", p.symbol, new_stop)

        if is_stop_loss_hit(p.side, price, p.stop_loss_price):
            return self._full_exit(p, "stop-loss", price, now)
        if is_take_profit_hit(p.side, price, p.take_profit_price):
            return self._full_exit(p, "take-profit", price, now)
        for idx, rung in enumerate(p.take_profit_ladder):
            if rung.hit:
                continue
            if is_take_profit_hit(p.side, price, rung.price):
                qty = min(p.initial_quantity * rung.fraction, p.quantity)
                return ExitEvent(p.id, p.symbol, "partial-take-profit", price, qty,
                                 fraction=rung.fraction, rung_index=idx, time=now)
        if p.max_hold is not None and now - p.entry_time > p.max_hold:
            return self._full_exit(p, "max-hold-time", price, now)
        return None

    def check_symbol(self, symbol: str, price: float, now: Optional[datetime] = None) -> List[ExitEvent]:
        events = []
        for p in self.open_positions(symbol):
            event = self.update_price(p.id, price, now)
            if event is not None:
                events.append(event)
        return events

    def apply_exit(
        self,
        event: ExitEvent,
        fill_price: Optional[float] = None,
        now: Optional[datetime] = None,
        fees: float = 0.0,
    ) -> Trade:
        """Execute a detected exit against the table. Partial rungs reduce quantity; the rest closes."""
        price = event.price if fill_price is None else fill_price
        if event.rung_index is None:
            return self.close_position(event.position_id, price, event.reason, now, fees)
        p = self._require(event.position_id)
        rung = p.take_profit_ladder[event.rung_index]
        qty = min(event.quantity, p.quantity)
        if p.quantity - qty <= QTY_EPSILON:
            rung.hit = True
            return self.close_position(p.id, price, event.reason, now, fees)
        now = _now(now)
        pnl = p.pnl_at(price, qty) - fees
        p.quantity -= qty
        p.realized_pnl += pnl
        rung.hit = True
        logger.info("Partial take-profit %d for %s: closed %.8f @ %.4f, P&L %.2f, remaining %.8f",
                    event.rung_index + 1, p.symbol, qty, price, pnl, p.quantity)
        return self._trade(p, qty, price, pnl, event.reason, now, fees, partial=True)

    def close_position(
        self,
        position_id: str,
        exit_price: float,
        reason: str,
        now: Optional[datetime] = None,
        fees: float = 0.0,
    ) -> Trade:
        p = self._require(position_id)
        now = _now(now)
        qty = p.quantity
        pnl = p.pnl_at(exit_price, qty) - fees
        p.realized_pnl += pnl
        p.status = PositionStatus.CLOSED
        p.exit_price = exit_price
        p.exit_time = now
        p.exit_reason = reason
        p.current_price = exit_price
        p.unrealized_pnl = 0.0
        del self._positions[position_id]
        logger.info("Position closed %s %s (%s): exit %.4f, P&L %.2f, held %.1f min",
                    p.id, p.symbol, reason, exit_price, pnl, (now - p.entry_time).total_seconds() / 60)
        return self._trade(p, qty, exit_price, pnl, reason, now, fees, partial=False)

    # --- helpers -------------------------------------------------------------

    def _require(self, position_id: str) -> Position:
        p = self._positions.get(position_id)
        if p is None:
            raise UnknownPositionError(position_id)
        return p

    def _full_exit(self, p: Position, reason: str, price: float, now: datetime) -> ExitEvent:
        return ExitEvent(p.id, p.symbol, reason, price, p.quantity, fraction=1.0, time=now)

    @staticmethod
    def _trade(p: Position, qty: float, price: float, pnl: float, reason: str, now: datetime,
               fees: float, partial: bool) -> Trade:
        basis = p.entry_price * qty
        return Trade(
            symbol=p.symbol,
            side=p.side,
            quantity=qty,
            entry_price=p.entry_price,
            exit_price=price,
            pnl=pnl,
            pnl_pct=pnl / basis * 100 if basis else 0.0,
            entry_time=p.entry_time,
            exit_time=now,
            exit_reason=reason,
            fees=fees,
            strategy=p.strategy,
            position_id=p.id,
            partial=partial,
        )
