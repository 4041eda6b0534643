"""
Paper exchange: replays candle frames and fills market orders at the current candle close.
Used by the `live` CLI mode and by tests. Each symbol has a cursor; advance() steps it.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Set

import pandas as pd

from adaptive_trader.core.types import CANDLE_COLUMNS, Side, as_datetime
from adaptive_trader.execution.base import ExchangeClient, ExchangeError, OrderResult

logger = logging.getLogger("adaptive_trader.execution.paper")


@dataclass(frozen=True)
class PaperOrder:
    order_id: str
    symbol: str
    side: Side
    price: float
    quantity: float
    fee: float
    time: datetime


class PaperExchange(ExchangeClient):
    """
    In-memory exchange over historical candles. The visible history for a symbol is
    candles[0 .. cursor]; get_current_price is the close at the cursor.
    """

    def __init__(
        self,
        candles: Dict[str, pd.DataFrame],
        start_index: int = 0,
        fee_rate: float = 0.0,
        slippage: float = 0.0,
    ):
        if not candles:
            raise ValueError("PaperExchange needs at least one symbol")
        self._frames: Dict[str, pd.DataFrame] = {}
        self._cursor: Dict[str, int] = {}
        for symbol, df in candles.items():
            frame = df[CANDLE_COLUMNS].sort_values("time").reset_index(drop=True)
            if frame.empty:
                raise ValueError(f"No candles for {symbol}")
            self._frames[symbol] = frame
            self._cursor[symbol] = min(start_index, len(frame) - 1)
        self.fee_rate = fee_rate
        self.slippage = slippage
        self.orders: List[PaperOrder] = []
        self.failing: Set[str] = set()

    def _frame(self, symbol: str) -> pd.DataFrame:
        if symbol in self.failing:
            raise ExchangeError(f"{symbol}: simulated exchange failure")
        frame = self._frames.get(symbol)
        if frame is None:
            raise ExchangeError(f"Unknown symbol {symbol}")
        return frame

    def symbols(self) -> List[str]:
        return list(self._frames)

    def current_time(self, symbol: str) -> datetime:
        frame = self._frame(symbol)
        return as_datetime(frame["time"].iloc[self._cursor[symbol]])

    def advance(self, steps: int = 1) -> bool:
        """Move every symbol forward. False once all symbols reached their last candle."""
        moved = False
        for symbol, frame in self._frames.items():
            nxt = min(self._cursor[symbol] + steps, len(frame) - 1)
            if nxt != self._cursor[symbol]:
                moved = True
            self._cursor[symbol] = nxt
        return moved

    def exhausted(self) -> bool:
        return all(self._cursor[s] >= len(f) - 1 for s, f in self._frames.items())

    async def get_candles(self, symbol: str, interval: str, limit: int = 200) -> pd.DataFrame:
        frame = self._frame(symbol)
        end = self._cursor[symbol] + 1
        return frame.iloc[max(0, end - limit): end].reset_index(drop=True)

    async def get_current_price(self, symbol: str) -> float:
        frame = self._frame(symbol)
        return float(frame["close"].iloc[self._cursor[symbol]])

    async def place_order(self, symbol: str, side: Side, quote_amount: float) -> OrderResult:
        if quote_amount <= 0:
            return OrderResult(success=False, message=f"Invalid quote amount {quote_amount}")
        price = await self.get_current_price(symbol)
        fill = price * (1 + self.slippage) if side == Side.LONG else price * (1 - self.slippage)
        qty = quote_amount / fill
        return self._record(symbol, side, fill, qty)

    async def place_quantity_order(self, symbol: str, side: Side, quantity: float) -> OrderResult:
        if quantity <= 0:
            return OrderResult(success=False, message=f"Invalid quantity {quantity}")
        price = await self.get_current_price(symbol)
        fill = price * (1 + self.slippage) if side == Side.LONG else price * (1 - self.slippage)
        return self._record(symbol, side, fill, quantity)

    def _record(self, symbol: str, side: Side, price: float, qty: float) -> OrderResult:
        now = self.current_time(symbol)
        order = PaperOrder(
            order_id=f"paper-{len(self.orders) + 1}",
            symbol=symbol,
            side=side,
            price=price,
            quantity=qty,
            fee=price * qty * self.fee_rate,
            time=now,
        )
        self.orders.append(order)
        logger.info("Paper fill %s %s %.8f %s @ %.4f", order.order_id, side.value, qty, symbol, price)
        return OrderResult(success=True, order_id=order.order_id, avg_price=price, quantity=qty, time=now)

    def last_order(self, symbol: Optional[str] = None) -> Optional[PaperOrder]:
        for order in reversed(self.orders):
            if symbol is None or order.symbol == symbol:
                return order
        return None
