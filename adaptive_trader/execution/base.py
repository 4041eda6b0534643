"""Abstract exchange interface: market data and market orders, all async."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pandas as pd

from adaptive_trader.core.types import Side


class ExchangeError(RuntimeError):
    """Candle, price or order call failed on the exchange side."""


@dataclass
class OrderResult:
    """Result of placing a market order."""
    success: bool
    order_id: Optional[str] = None
    avg_price: Optional[float] = None
    quantity: Optional[float] = None
    message: str = ""
    time: Optional[datetime] = None

    @property
    def notional(self) -> float:
        if self.avg_price is None or self.quantity is None:
            return 0.0
        return self.avg_price * self.quantity


class ExchangeClient(ABC):
    """Async client: candles, last price, market order by quote amount."""

    @abstractmethod
    async def get_candles(self, symbol: str, interval: str, limit: int = 200) -> pd.DataFrame:
        """Return OHLCV DataFrame with columns: time, open, high, low, close, volume (ascending)."""
        pass

    @abstractmethod
    async def get_current_price(self, symbol: str) -> float:
        pass

    @abstractmethod
    async def place_order(self, symbol: str, side: Side, quote_amount: float) -> OrderResult:
        """Market order spending (buy) or raising (sell) roughly `quote_amount`."""
        pass

    async def place_quantity_order(self, symbol: str, side: Side, quantity: float) -> OrderResult:
        """Order for `quantity` units. Default converts to a quote amount at the current price."""
        price = await self.get_current_price(symbol)
        return await self.place_order(symbol, side, quantity * price)

    async def close(self) -> None:
        """Release connections. Default no-op."""
        return None
