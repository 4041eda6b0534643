"""Execution: async exchange interface and the paper exchange."""

from adaptive_trader.execution.base import ExchangeClient, ExchangeError, OrderResult
from adaptive_trader.execution.paper import PaperExchange, PaperOrder

__all__ = ["ExchangeClient", "ExchangeError", "OrderResult", "PaperExchange", "PaperOrder"]
