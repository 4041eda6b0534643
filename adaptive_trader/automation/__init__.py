"""Automation: per-symbol decision loops and the position monitor."""

from adaptive_trader.automation.orchestrator import AutomationOrchestrator, SymbolStats

__all__ = ["AutomationOrchestrator", "SymbolStats"]
