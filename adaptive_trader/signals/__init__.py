"""Signals: weighted multi-indicator composition."""

from adaptive_trader.signals.composer import (
    DEFAULT_WEIGHTS,
    ComposerParams,
    compose_signal,
    is_signal_strong,
    signal_strength_label,
)

__all__ = ["DEFAULT_WEIGHTS", "ComposerParams", "compose_signal", "is_signal_strong", "signal_strength_label"]
