"""Market regime classification."""

from adaptive_trader.regime.classifier import (
    REGIME_STRATEGIES,
    RegimeAssessment,
    RegimeChange,
    RegimeThresholds,
    RegimeType,
    detect_regime,
    detect_regime_change,
    regime_summary,
)

__all__ = [
    "REGIME_STRATEGIES",
    "RegimeAssessment",
    "RegimeChange",
    "RegimeThresholds",
    "RegimeType",
    "detect_regime",
    "detect_regime_change",
    "regime_summary",
]
