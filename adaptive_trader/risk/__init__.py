"""Risk management: circuit breaker, exposure limits, drawdown, VaR, Kelly sizing."""

from adaptive_trader.risk.manager import (
    AccountRiskController,
    BreakerStatus,
    CircuitBreaker,
    ExposureReport,
    RiskAlert,
    RiskResult,
    RiskSummary,
    compute_exposure,
    kelly_position_size,
    risk_based_position_size,
)

__all__ = [
    "AccountRiskController",
    "BreakerStatus",
    "CircuitBreaker",
    "ExposureReport",
    "RiskAlert",
    "RiskResult",
    "RiskSummary",
    "compute_exposure",
    "kelly_position_size",
    "risk_based_position_size",
]
