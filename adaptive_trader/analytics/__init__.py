"""Analytics: performance metrics and Monte Carlo trade reshuffling."""

from adaptive_trader.analytics.metrics import (
    PerformanceMetrics,
    compute_metrics,
    equity_from_pnls,
    expectancy,
    max_drawdown,
    period_returns,
    profit_factor,
    sharpe_ratio,
    sortino_ratio,
    win_rate,
)
from adaptive_trader.analytics.monte_carlo import (
    MonteCarloSummary,
    monte_carlo_drawdowns,
    monte_carlo_trades,
    summarize,
)

__all__ = [
    "PerformanceMetrics",
    "compute_metrics",
    "equity_from_pnls",
    "expectancy",
    "max_drawdown",
    "period_returns",
    "profit_factor",
    "sharpe_ratio",
    "sortino_ratio",
    "win_rate",
    "MonteCarloSummary",
    "monte_carlo_drawdowns",
    "monte_carlo_trades",
    "summarize",
]
