"""
Performance metrics over closed-trade P&L. Risk-adjusted ratios use the relative change of
the equity curve between consecutive exits as the per-period return.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

_EPS = 1e-12


@dataclass
class PerformanceMetrics:
    """Aggregate performance metrics."""
    total_pnl: float
    total_return_pct: float
    sharpe_ratio: float
    sortino_ratio: float
    max_drawdown_pct: float
    win_rate: float
    profit_factor: float
    expectancy: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    avg_win: float
    avg_loss: float
    largest_win: float
    largest_loss: float
    calmar_ratio: float = 0.0


def _excess(returns: Sequence[float], risk_free_rate: float, periods_per_year: float) -> np.ndarray:
    return np.asarray(returns, dtype=float) - risk_free_rate / periods_per_year


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Annualized Sharpe of period returns. 0 for an empty or flat series."""
    excess = _excess(returns, risk_free_rate, periods_per_year)
    if excess.size == 0 or excess.std() <= _EPS:
        return 0.0
    return float(excess.mean() / excess.std() * np.sqrt(periods_per_year))


def sortino_ratio(returns: Sequence[float], risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Like Sharpe but divided by the spread of losing periods only; equals Sharpe without losses."""
    excess = _excess(returns, risk_free_rate, periods_per_year)
    if excess.size == 0:
        return 0.0
    losing = np.asarray(returns, dtype=float)
    losing = losing[losing < 0]
    if losing.size == 0 or losing.std() <= _EPS:
        return sharpe_ratio(returns, risk_free_rate, periods_per_year)
    return float(excess.mean() / losing.std() * np.sqrt(periods_per_year))


def max_drawdown(equity: Sequence[float]) -> float:
    """Deepest peak-to-trough fall of an equity curve in percent, as a negative number (-15.0)."""
    curve = np.asarray(equity, dtype=float)
    if curve.size == 0:
        return 0.0
    running_peak = np.maximum.accumulate(curve)
    safe_peak = np.where(running_peak == 0, 1.0, running_peak)
    return float(((curve - running_peak) / safe_peak).min() * 100.0)


def win_rate(pnls: Sequence[float]) -> float:
    """Share of trades that made money (0..1)."""
    if not pnls:
        return 0.0
    winners = [p for p in pnls if p > 0]
    return len(winners) / len(pnls)


def profit_factor(pnls: Sequence[float]) -> float:
    """Gross profit over gross loss; inf with wins and no losses, 0 with neither."""
    gained = sum(p for p in pnls if p > 0)
    lost = -sum(p for p in pnls if p < 0)
    if lost > 0:
        return gained / lost
    return float("inf") if gained > 0 else 0.0


def expectancy(pnls: Sequence[float]) -> float:
    """Mean P&L per closed trade."""
    return sum(pnls) / len(pnls) if pnls else 0.0


def equity_from_pnls(pnls: Sequence[float], initial_capital: float) -> List[float]:
    equity = [initial_capital]
    for p in pnls:
        equity.append(equity[-1] + p)
    return equity


def period_returns(equity: Sequence[float]) -> List[float]:
    """Relative change between consecutive equity points."""
    curve = np.asarray(equity, dtype=float)
    if curve.size < 2:
        return []
    previous = np.where(curve[:-1] == 0, 1.0, curve[:-1])
    return (np.diff(curve) / previous).tolist()


def compute_metrics(
    pnls: Sequence[float],
    initial_capital: float = 10000.0,
    equity: Optional[Sequence[float]] = None,
    risk_free_rate: float = 0.0,
    periods_per_year: float = 252.0,
) -> PerformanceMetrics:
    """
    Full metrics from trade P&Ls. `equity` defaults to initial_capital plus the running P&L;
    a backtest passes its own curve so partial exits count as separate periods.
    """
    pnls = list(pnls)
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    curve = list(equity) if equity is not None else equity_from_pnls(pnls, initial_capital)
    rets = period_returns(curve)
    total_pnl = float(sum(pnls))
    total_return_pct = total_pnl / initial_capital * 100.0 if initial_capital else 0.0
    dd = max_drawdown(curve)
    return PerformanceMetrics(
        total_pnl=total_pnl,
        total_return_pct=total_return_pct,
        sharpe_ratio=sharpe_ratio(rets, risk_free_rate, periods_per_year),
        sortino_ratio=sortino_ratio(rets, risk_free_rate, periods_per_year),
        max_drawdown_pct=dd,
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        expectancy=expectancy(pnls),
        total_trades=len(pnls),
        winning_trades=len(wins),
        losing_trades=len(losses),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
        largest_win=max(wins) if wins else 0.0,
        largest_loss=min(losses) if losses else 0.0,
        calmar_ratio=total_return_pct / abs(dd) if dd < 0 else 0.0,
    )
