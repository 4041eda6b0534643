"""
Monte Carlo over a backtest's trades: reshuffle the order of trade P&Ls to see how much of
the result (final equity, drawdown) depended on sequencing luck.
"""

from __future__ import annotations
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from adaptive_trader.analytics.metrics import equity_from_pnls, max_drawdown


@dataclass(frozen=True)
class MonteCarloSummary:
    simulations: int
    final_equity_mean: float
    final_equity_p5: float
    final_equity_p95: float
    max_drawdown_mean: float
    max_drawdown_worst: float
    probability_of_loss: float


def _shuffles(pnls: Sequence[float], n_simulations: int, seed: Optional[int]):
    rng = random.Random(seed)
    for _ in range(n_simulations):
        shuffled = list(pnls)
        rng.shuffle(shuffled)
        yield shuffled


def monte_carlo_trades(
    pnls: Sequence[float],
    initial_capital: float = 10000.0,
    n_simulations: int = 1000,
    seed: Optional[int] = None,
) -> List[float]:
    """Final equity of each shuffled trade sequence."""
    if not pnls:
        return []
    return [initial_capital + sum(s) for s in _shuffles(pnls, n_simulations, seed)]


def monte_carlo_drawdowns(
    pnls: Sequence[float],
    initial_capital: float = 10000.0,
    n_simulations: int = 1000,
    seed: Optional[int] = None,
) -> List[float]:
    """Max drawdown % of each shuffled trade sequence."""
    if not pnls:
        return []
    return [max_drawdown(equity_from_pnls(s, initial_capital)) for s in _shuffles(pnls, n_simulations, seed)]


def summarize(
    pnls: Sequence[float],
    initial_capital: float = 10000.0,
    n_simulations: int = 1000,
    seed: Optional[int] = None,
) -> Optional[MonteCarloSummary]:
    if not pnls:
        return None
    finals = np.asarray(monte_carlo_trades(pnls, initial_capital, n_simulations, seed))
    dds = np.asarray(monte_carlo_drawdowns(pnls, initial_capital, n_simulations, seed))
    return MonteCarloSummary(
        simulations=n_simulations,
        final_equity_mean=float(finals.mean()),
        final_equity_p5=float(np.percentile(finals, 5)),
        final_equity_p95=float(np.percentile(finals, 95)),
        max_drawdown_mean=float(dds.mean()),
        max_drawdown_worst=float(dds.min()),
        probability_of_loss=float((finals < initial_capital).mean()),
    )
