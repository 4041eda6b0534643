"""
Account risk controller: circuit breaker on consecutive losses, portfolio exposure caps,
drawdown monitoring, historical VaR and Kelly sizing.

Entry checks run in a fixed order (breaker, min notional, total exposure, per-symbol
exposure) and reject before any state changes. All RiskState mutation goes through a lock
so the decision and monitor loops can share one controller.
"""

from __future__ import annotations
import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

import numpy as np

from adaptive_trader.core.types import Position, Trade

logger = logging.getLogger("adaptive_trader.risk")


@dataclass
class RiskResult:
    """Result of risk check: allowed or rejected + reason. amount = approved quote amount."""
    allowed: bool
    amount: float = 0.0
    reason: str = ""


@dataclass(frozen=True)
class BreakerStatus:
    halted: bool
    consecutive_losses: int
    reason: str = ""
    remaining_cooldown_minutes: int = 0
    trip_time: Optional[datetime] = None


def _utcnow(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


class CircuitBreaker:
    """
    Halts new entries after `max_consecutive_losses` losing trades in a row.
    Resets itself once `cooldown` has passed since the trip, or manually via reset().
    A winning trade clears the loss counter; a flat trade leaves it alone.
    Not thread-safe on its own; AccountRiskController guards it.
    """

    def __init__(self, max_consecutive_losses: int = 3, cooldown: timedelta = timedelta(minutes=60)):
        self.max_consecutive_losses = max_consecutive_losses
        self.cooldown = cooldown
        self.consecutive_losses = 0
        self.tripped = False
        self.trip_time: Optional[datetime] = None

    def check(self, now: Optional[datetime] = None) -> BreakerStatus:
        now = _utcnow(now)
        if not self.tripped:
            return BreakerStatus(halted=False, consecutive_losses=self.consecutive_losses)
        elapsed = now - self.trip_time
        if elapsed >= self.cooldown:
            self.reset()
            logger.info("Circuit breaker reset after cooldown")
            return BreakerStatus(halted=False, consecutive_losses=0,
                                 reason="Circuit breaker reset after cooldown")
        remaining = self.cooldown - elapsed
        return BreakerStatus(
            halted=True,
            consecutive_losses=self.consecutive_losses,
            reason=f"Circuit breaker tripped: {self.consecutive_losses} consecutive losses",
            remaining_cooldown_minutes=int(math.ceil(remaining.total_seconds() / 60)),
            trip_time=self.trip_time,
        )

    def record(self, pnl: float, now: Optional[datetime] = None) -> bool:
        """Register a closed trade. Returns True if this trade tripped the breaker."""
        if pnl < 0:
            self.consecutive_losses += 1
            if not self.tripped and self.consecutive_losses >= self.max_consecutive_losses:
                self.tripped = True
                self.trip_time = _utcnow(now)
                logger.warning("Circuit breaker tripped after %d consecutive losses (cooldown %s)",
                               self.consecutive_losses, self.cooldown)
                return True
        elif pnl > 0:
            self.consecutive_losses = 0
        return False

    def reset(self) -> None:
        self.tripped = False
        self.trip_time = None
        self.consecutive_losses = 0


@dataclass(frozen=True)
class SymbolExposure:
    exposure: float
    exposure_pct: float
    positions: int


@dataclass(frozen=True)
class ExposureReport:
    """Open notional vs portfolio value. Percentages are fractions (0.25 = 25%)."""
    total: float
    total_pct: float
    by_symbol: Dict[str, SymbolExposure]
    total_exceeded: bool
    symbol_exceeded: bool

    @property
    def within_limits(self) -> bool:
        return not self.total_exceeded and not self.symbol_exceeded


@dataclass(frozen=True)
class ValueAtRisk:
    confidence: float
    daily_pct: float = 0.0
    weekly_pct: float = 0.0
    monthly_pct: float = 0.0
    daily_usd: float = 0.0
    weekly_usd: float = 0.0
    monthly_usd: float = 0.0
    sample_size: int = 0
    message: str = ""


@dataclass(frozen=True)
class KellySize:
    kelly_pct: float
    position_size: float
    win_loss_ratio: float = 0.0
    kelly_fraction: float = 0.25
    recommendation: str = ""


@dataclass(frozen=True)
class DrawdownReport:
    drawdown: float
    drawdown_pct: float
    peak: float
    current: float
    alert: bool

    @property
    def at_peak(self) -> bool:
        return self.drawdown == 0


@dataclass(frozen=True)
class PositionSize:
    position_size: float
    quantity: float
    risk_usd: float
    risk_pct: float
    capped: bool = False
    reason: str = ""


@dataclass(frozen=True)
class RiskAlert:
    severity: str  # "critical" | "warning"
    message: str
    action: str


@dataclass(frozen=True)
class RiskSummary:
    breaker: BreakerStatus
    var_95: ValueAtRisk
    var_99: ValueAtRisk
    exposure: ExposureReport
    drawdown: DrawdownReport
    kelly: KellySize
    alerts: List[RiskAlert] = field(default_factory=list)

    @property
    def level(self) -> str:
        if any(a.severity == "critical" for a in self.alerts):
            return "HIGH"
        if any(a.severity == "warning" for a in self.alerts):
            return "MEDIUM"
        return "LOW"


def _pct_label(fraction: float) -> str:
    return f"{fraction * 100:g}%"


def risk_based_position_size(
    portfolio_value: float,
    entry_price: float,
    stop_price: float,
    risk_pct: float = 2.0,
    max_position_pct: float = 25.0,
) -> PositionSize:
    """
    Size so that hitting the stop loses `risk_pct` of the portfolio.
    Capped at `max_position_pct` of the portfolio.
    """
    risk_per_unit = abs(entry_price - stop_price)
    if risk_per_unit <= 0 or entry_price <= 0:
        return PositionSize(0.0, 0.0, 0.0, 0.0, reason="zero stop distance")
    max_risk = portfolio_value * risk_pct / 100
    qty = max_risk / risk_per_unit
    notional = qty * entry_price
    cap = portfolio_value * max_position_pct / 100
    if notional > cap:
        qty = cap / entry_price
        risk_usd = qty * risk_per_unit
        return PositionSize(
            position_size=cap,
            quantity=qty,
            risk_usd=risk_usd,
            risk_pct=risk_usd / portfolio_value * 100,
            capped=True,
            reason=f"Position capped at {max_position_pct:g}% of portfolio",
        )
    return PositionSize(position_size=notional, quantity=qty, risk_usd=max_risk, risk_pct=risk_pct)


def kelly_position_size(
    win_rate: float,
    avg_win: float,
    avg_loss: float,
    portfolio_value: float,
    kelly_fraction: float = 0.25,
) -> KellySize:
    """
    Fractional Kelly: f = (p*b - q) / b scaled by `kelly_fraction`, clamped to [0, 0.5].
    win_rate is a percentage (60 = 60%); avg_loss may be given signed.
    """
    if win_rate == 0 or avg_win == 0 or avg_loss == 0:
        return KellySize(0.0, 0.0, kelly_fraction=kelly_fraction,
                         recommendation="Insufficient data for Kelly calculation")
    p = win_rate / 100
    q = 1 - p
    b = avg_win / abs(avg_loss)
    fraction = (p * b - q) / b * kelly_fraction
    fraction = max(0.0, min(fraction, 0.5))
    size = portfolio_value * fraction
    if size > 0:
        recommendation = f"Optimal position size: ${size:.2f} ({fraction * 100:.1f}% of portfolio)"
    else:
        recommendation = "Current strategy not profitable - avoid trading"
    return KellySize(
        kelly_pct=fraction * 100,
        position_size=size,
        win_loss_ratio=b,
        kelly_fraction=kelly_fraction,
        recommendation=recommendation,
    )


def compute_exposure(
    open_positions: Iterable[Position],
    portfolio_value: float,
    max_exposure_per_symbol: float = 0.25,
    max_total_exposure: float = 0.75,
) -> ExposureReport:
    amounts: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    for p in open_positions:
        if not p.is_open:
            continue
        amounts[p.symbol] = amounts.get(p.symbol, 0.0) + p.notional
        counts[p.symbol] = counts.get(p.symbol, 0) + 1
    total = sum(amounts.values())
    total_pct = total / portfolio_value if portfolio_value > 0 else 0.0
    by_symbol = {
        sym: SymbolExposure(amt, amt / portfolio_value if portfolio_value > 0 else 0.0, counts[sym])
        for sym, amt in amounts.items()
    }
    return ExposureReport(
        total=total,
        total_pct=total_pct,
        by_symbol=by_symbol,
        total_exceeded=total_pct > max_total_exposure,
        symbol_exceeded=any(e.exposure_pct > max_exposure_per_symbol for e in by_symbol.values()),
    )


class AccountRiskController:
    """
    Enforces: circuit breaker, minimum notional, total and per-symbol exposure.
    Tracks realized P&L for drawdown, VaR and Kelly statistics.
    """

    def __init__(
        self,
        max_consecutive_losses: int = 3,
        cooldown_minutes: float = 60.0,
        max_exposure_per_symbol: float = 0.25,
        max_total_exposure: float = 0.75,
        max_drawdown_pct: float = 20.0,
        min_notional: float = 10.0,
        kelly_fraction: float = 0.25,
        initial_equity: float = 10000.0,
    ):
        self.max_exposure_per_symbol = max_exposure_per_symbol
        self.max_total_exposure = max_total_exposure
        self.max_drawdown_pct = max_drawdown_pct
        self.min_notional = min_notional
        self.kelly_fraction = kelly_fraction
        self.breaker = CircuitBreaker(max_consecutive_losses, timedelta(minutes=cooldown_minutes))
        self._lock = threading.Lock()
        self._trades: List[Trade] = []
        self._initial_equity = initial_equity
        self._equity = initial_equity
        self._peak_equity = initial_equity

    @classmethod
    def from_config(cls, config) -> "AccountRiskController":
        return cls(
            max_consecutive_losses=config.max_consecutive_losses,
            cooldown_minutes=config.cooldown_minutes,
            max_exposure_per_symbol=config.max_exposure_per_symbol,
            max_total_exposure=config.max_total_exposure,
            max_drawdown_pct=config.max_drawdown_pct,
            min_notional=config.min_notional,
            kelly_fraction=config.kelly_fraction,
            initial_equity=config.portfolio_value,
        )

    @property
    def equity(self) -> float:
        return self._equity

    @property
    def trades(self) -> List[Trade]:
        with self._lock:
            return list(self._trades)

    def check_circuit_breaker(self, now: Optional[datetime] = None) -> BreakerStatus:
        with self._lock:
            return self.breaker.check(now)

    def reset_circuit_breaker(self) -> None:
        with self._lock:
            self.breaker.reset()
        logger.info("Circuit breaker manually reset")

    def validate_entry(
        self,
        symbol: str,
        amount: float,
        open_positions: Iterable[Position],
        portfolio_value: float,
        now: Optional[datetime] = None,
    ) -> RiskResult:
        """Approve or reject a new entry of `amount` quote currency. Never mutates positions."""
        with self._lock:
            status = self.breaker.check(now)
        if status.halted:
            return RiskResult(
                allowed=False,
                reason=f"{status.reason} (resumes in {status.remaining_cooldown_minutes} min)",
            )
        if amount < self.min_notional:
            return RiskResult(allowed=False,
                              reason=f"Order amount {amount:.2f} below minimum notional {self.min_notional:.2f}")
        if portfolio_value <= 0:
            return RiskResult(allowed=False, reason="Portfolio value must be positive")

        exposure = compute_exposure(open_positions, portfolio_value,
                                    self.max_exposure_per_symbol, self.max_total_exposure)
        new_total_pct = (exposure.total + amount) / portfolio_value
        if new_total_pct > self.max_total_exposure:
            return RiskResult(
                allowed=False,
                reason=(f"Would exceed max total exposure ({new_total_pct * 100:.1f}% > "
                        f"{_pct_label(self.max_total_exposure)})"),
            )
        current = exposure.by_symbol.get(symbol)
        new_symbol_pct = ((current.exposure if current else 0.0) + amount) / portfolio_value
        if new_symbol_pct > self.max_exposure_per_symbol:
            return RiskResult(
                allowed=False,
                reason=(f"Would exceed max exposure for {symbol} ({new_symbol_pct * 100:.1f}% > "
                        f"{_pct_label(self.max_exposure_per_symbol)})"),
            )
        return RiskResult(allowed=True, amount=amount)

    def record_trade(self, trade: Trade, now: Optional[datetime] = None) -> bool:
        """Register a realized trade. Returns True if it tripped the circuit breaker."""
        with self._lock:
            self._trades.append(trade)
            self._equity += trade.pnl
            if self._equity > self._peak_equity:
                self._peak_equity = self._equity
            tripped = self.breaker.record(trade.pnl, now or trade.exit_time)
            dd = self._drawdown_locked()
        if dd.alert:
            logger.warning("Drawdown %.1f%% exceeds limit %.0f%%", dd.drawdown_pct, self.max_drawdown_pct)
        return tripped

    def _drawdown_locked(self) -> DrawdownReport:
        dd = self._peak_equity - self._equity
        dd_pct = dd / self._peak_equity * 100 if self._peak_equity > 0 else 0.0
        return DrawdownReport(
            drawdown=dd,
            drawdown_pct=dd_pct,
            peak=self._peak_equity,
            current=self._equity,
            alert=dd_pct > self.max_drawdown_pct,
        )

    def drawdown(self) -> DrawdownReport:
        """Peak-to-current realized equity drop. Above max_drawdown_pct it is an alert, not a block."""
        with self._lock:
            return self._drawdown_locked()

    def value_at_risk(self, confidence: float = 0.95, portfolio_value: Optional[float] = None) -> ValueAtRisk:
        """Historical VaR from closed trade P&L as percent of portfolio. Needs at least 10 trades."""
        pv = portfolio_value or self._initial_equity
        with self._lock:
            pnls = [t.pnl for t in self._trades]
        if len(pnls) < 10:
            return ValueAtRisk(
                confidence=confidence,
                sample_size=len(pnls),
                message="Insufficient trade history for VaR calculation (need at least 10 trades)",
            )
        returns = np.sort(np.asarray(pnls, dtype=float) / pv * 100)
        # empirical percentile at floor((1 - c) * n), not an interpolated quantile
        idx = min(int(np.floor((1 - confidence) * returns.size)), returns.size - 1)
        daily = float(np.abs(returns[idx]))
        weekly = daily * float(np.sqrt(7))
        monthly = daily * float(np.sqrt(30))
        return ValueAtRisk(
            confidence=confidence,
            daily_pct=daily,
            weekly_pct=weekly,
            monthly_pct=monthly,
            daily_usd=daily * pv / 100,
            weekly_usd=weekly * pv / 100,
            monthly_usd=monthly * pv / 100,
            sample_size=int(returns.size),
            message=(f"There is a {confidence * 100:g}% chance that daily losses "
                     f"will not exceed {daily:.2f}%"),
        )

    def kelly_position_size(self, portfolio_value: Optional[float] = None) -> KellySize:
        """Kelly size from this controller's own trade history."""
        with self._lock:
            pnls = [t.pnl for t in self._trades]
        wins = [p for p in pnls if p > 0]
        losses = [p for p in pnls if p < 0]
        win_rate = len(wins) / len(pnls) * 100 if pnls else 0.0
        avg_win = sum(wins) / len(wins) if wins else 0.0
        avg_loss = sum(losses) / len(losses) if losses else 0.0
        return kelly_position_size(win_rate, avg_win, avg_loss,
                                   portfolio_value or self._equity, self.kelly_fraction)

    def exposure(self, open_positions: Iterable[Position], portfolio_value: float) -> ExposureReport:
        return compute_exposure(open_positions, portfolio_value,
                                self.max_exposure_per_symbol, self.max_total_exposure)

    def risk_summary(
        self,
        open_positions: Iterable[Position],
        portfolio_value: float,
        now: Optional[datetime] = None,
    ) -> RiskSummary:
        breaker = self.check_circuit_breaker(now)
        exposure = self.exposure(open_positions, portfolio_value)
        drawdown = self.drawdown()
        alerts: List[RiskAlert] = []
        if breaker.halted:
            alerts.append(RiskAlert("critical", breaker.reason, "Trading halted until cooldown expires"))
        if drawdown.alert:
            alerts.append(RiskAlert(
                "critical",
                f"Drawdown {drawdown.drawdown_pct:.1f}% exceeds limit {self.max_drawdown_pct:.0f}%",
                "Consider halting trading",
            ))
        if exposure.total_exceeded:
            alerts.append(RiskAlert(
                "warning",
                f"Total exposure {exposure.total_pct * 100:.1f}% exceeds limit {self.max_total_exposure * 100:.0f}%",
                "Reduce open positions",
            ))
        if breaker.consecutive_losses >= 2 and not breaker.halted:
            alerts.append(RiskAlert(
                "warning",
                f"{breaker.consecutive_losses} consecutive losses",
                "Review strategy before continuing",
            ))
        return RiskSummary(
            breaker=breaker,
            var_95=self.value_at_risk(0.95, portfolio_value),
            var_99=self.value_at_risk(0.99, portfolio_value),
            exposure=exposure,
            drawdown=drawdown,
            kelly=self.kelly_position_size(portfolio_value),
            alerts=alerts,
        )
