"""
Day trading / scalping: quick entries on short-term momentum with tight stops,
small targets and a hard holding-time limit.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

import pandas as pd

from adaptive_trader.core.types import Position, RiskProfile, Signal, SignalAction, StrategyId, Trade
from adaptive_trader.indicators.library import analyze_volume, ema, last_value, macd, round_half_up, rsi
from adaptive_trader.strategies.base import BaseStrategy, Suitability


@dataclass(frozen=True)
class DailyLimitStatus:
    can_trade: bool
    trade_count: int
    trades_remaining: int
    total_pnl: float
    total_pnl_pct: float
    reason: str = ""


class DayTradingStrategy(BaseStrategy):
    strategy_id = StrategyId.DAY_TRADING
    name = "Day Trading"
    description = "Quick scalps with tight stops and small profits"
    min_candles = 50
    volatility_band = (0.5, 5.0)
    default_risk_profile = RiskProfile(
        stop_loss_pct=0.5,
        take_profit_pct=1.0,
        use_trailing_stop=True,
        trailing_stop_pct=0.3,
        use_take_profit_ladder=False,
        max_hold=timedelta(minutes=30),
        min_hold=timedelta(minutes=5),
    )

    def __init__(
        self,
        risk_profile: Optional[RiskProfile] = None,
        min_momentum: float = 0.3,
        min_volume_ratio: float = 1.5,
        break_even_band_pct: float = 0.1,
        max_trades_per_day: int = 20,
        max_daily_loss_pct: float = -2.0,
    ):
        super().__init__(risk_profile)
        self.min_momentum = min_momentum
        self.min_volume_ratio = min_volume_ratio
        self.break_even_band_pct = break_even_band_pct
        self.max_trades_per_day = max_trades_per_day
        self.max_daily_loss_pct = max_daily_loss_pct

    def evaluate(self, window: pd.DataFrame, now: Optional[datetime] = None) -> Signal:
        if not self.has_enough_data(window):
            return self.insufficient(window)
        closes = window["close"].astype(float).tolist()
        price = closes[-1]
        recent = closes[-5:]
        quick_mom = (recent[-1] - recent[0]) / recent[0] * 100 if recent[0] else 0.0
        current_rsi = last_value(rsi(closes, 7))
        result = macd(closes, 8, 17, 9)
        hist = last_value(result.histogram)
        prev_hist = last_value(result.histogram, 2)
        ema9 = ema(closes, 9)
        ema21 = ema(closes, 21)
        e9, e21 = last_value(ema9), last_value(ema21)
        e9_prev, e21_prev = last_value(ema9, 2), last_value(ema21, 2)
        vol = analyze_volume(window["volume"].astype(float).tolist(), 20)
        if None in (current_rsi, hist, prev_hist, e9, e21, e9_prev, e21_prev):
            return self.insufficient(window)

        spike = vol.ratio > self.min_volume_ratio
        vol_strength = min((vol.ratio - 1.0) / 1.0, 1.0)
        volume_txt = f"{vol.ratio * 100:.0f}% volume"
        metadata = {
            "quick_momentum_pct": quick_mom,
            "rsi": current_rsi,
            "macd_histogram": hist,
            "ema9": e9,
            "ema21": e21,
            "volume_ratio": vol.ratio,
        }
        action = SignalAction.HOLD
        confidence = 0
        entry_type = None
        reason = (f"No scalp setup: {quick_mom:.2f}% quick move, RSI {current_rsi:.1f}, {volume_txt}")

        if quick_mom > self.min_momentum and current_rsi < 50 and hist > 0 and price > e9 and spike:
            action, entry_type = SignalAction.BUY, "momentum-breakout"
            confidence = round_half_up((
                min(quick_mom / 1.0, 1.0) * 0.35
                + (50 - current_rsi) / 50 * 0.25
                + vol_strength * 0.25
                + (1.0 if hist > prev_hist else 0.5) * 0.15
            ) * 100)
            reason = f"Momentum breakout: {quick_mom:.2f}% quick move, RSI {current_rsi:.1f}, {volume_txt}"
        elif current_rsi < 30 and hist > prev_hist and quick_mom > 0 and spike:
            action, entry_type = SignalAction.BUY, "rsi-bounce"
            confidence = round_half_up((
                (30 - current_rsi) / 30 * 0.5
                + abs(hist) / 50 * 0.3
                + vol_strength * 0.2
            ) * 100)
            reason = f"RSI bounce: {current_rsi:.1f} oversold, MACD turning bullish, {volume_txt}"
        elif e9 > e21 and e9_prev <= e21_prev and spike and current_rsi > 40:
            action, entry_type = SignalAction.BUY, "ema-cross"
            confidence = 75
            reason = f"EMA(9) crossed above EMA(21), {volume_txt}"
        elif quick_mom < -self.min_momentum and current_rsi > 50 and hist < 0 and price < e9 and spike:
            action, entry_type = SignalAction.SELL, "momentum-reversal"
            confidence = round_half_up((
                min(abs(quick_mom) / 1.0, 1.0) * 0.35
                + (current_rsi - 50) / 50 * 0.25
                + vol_strength * 0.25
                + 0.15
            ) * 100)
            reason = f"Momentum reversal: {quick_mom:.2f}% drop, RSI {current_rsi:.1f}, {volume_txt}"
        elif current_rsi > 70 and hist < prev_hist and quick_mom < 0 and spike:
            action, entry_type = SignalAction.SELL, "rsi-rejection"
            confidence = round_half_up((
                (current_rsi - 70) / 30 * 0.5
                + vol_strength * 0.3
                + 0.2
            ) * 100)
            reason = f"RSI rejection: {current_rsi:.1f} overbought, MACD turning bearish"

        metadata["entry_type"] = entry_type
        return Signal(action, max(0, min(confidence, 100)), reason, strategy=self.strategy_id.value,
                      price=price, metadata=metadata)

    def check_exit(self, position: Position, window: pd.DataFrame, now: Optional[datetime] = None) -> Optional[str]:
        """Close flat scalps once the minimum holding time has passed."""
        if now is None or position.min_hold is None or window is None or len(window) == 0:
            return None
        price = float(window["close"].iloc[-1])
        held = now - position.entry_time
        move_pct = abs((price - position.entry_price) / position.entry_price) * 100
        if held > position.min_hold and move_pct < self.break_even_band_pct:
            return "break-even-timeout"
        return None

    def check_daily_limits(self, todays_trades: Iterable[Trade]) -> DailyLimitStatus:
        trades = list(todays_trades)
        count = len(trades)
        total_pnl = sum(t.pnl for t in trades)
        total_pct = sum(t.pnl_pct for t in trades)
        max_trades = count >= self.max_trades_per_day
        max_loss = total_pct <= self.max_daily_loss_pct
        reason = ""
        if max_trades:
            reason = f"Max trades reached ({count}/{self.max_trades_per_day})"
        elif max_loss:
            reason = f"Max daily loss reached ({total_pct:.2f}%)"
        return DailyLimitStatus(
            can_trade=not (max_trades or max_loss),
            trade_count=count,
            trades_remaining=max(0, self.max_trades_per_day - count),
            total_pnl=total_pnl,
            total_pnl_pct=total_pct,
            reason=reason,
        )

    def entry_block_reason(self, todays_trades: Iterable[Trade]) -> Optional[str]:
        status = self.check_daily_limits(todays_trades)
        return None if status.can_trade else status.reason

    def suitability(self, window: pd.DataFrame) -> Suitability:
        if not self.has_enough_data(window):
            return Suitability(False, 0, "Insufficient data")
        recent = window["close"].astype(float).tolist()[-20:]
        returns = [(recent[i] - recent[i - 1]) / recent[i - 1] for i in range(1, len(recent)) if recent[i - 1]]
        rms = (sum(r * r for r in returns) / len(returns)) ** 0.5 * 100 if returns else 0.0
        vol = analyze_volume(window["volume"].astype(float).tolist(), 20)
        low, high = self.volatility_band
        volatility_score = 1.0 if low <= rms <= high else 0.5
        volume_score = 1.0 if vol.ratio > 1.0 else 0.5
        score = (volatility_score * 0.6 + volume_score * 0.4) * 100
        suitable = score >= self.suitability_cutoff
        label = "Good day trading conditions" if suitable else "Poor conditions"
        return Suitability(
            suitable=suitable,
            score=round_half_up(score),
            reason=f"{label}: {rms:.2f}% volatility, {vol.ratio * 100:.0f}% volume",
            metrics={"volatility_pct": rms, "volume_ratio": vol.ratio},
        )
