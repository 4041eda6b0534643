"""
Stop-loss / take-profit arithmetic. Levels are derived once from side and percentages;
the trailing stop only moves in the position's favour.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from adaptive_trader.core.config import ConfigurationError
from adaptive_trader.core.types import LadderRung, RiskProfile, Side

# (fraction of initial quantity, multiple of the take-profit percent)
DEFAULT_LADDER: Tuple[Tuple[float, float], ...] = ((0.25, 0.5), (0.25, 0.75), (0.25, 1.0), (0.25, 1.5))


def stop_loss_price(side: Side, entry_price: float, stop_loss_pct: float) -> float:
    if side == Side.LONG:
        return entry_price * (1 - stop_loss_pct / 100)
    return entry_price * (1 + stop_loss_pct / 100)


def take_profit_price(side: Side, entry_price: float, take_profit_pct: float) -> float:
    if side == Side.LONG:
        return entry_price * (1 + take_profit_pct / 100)
    return entry_price * (1 - take_profit_pct / 100)


def trailing_stop_update(
    side: Side,
    price: float,
    entry_price: float,
    current_stop: float,
    trailing_pct: float,
) -> Optional[float]:
    """
    New stop if trailing should tighten it, else None.
    Only active while in profit; the candidate is `trailing_pct` behind the price.
    """
    if side == Side.LONG:
        if price > entry_price:
            candidate = price * (1 - trailing_pct / 100)
            if candidate > current_stop:
                return candidate
    else:
        if price < entry_price:
            candidate = price * (1 + trailing_pct / 100)
            if candidate < current_stop:
                return candidate
    return None


def is_stop_loss_hit(side: Side, price: float, stop_price: float) -> bool:
    return price <= stop_price if side == Side.LONG else price >= stop_price


def is_take_profit_hit(side: Side, price: float, target_price: float) -> bool:
    return price >= target_price if side == Side.LONG else price <= target_price


def take_profit_ladder(side: Side, entry_price: float, take_profit_pct: float,
                       rungs: Tuple[Tuple[float, float], ...] = DEFAULT_LADDER) -> List[LadderRung]:
    """Partial exits: 25% of the initial quantity at 50/75/100/150% of the target distance."""
    return [
        LadderRung(fraction=fraction, target_pct=take_profit_pct * multiple,
                   price=take_profit_price(side, entry_price, take_profit_pct * multiple))
        for fraction, multiple in rungs
    ]


@dataclass(frozen=True)
class RiskValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def validate_risk_profile(profile: RiskProfile, min_reward_risk: float = 1.5) -> RiskValidation:
    """
    Errors: stop outside (0, 50], non-positive target, trailing wider than the stop.
    A reward/risk ratio below `min_reward_risk` is a warning (grid and scalping profiles use it on purpose).
    """
    errors: List[str] = []
    warnings: List[str] = []
    if not 0 < profile.stop_loss_pct <= 50:
        errors.append("Stop-loss percent must be between 0 and 50")
    if profile.take_profit_pct <= 0:
        errors.append("Take-profit percent must be positive")
    if profile.stop_loss_pct > 0 and profile.take_profit_pct > 0:
        ratio = profile.take_profit_pct / profile.stop_loss_pct
        if ratio < min_reward_risk:
            warnings.append(f"Risk/reward ratio {ratio:.2f} is below {min_reward_risk}:1")
    if profile.use_trailing_stop and (
        profile.trailing_stop_pct <= 0 or profile.trailing_stop_pct > profile.stop_loss_pct
    ):
        errors.append("Trailing stop percent must be positive and less than stop-loss percent")
    return RiskValidation(valid=not errors, errors=errors, warnings=warnings)


def require_valid_risk_profile(profile: RiskProfile) -> RiskProfile:
    result = validate_risk_profile(profile)
    if not result.valid:
        raise ConfigurationError("; ".join(result.errors))
    return profile
