"""
Load configuration from config.yaml and .env. Environment variables override the file.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from adaptive_trader.core.types import StrategyId
from adaptive_trader.utils.timeframes import timeframe_minutes


class ConfigurationError(ValueError):
    """Invalid threshold, weight, date range or strategy id."""


SIZING_MODES = ("fixed", "risk", "kelly")


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns a validated Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    elif config_path is not None:
        raise ConfigurationError(f"Config file not found: {config_path}")

    def env(key: str, default: Any = "") -> str:
        value = os.getenv(key)
        if value is None:
            return default
        return value.strip()

    def env_bool(key: str, default: bool = False) -> bool:
        value = os.getenv(key)
        if value is None:
            return bool(default)
        return value.lower() in ("true", "1", "yes")

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    automation = data.get("automation", {})
    selector = data.get("selector", {})
    composer = data.get("composer", {})
    risk = data.get("risk", {})
    backtest = data.get("backtest", {})
    logging_cfg = data.get("logging", {})
    store = data.get("store", {})

    symbols = env("SYMBOLS", "")
    if symbols:
        symbol_list = [s.strip().upper() for s in symbols.split(",") if s.strip()]
    else:
        symbol_list = [str(s).upper() for s in automation.get("symbols", ["BTCUSD"])]

    force = env("FORCE_STRATEGY", selector.get("force_strategy") or "")

    config = Config(
        # Automation
        symbols=symbol_list,
        interval=env("INTERVAL", automation.get("interval", "1h")),
        candle_limit=env_int("CANDLE_LIMIT", automation.get("candle_limit", 200)),
        decision_interval_s=env_float("DECISION_INTERVAL_S", automation.get("decision_interval_s", 60.0)),
        monitor_interval_s=env_float("MONITOR_INTERVAL_S", automation.get("monitor_interval_s", 5.0)),
        request_timeout_s=env_float("REQUEST_TIMEOUT_S", automation.get("request_timeout_s", 10.0)),
        trade_quote_amount=env_float("TRADE_QUOTE_AMOUNT", automation.get("trade_quote_amount", 100.0)),
        sizing_mode=env("SIZING_MODE", automation.get("sizing_mode", "fixed")).lower(),
        portfolio_value=env_float("PORTFOLIO_VALUE", automation.get("portfolio_value", 10000.0)),
        # Strategy selection
        auto_switch=env_bool("AUTO_SWITCH", selector.get("auto_switch", True)),
        default_strategy=env("DEFAULT_STRATEGY", selector.get("default_strategy", StrategyId.MULTI_INDICATOR.value)),
        force_strategy=force or None,
        regime_check_interval_s=env_float(
            "REGIME_CHECK_INTERVAL_S", selector.get("regime_check_interval_s", 300.0)
        ),
        min_regime_confidence=env_float("MIN_REGIME_CONFIDENCE", selector.get("min_regime_confidence", 60.0)),
        min_signal_confidence=env_float("MIN_SIGNAL_CONFIDENCE", selector.get("min_signal_confidence", 55.0)),
        composer_weights=composer.get("weights"),
        strategy_overrides=data.get("strategies", {}) or {},
        # Risk
        max_consecutive_losses=env_int("MAX_CONSECUTIVE_LOSSES", risk.get("max_consecutive_losses", 3)),
        cooldown_minutes=env_float("COOLDOWN_MINUTES", risk.get("cooldown_minutes", 60.0)),
        max_exposure_per_symbol=env_float(
            "MAX_EXPOSURE_PER_SYMBOL", risk.get("max_exposure_per_symbol", 0.25)
        ),
        max_total_exposure=env_float("MAX_TOTAL_EXPOSURE", risk.get("max_total_exposure", 0.75)),
        max_drawdown_pct=env_float("MAX_DRAWDOWN_PCT", risk.get("max_drawdown_pct", 20.0)),
        min_notional=env_float("MIN_NOTIONAL", risk.get("min_notional", 10.0)),
        kelly_fraction=env_float("KELLY_FRACTION", risk.get("kelly_fraction", 0.25)),
        risk_per_trade_pct=env_float("RISK_PER_TRADE_PCT", risk.get("risk_per_trade_pct", 2.0)),
        use_take_profit_ladder=env_bool("USE_TAKE_PROFIT_LADDER", risk.get("use_take_profit_ladder", True)),
        # Logging
        log_level=env("LOG_LEVEL", logging_cfg.get("level", "INFO")),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "adaptive_trader.log"),
        # Backtest
        backtest_start=backtest.get("start_date"),
        backtest_end=backtest.get("end_date"),
        backtest_initial_capital=float(backtest.get("initial_capital", 10000.0)),
        backtest_position_size=float(backtest.get("position_size", 1000.0)),
        backtest_fee_rate=float(backtest.get("fee_rate", 0.0026)),
        backtest_slippage=float(backtest.get("slippage", 0.001)),
        backtest_strategy=str(backtest.get("strategy", "auto")),
        # Store
        positions_path=env("POSITIONS_PATH", store.get("positions_path") or "") or None,
    )
    config.validate()
    return config


class Config:
    """Unified configuration. Immutable after load."""

    __slots__ = (
        "symbols", "interval", "candle_limit", "decision_interval_s", "monitor_interval_s",
        "request_timeout_s", "trade_quote_amount", "sizing_mode", "portfolio_value",
        "auto_switch", "default_strategy", "force_strategy", "regime_check_interval_s",
        "min_regime_confidence", "min_signal_confidence", "composer_weights", "strategy_overrides",
        "max_consecutive_losses", "cooldown_minutes", "max_exposure_per_symbol", "max_total_exposure",
        "max_drawdown_pct", "min_notional", "kelly_fraction", "risk_per_trade_pct",
        "use_take_profit_ladder",
        "log_level", "log_dir", "log_file",
        "backtest_start", "backtest_end", "backtest_initial_capital", "backtest_position_size",
        "backtest_fee_rate", "backtest_slippage", "backtest_strategy",
        "positions_path",
    )

    def __init__(
        self,
        symbols: Optional[List[str]] = None,
        interval: str = "1h",
        candle_limit: int = 200,
        decision_interval_s: float = 60.0,
        monitor_interval_s: float = 5.0,
        request_timeout_s: float = 10.0,
        trade_quote_amount: float = 100.0,
        sizing_mode: str = "fixed",
        portfolio_value: float = 10000.0,
        auto_switch: bool = True,
        default_strategy: str = StrategyId.MULTI_INDICATOR.value,
        force_strategy: Optional[str] = None,
        regime_check_interval_s: float = 300.0,
        min_regime_confidence: float = 60.0,
        min_signal_confidence: float = 55.0,
        composer_weights: Optional[Dict[str, float]] = None,
        strategy_overrides: Optional[Dict[str, dict]] = None,
        max_consecutive_losses: int = 3,
        cooldown_minutes: float = 60.0,
        max_exposure_per_symbol: float = 0.25,
        max_total_exposure: float = 0.75,
        max_drawdown_pct: float = 20.0,
        min_notional: float = 10.0,
        kelly_fraction: float = 0.25,
        risk_per_trade_pct: float = 2.0,
        use_take_profit_ladder: bool = True,
        log_level: str = "INFO",
        log_dir: Path = None,
        log_file: str = "adaptive_trader.log",
        backtest_start: Optional[str] = None,
        backtest_end: Optional[str] = None,
        backtest_initial_capital: float = 10000.0,
        backtest_position_size: float = 1000.0,
        backtest_fee_rate: float = 0.0026,
        backtest_slippage: float = 0.001,
        backtest_strategy: str = "auto",
        positions_path: Optional[str] = None,
    ):
        self.symbols = list(symbols) if symbols else ["BTCUSD"]
        self.interval = interval
        self.candle_limit = candle_limit
        self.decision_interval_s = decision_interval_s
        self.monitor_interval_s = monitor_interval_s
        self.request_timeout_s = request_timeout_s
        self.trade_quote_amount = trade_quote_amount
        self.sizing_mode = sizing_mode
        self.portfolio_value = portfolio_value
        self.auto_switch = auto_switch
        self.default_strategy = default_strategy
        self.force_strategy = force_strategy
        self.regime_check_interval_s = regime_check_interval_s
        self.min_regime_confidence = min_regime_confidence
        self.min_signal_confidence = min_signal_confidence
        self.composer_weights = dict(composer_weights) if composer_weights else None
        self.strategy_overrides = dict(strategy_overrides or {})
        self.max_consecutive_losses = max_consecutive_losses
        self.cooldown_minutes = cooldown_minutes
        self.max_exposure_per_symbol = max_exposure_per_symbol
        self.max_total_exposure = max_total_exposure
        self.max_drawdown_pct = max_drawdown_pct
        self.min_notional = min_notional
        self.kelly_fraction = kelly_fraction
        self.risk_per_trade_pct = risk_per_trade_pct
        self.use_take_profit_ladder = use_take_profit_ladder
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file
        self.backtest_start = backtest_start
        self.backtest_end = backtest_end
        self.backtest_initial_capital = backtest_initial_capital
        self.backtest_position_size = backtest_position_size
        self.backtest_fee_rate = backtest_fee_rate
        self.backtest_slippage = backtest_slippage
        self.backtest_strategy = backtest_strategy
        self.positions_path = positions_path

    def validate(self) -> None:
        """Raise ConfigurationError on thresholds that cannot work."""
        known = {s.value for s in StrategyId}
        if self.default_strategy not in known:
            raise ConfigurationError(f"Unknown default strategy: {self.default_strategy}")
        if self.force_strategy is not None and self.force_strategy not in known:
            raise ConfigurationError(f"Unknown forced strategy: {self.force_strategy}")
        if self.backtest_strategy != "auto" and self.backtest_strategy not in known:
            raise ConfigurationError(f"Unknown backtest strategy: {self.backtest_strategy}")
        if self.sizing_mode not in SIZING_MODES:
            raise ConfigurationError(f"sizing_mode must be one of {SIZING_MODES}, got {self.sizing_mode}")
        if not self.symbols:
            raise ConfigurationError("At least one symbol is required")
        try:
            timeframe_minutes(self.interval)
        except ValueError as e:
            raise ConfigurationError(str(e)) from None
        if self.candle_limit < 100:
            raise ConfigurationError(f"candle_limit must be >= 100, got {self.candle_limit}")
        for name in ("decision_interval_s", "monitor_interval_s", "request_timeout_s", "regime_check_interval_s"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        for name in ("min_regime_confidence", "min_signal_confidence"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(f"{name} must be within 0-100, got {value}")
        for name in ("max_exposure_per_symbol", "max_total_exposure"):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise ConfigurationError(f"{name} must be a fraction in (0, 1], got {value}")
        if self.max_exposure_per_symbol > self.max_total_exposure:
            raise ConfigurationError("max_exposure_per_symbol cannot exceed max_total_exposure")
        if self.max_consecutive_losses < 1:
            raise ConfigurationError("max_consecutive_losses must be >= 1")
        if not 0 < self.kelly_fraction <= 1:
            raise ConfigurationError(f"kelly_fraction must be in (0, 1], got {self.kelly_fraction}")
        if self.trade_quote_amount <= 0 or self.portfolio_value <= 0:
            raise ConfigurationError("trade_quote_amount and portfolio_value must be positive")
        if self.composer_weights:
            for key, weight in self.composer_weights.items():
                if weight < 0:
                    raise ConfigurationError(f"Composer weight for {key} must be >= 0")
