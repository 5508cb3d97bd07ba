from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Tuple
import hashlib
import json
import os
import yaml


def _env_override(value: Any, env_key: str) -> Any:
    env_val = os.getenv(env_key)
    if env_val is None:
        return value
    # basic parsing
    if isinstance(value, bool):
        return env_val.strip().lower() in ("1", "true", "yes", "y", "on")
    if isinstance(value, int):
        try:
            return int(env_val)
        except ValueError:
            return value
    if isinstance(value, float):
        try:
            return float(env_val)
        except ValueError:
            return value
    return env_val


def _env_list(env_key: str) -> List[str]:
    raw = os.getenv(env_key) or ""
    return [x.strip() for x in raw.split(",") if x.strip()]


@dataclass
class StrategyConfig:
    # Structure detection
    strategic_swing_lookback: int = 5
    tactical_swing_lookback: int = 3
    execution_swing_lookback: int = 2
    fvg_min_size_pct: float = 0.1
    equal_level_tolerance_pct: float = 3.0
    pool_swing_lookback: int = 3

    # Trend (strategic tier)
    trend_ma_period: int = 20
    rsi_period: int = 14
    atr_period: int = 14
    strong_trend_pct: float = 2.0
    weak_trend_pct: float = 0.5

    # POI priority cutoffs
    fvg_high_priority_pct: float = 0.5
    ob_high_priority_strength: float = 0.02

    # Sweep
    sweep_wick_ratio: float = 2.0
    sweep_window: int = 5
    sweep_min_pct: float = 0.1
    sweep_required: bool = False

    # ChoCH strength below this percent counts as weak
    choch_strong_pct: float = 0.3

    # Data sufficiency
    min_candles: int = 20
    execution_min_candles: int = 10

    # Gate
    strict_mode: bool = True

    def signature(self) -> Dict[str, object]:
        return asdict(self)


@dataclass
class RiskConfig:
    account_balance: float = 10000.0
    max_risk_per_trade: float = 0.01
    default_leverage: int = 3
    min_rrr: float = 2.0
    min_stop_pct: float = 0.5
    max_stop_pct: float = 10.0
    take_profit_multiples: Tuple[float, ...] = (2.0, 3.0, 4.0)
    base_score: float = 70.0
    low_volume_24h: float = 400000.0
    env_min_volume_24h: float = 500000.0
    env_min_volatility_pct: float = 0.5
    env_max_volatility_pct: float = 10.0
    enforce_environment: bool = True
    far_entry_threshold_pct: float = 5.0
    far_entry_max_penalty: float = 15.0


@dataclass
class ProviderConfig:
    type: str = "gateio"
    base_url: str = "https://api.gateio.ws/api/v4"
    symbols: List[str] = None
    strategic_tf: str = "4h"
    tactical_tf: str = "15m"
    execution_tf: str = "1m"
    strategic_limit: int = 100
    tactical_limit: int = 200
    execution_limit: int = 200
    rest_timeout_s: int = 20
    fetch_concurrency: int = 5


@dataclass
class ScannerConfig:
    interval_s: int = 300
    signal_ttl_hours: float = 4.0
    min_signal_interval_hours: float = 4.0
    archive_max_age_hours: float = 24.0
    scan_workers: int = 4


@dataclass
class TelegramConfig:
    enabled: bool = True
    token: str = ""
    chat_ids: List[str] = None
    disable_web_page_preview: bool = True


@dataclass
class AlertsConfig:
    parse_mode: str = "HTML"
    detail_level: str = "public"  # public | internal
    min_rating: str = "B"
    footer: str = ""


@dataclass
class AppConfig:
    name: str = "SMC Sentinel"
    log_level: str = "INFO"


@dataclass
class Config:
    app: AppConfig = field(default_factory=AppConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)


def strategy_signature_hash(cfg: StrategyConfig) -> str:
    payload = json.dumps(cfg.signature(), sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    risk = dict(raw.get("risk", {}))
    if "take_profit_multiples" in risk:
        risk["take_profit_multiples"] = tuple(float(x) for x in risk["take_profit_multiples"])

    cfg = Config(
        app=AppConfig(**raw.get("app", {})),
        provider=ProviderConfig(**raw.get("provider", {})),
        strategy=StrategyConfig(**raw.get("strategy", {})),
        risk=RiskConfig(**risk),
        scanner=ScannerConfig(**raw.get("scanner", {})),
        telegram=TelegramConfig(**raw.get("telegram", {})),
        alerts=AlertsConfig(**raw.get("alerts", {})),
    )

    if not cfg.risk.take_profit_multiples:
        raise ValueError("risk.take_profit_multiples must not be empty")

    # env overrides (useful on servers)
    cfg.telegram.token = _env_override(cfg.telegram.token, "TELEGRAM_TOKEN")
    cfg.risk.account_balance = _env_override(cfg.risk.account_balance, "ACCOUNT_BALANCE")
    cfg.app.log_level = _env_override(cfg.app.log_level, "LOG_LEVEL")

    if cfg.telegram.chat_ids is None:
        cfg.telegram.chat_ids = []
    chat_env = _env_list("TELEGRAM_CHAT_IDS")
    if chat_env:
        cfg.telegram.chat_ids = chat_env

    if cfg.provider.symbols is None:
        cfg.provider.symbols = []
    sym_env = _env_list("SCAN_SYMBOLS")
    if sym_env:
        cfg.provider.symbols = sym_env
    cfg.provider.symbols = [s.upper() for s in cfg.provider.symbols]

    return cfg
