from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

from .config import RiskConfig
from .indicators import atr_simple, pct_distance
from .models import (
    LONG,
    NEUTRAL,
    Candle,
    Check,
    RiskAssessment,
    ScoreBreakdown,
    StructuralBreak,
    TacticalVerdict,
    ExecutionVerdict,
    TrendDetail,
)

RATING_THRESHOLDS: Tuple[Tuple[str, float], ...] = (("S", 85.0), ("A", 70.0), ("B", 55.0))
RATING_ORDER = ("S", "A", "B", "C")


def rating_for(score: float) -> str:
    for rating, floor in RATING_THRESHOLDS:
        if score >= floor:
            return rating
    return "C"


def rating_at_least(rating: str, minimum: str) -> bool:
    return RATING_ORDER.index(rating) <= RATING_ORDER.index(minimum)


def score_signal(
    *,
    aligned: bool,
    sweep_confirmed: bool,
    hilo_valid: bool,
    strong_close: bool,
    trend_confidence: Optional[str],
    volume_24h: Optional[float],
    choch: Optional[StructuralBreak],
    entry_price: float,
    current_price: float,
    choch_strong_pct: float = 0.3,
    cfg: Optional[RiskConfig] = None,
) -> ScoreBreakdown:
    cfg = cfg or RiskConfig()
    score = float(cfg.base_score)
    adj: List[Tuple[str, float]] = []

    if aligned:
        adj.append(("Alignment gate passed", 10.0))
    if sweep_confirmed:
        adj.append(("Liquidity sweep confirmed", 10.0))
    if hilo_valid:
        adj.append(("Hi-Lo-Two count valid", 10.0))
    if strong_close:
        adj.append(("Strong close after BOS", 5.0))
    if trend_confidence == "high":
        adj.append(("High trend confidence", 5.0))

    if volume_24h is not None and volume_24h < cfg.low_volume_24h:
        adj.append(("Low 24h volume", -10.0))
    if choch is not None and (choch.strength or 0.0) * 100.0 < choch_strong_pct:
        adj.append(("Weak ChoCH", -5.0))

    distance = pct_distance(entry_price, current_price) or 0.0
    if distance > cfg.far_entry_threshold_pct:
        adj.append(("Entry far from price", -min(cfg.far_entry_max_penalty, distance)))

    for _, delta in adj:
        score += delta
    score = min(100.0, max(0.0, score))
    return ScoreBreakdown(base=float(cfg.base_score), score=score, rating=rating_for(score), adjustments=tuple(adj))


def format_breakdown(bd: ScoreBreakdown) -> str:
    lines = [f"Base ({bd.base:g})"]
    for name, delta in bd.adjustments:
        lines.append(f"{name} ({delta:+g})")
    lines.append(f"Total {bd.score:g} -> {bd.rating}")
    return "\n".join(lines)


def risk_check(
    entry: float,
    stop: float,
    take_profits: Sequence[float],
    direction: str,
    cfg: Optional[RiskConfig] = None,
) -> RiskAssessment:
    cfg = cfg or RiskConfig()
    risk = abs(entry - stop)
    reward = abs(take_profits[0] - entry) if take_profits else 0.0
    rrr = reward / risk if risk > 0 else 0.0
    stop_frac = risk / entry if entry > 0 else 0.0
    stop_pct = stop_frac * 100.0
    protective = stop < entry if direction == LONG else stop > entry

    checks = (
        Check(
            name="sl_side",
            passed=protective,
            detail=f"SL {stop:g} vs entry {entry:g} for {direction}",
        ),
        Check(
            name="rrr_minimum",
            passed=rrr >= cfg.min_rrr,
            detail=f"RRR: {rrr:.2f} (min: {cfg.min_rrr})",
            metrics={"value": rrr, "threshold": cfg.min_rrr},
        ),
        Check(
            name="sl_distance",
            passed=cfg.min_stop_pct < stop_pct < cfg.max_stop_pct,
            detail=f"SL distance: {stop_pct:.2f}%",
            metrics={"value": stop_pct, "min": cfg.min_stop_pct, "max": cfg.max_stop_pct},
        ),
    )

    risk_amount = cfg.account_balance * cfg.max_risk_per_trade
    if stop_frac > 0:
        position_size = risk_amount / (entry * stop_frac)
        leverage = min(int(cfg.default_leverage), int(math.floor(1.0 / stop_frac)))
    else:
        position_size = 0.0
        leverage = 0

    return RiskAssessment(
        execution_status="PASS" if all(c.passed for c in checks) else "BLOCK",
        checks=checks,
        risk_reward=rrr,
        stop_distance_pct=stop_pct,
        position_size=position_size,
        leverage=leverage,
        risk_amount=risk_amount,
    )


def environment_filter(
    candles: Sequence[Candle],
    direction: str,
    trend: Optional[TrendDetail],
    volume_24h: Optional[float],
    cfg: Optional[RiskConfig] = None,
) -> Tuple[bool, Tuple[Check, ...]]:
    """Volume, volatility and trend-agreement sanity checks on the strategic series."""
    cfg = cfg or RiskConfig()
    checks = []

    checks.append(Check(
        name="volume",
        passed=volume_24h is not None and volume_24h > cfg.env_min_volume_24h,
        detail=f"24h volume: {volume_24h}" if volume_24h is not None else "No ticker data",
        metrics={"volume_24h": volume_24h},
    ))

    atr = atr_simple(list(candles), 14)
    recent = candles[-14:]
    avg_price = sum(c.close for c in recent) / len(recent) if recent else 0.0
    volatility = (atr / avg_price * 100.0) if (atr is not None and avg_price > 0) else None
    checks.append(Check(
        name="volatility",
        passed=volatility is not None and cfg.env_min_volatility_pct < volatility < cfg.env_max_volatility_pct,
        detail=f"ATR: {atr:.4f}, Volatility: {volatility:.2f}%" if volatility is not None else "ATR unavailable",
        metrics={"atr": atr, "volatility_pct": volatility},
    ))

    trend_dir = trend.direction if trend is not None else NEUTRAL
    if direction == LONG:
        agrees = "BULLISH" in trend_dir
    else:
        agrees = "BEARISH" in trend_dir
    checks.append(Check(
        name="trend_alignment",
        passed=agrees or trend_dir == NEUTRAL,
        detail=f"Trend: {trend_dir}, Confidence: {trend.confidence if trend else 'low'}",
    ))

    return all(c.passed for c in checks), tuple(checks)


def build_targets(entry: float, stop: float, direction: str, multiples: Sequence[float]) -> Tuple[float, ...]:
    risk = abs(entry - stop)
    sign = 1.0 if direction == LONG else -1.0
    return tuple(entry + sign * risk * m for m in multiples)


def derive_levels(direction: str, tactical: TacticalVerdict, execution: ExecutionVerdict) -> Tuple[float, float, str]:
    """Entry and stop for ``direction``: the Hi-Lo-Two levels when valid, else structure."""
    hilo = execution.hilo
    if hilo is not None and hilo.valid and hilo.entry_price is not None and hilo.stop_loss is not None:
        return hilo.entry_price, hilo.stop_loss, "HILO_TWO"

    entry = float(execution.current_price)
    fvg = tactical.fvgs[-1] if tactical.fvgs else None
    if direction == LONG:
        candidates = []
        if fvg is not None:
            candidates.append(fvg.bottom)
        if tactical.swing_lows:
            candidates.append(tactical.swing_lows[-1].price)
        stop = min(candidates) if candidates else entry * 0.95
    else:
        candidates = []
        if fvg is not None:
            candidates.append(fvg.top)
        if tactical.swing_highs:
            candidates.append(tactical.swing_highs[-1].price)
        stop = max(candidates) if candidates else entry * 1.05
    return entry, stop, "STRUCTURE"
