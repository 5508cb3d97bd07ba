from __future__ import annotations

from typing import List, Optional, Sequence

from .breaks import confirm_strong_close, detect_bos, detect_choch, detect_internal_bos, prior_bos
from .config import StrategyConfig
from .hilo import NONE, count_hilo
from .indicators import atr_simple, rsi_simple, sma
from .models import (
    LONG,
    NEUTRAL,
    PRIORITY_HIGH,
    PRIORITY_MEDIUM,
    SHORT,
    Candle,
    ExecutionVerdict,
    FairValueGap,
    HiLoCount,
    PointOfInterest,
    StrategicVerdict,
    TacticalVerdict,
    TrendDetail,
    candles_consistent,
)
from .structure import detect_fvg, detect_order_blocks, find_swing_points
from .sweep import require_liquidity_sweep

INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
INVALID_DATA = "INVALID_DATA"


def determine_trend(candles: Sequence[Candle], cfg: Optional[StrategyConfig] = None) -> TrendDetail:
    """Bucket the close's deviation from SMA(20) and grade it against RSI(14)."""
    cfg = cfg or StrategyConfig()
    closes = [c.close for c in candles]
    avg = sma(closes, cfg.trend_ma_period)
    if avg is None or avg == 0:
        return TrendDetail(direction=NEUTRAL, strength=0.0, confidence="low")

    dev = (closes[-1] - avg) / avg
    strong = cfg.strong_trend_pct / 100.0
    weak = cfg.weak_trend_pct / 100.0
    if dev > strong:
        direction = "BULLISH"
    elif dev > weak:
        direction = "WEAK_BULLISH"
    elif dev < -strong:
        direction = "BEARISH"
    elif dev < -weak:
        direction = "WEAK_BEARISH"
    else:
        direction = NEUTRAL

    rsi = rsi_simple(closes, cfg.rsi_period)
    if rsi is None:
        rsi = 50.0
    confidence = "medium"
    if (direction == "BULLISH" and rsi > 50) or (direction == "BEARISH" and rsi < 50):
        confidence = "high"
    elif (direction == "BULLISH" and rsi < 40) or (direction == "BEARISH" and rsi > 60):
        confidence = "low"

    return TrendDetail(direction=direction, strength=abs(dev), confidence=confidence, rsi=rsi, sma=avg)


def trend_to_direction(trend: str) -> str:
    if trend in ("BULLISH", "WEAK_BULLISH"):
        return LONG
    if trend in ("BEARISH", "WEAK_BEARISH"):
        return SHORT
    return NEUTRAL


def analyze_strategic(candles: Sequence[Candle], cfg: Optional[StrategyConfig] = None) -> StrategicVerdict:
    cfg = cfg or StrategyConfig()
    if not candles or len(candles) < cfg.min_candles:
        return StrategicVerdict(valid=False, direction=NEUTRAL, reason=INSUFFICIENT_DATA)
    if not candles_consistent(candles):
        return StrategicVerdict(valid=False, direction=NEUTRAL, reason=INVALID_DATA)

    highs, lows = find_swing_points(candles, cfg.strategic_swing_lookback)
    trend = determine_trend(candles, cfg)
    fvgs = detect_fvg(candles, cfg.fvg_min_size_pct)[-3:]
    obs = detect_order_blocks(candles)[-2:]
    direction = trend_to_direction(trend.direction)

    pois: List[PointOfInterest] = []
    for fvg in fvgs:
        pois.append(PointOfInterest(
            kind="FVG",
            subtype=fvg.kind,
            priority=PRIORITY_HIGH if fvg.size_pct > cfg.fvg_high_priority_pct else PRIORITY_MEDIUM,
            top=fvg.top,
            bottom=fvg.bottom,
        ))
    for ob in obs:
        pois.append(PointOfInterest(
            kind="ORDER_BLOCK",
            subtype=ob.kind,
            priority=PRIORITY_HIGH if ob.strength > cfg.ob_high_priority_strength else PRIORITY_MEDIUM,
            top=ob.high,
            bottom=ob.low,
        ))
    if highs:
        pois.append(PointOfInterest(kind="LIQUIDITY_POOL", subtype="BUY_SIDE", priority=PRIORITY_HIGH, level=highs[-1].price))
    if lows:
        pois.append(PointOfInterest(kind="LIQUIDITY_POOL", subtype="SELL_SIDE", priority=PRIORITY_HIGH, level=lows[-1].price))

    return StrategicVerdict(
        valid=True,
        direction=direction,
        trend=trend,
        swing_highs=tuple(highs),
        swing_lows=tuple(lows),
        fvgs=tuple(fvgs),
        order_blocks=tuple(obs),
        pois=tuple(pois),
        current_price=candles[-1].close,
        atr=atr_simple(list(candles), cfg.atr_period),
    )


def analyze_tactical(
    candles: Sequence[Candle],
    strategic: StrategicVerdict,
    cfg: Optional[StrategyConfig] = None,
) -> TacticalVerdict:
    cfg = cfg or StrategyConfig()
    if not candles or len(candles) < cfg.min_candles:
        return TacticalVerdict(valid=False, direction=NEUTRAL, reason=INSUFFICIENT_DATA)
    if not candles_consistent(candles):
        return TacticalVerdict(valid=False, direction=NEUTRAL, reason=INVALID_DATA)

    lookback = cfg.tactical_swing_lookback
    highs, lows = find_swing_points(candles, lookback)
    choch = detect_choch(highs, lows)
    bos = detect_bos(candles, highs, lows)
    # a break on the latest candle has no follow-through yet; judge the previous one
    strong_close = confirm_strong_close(candles, prior_bos(candles, lookback))
    fvgs = detect_fvg(candles, cfg.fvg_min_size_pct)[-2:]

    direction = NEUTRAL
    if choch is not None:
        direction = choch.direction
    elif bos is not None:
        direction = bos.direction

    cur = candles[-1].close
    in_zone = any(p.contains(cur) for p in strategic.pois)
    aligned = direction == strategic.direction or strategic.direction == NEUTRAL

    return TacticalVerdict(
        valid=True,
        direction=direction,
        choch=choch,
        bos=bos,
        strong_close=strong_close,
        swing_highs=tuple(highs),
        swing_lows=tuple(lows),
        fvgs=tuple(fvgs),
        aligned=aligned,
        in_zone=in_zone,
        current_price=cur,
    )


def _latest_fvg_contains(fvgs: Sequence[FairValueGap], price: float) -> bool:
    if not fvgs:
        return False
    return fvgs[-1].contains(price)


def analyze_execution(
    candles: Sequence[Candle],
    strategic_direction: str,
    tactical: TacticalVerdict,
    cfg: Optional[StrategyConfig] = None,
) -> ExecutionVerdict:
    cfg = cfg or StrategyConfig()
    if not candles or len(candles) < cfg.execution_min_candles:
        return ExecutionVerdict(valid=False, direction=NEUTRAL, reason=INSUFFICIENT_DATA)
    if not candles_consistent(candles):
        return ExecutionVerdict(valid=False, direction=NEUTRAL, reason=INVALID_DATA)

    highs, lows = find_swing_points(candles, cfg.execution_swing_lookback)
    choch = detect_choch(highs, lows)
    ibos = detect_internal_bos(candles)
    fvgs = detect_fvg(candles, cfg.fvg_min_size_pct)[-2:]

    sweep = None
    if strategic_direction in (LONG, SHORT):
        sweep = require_liquidity_sweep(
            candles,
            strategic_direction,
            required=cfg.sweep_required,
            swing_lookback=cfg.pool_swing_lookback,
            equal_tolerance_pct=cfg.equal_level_tolerance_pct,
            window=cfg.sweep_window,
            wick_ratio=cfg.sweep_wick_ratio,
            min_sweep_pct=cfg.sweep_min_pct,
        ).result
        hilo = count_hilo(candles, strategic_direction)
    else:
        hilo = HiLoCount(direction=NEUTRAL, state=NONE, valid=False, label=NONE)

    direction = NEUTRAL
    if choch is not None:
        direction = choch.direction
    elif ibos is not None:
        direction = ibos.direction

    cur = candles[-1].close
    return ExecutionVerdict(
        valid=True,
        direction=direction,
        choch=choch,
        internal_bos=ibos,
        sweep=sweep,
        hilo=hilo,
        fvgs=tuple(fvgs),
        aligned=direction == strategic_direction and direction == tactical.direction,
        in_zone=_latest_fvg_contains(tactical.fvgs, cur),
        current_price=cur,
    )
