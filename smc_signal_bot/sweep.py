from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from .models import (
    LONG,
    PRIORITY_HIGH,
    SHORT,
    Candle,
    LiquidityPool,
    LiquidityPools,
    SweepConfirmation,
    SweepDetected,
    SweepNotDetected,
    SweepResult,
)
from .structure import identify_liquidity_pools

WICK_RATIO = 2.0
VALIDITY_WINDOW = 5
MIN_SWEEP_PCT = 0.1
CONFIRMATION_WINDOW = 3


def select_target_pool(pools: Sequence[LiquidityPool]) -> Optional[LiquidityPool]:
    if not pools:
        return None
    for p in pools:
        if p.priority == PRIORITY_HIGH:
            return p
    return pools[0]


def check_sweep_confirmation(candles: Sequence[Candle], sweep_idx: int, direction: str) -> SweepConfirmation:
    """Look for a reversal close within the next three candles after ``sweep_idx``."""
    if sweep_idx >= len(candles) - 1:
        return SweepConfirmation(confirmed=False, reason="NO_SUBSEQUENT_CANDLE")

    after = candles[sweep_idx + 1:]
    window = min(CONFIRMATION_WINDOW, len(after))
    first_open = after[0].open
    for i in range(window):
        k = after[i]
        if direction == LONG:
            if k.close > k.open or (i > 0 and k.close > first_open):
                return SweepConfirmation(confirmed=True, confirming_offset=i, checked_candles=i + 1)
        else:
            if k.close < k.open or (i > 0 and k.close < first_open):
                return SweepConfirmation(confirmed=True, confirming_offset=i, checked_candles=i + 1)

    return SweepConfirmation(confirmed=False, reason="NO_CONFIRMATION_IN_WINDOW", checked_candles=window)


def _scan(
    candles: Sequence[Candle],
    pool: LiquidityPool,
    direction: str,
    *,
    wick_ratio: float,
    min_sweep_pct: float,
) -> SweepResult:
    level = pool.level
    for i, k in enumerate(candles):
        body = abs(k.close - k.open)
        if direction == LONG:
            wick = min(k.open, k.close) - k.low
            breached = k.low < level
            reclaimed = k.close > level
            depth = level - k.low
        else:
            wick = k.high - max(k.open, k.close)
            breached = k.high > level
            reclaimed = k.close < level
            depth = k.high - level

        wick_ok = body > 0 and wick > body * wick_ratio
        sweep_pct = depth / level * 100.0
        if breached and wick_ok and reclaimed and sweep_pct >= min_sweep_pct:
            return SweepDetected(
                kind="SELL_SIDE" if direction == LONG else "BUY_SIDE",
                direction=direction,
                pool=pool,
                index=i,
                timestamp_ms=k.timestamp_ms,
                wick_length=wick,
                body_size=body,
                wick_to_body_ratio=wick / body,
                sweep_depth=depth,
                sweep_pct=sweep_pct,
                confirmation=check_sweep_confirmation(candles, i, direction),
            )

    return SweepNotDetected(reason="NO_VALID_SWEEP", target_level=level, checked_candles=len(candles))


def detect_liquidity_sweep(
    candles: Sequence[Candle],
    pools: LiquidityPools,
    direction: str,
    *,
    window: int = VALIDITY_WINDOW,
    wick_ratio: float = WICK_RATIO,
    min_sweep_pct: float = MIN_SWEEP_PCT,
) -> SweepResult:
    """First wick raid in the last ``window`` candles against the target pool.

    LONG setups look for a sell-side sweep (below lows), SHORT setups for a
    buy-side sweep (above highs).
    """
    if direction not in (LONG, SHORT):
        return SweepNotDetected(reason="NO_DIRECTION")
    side = pools.sell_side if direction == LONG else pools.buy_side
    pool = select_target_pool(side)
    if pool is None:
        return SweepNotDetected(reason="NO_LIQUIDITY_POOL")
    recent = list(candles[-window:])
    return _scan(recent, pool, direction, wick_ratio=wick_ratio, min_sweep_pct=min_sweep_pct)


@dataclass(frozen=True)
class SweepCheck:
    passed: bool
    required: bool
    pools: LiquidityPools
    result: SweepResult
    impact: Dict[str, object]


def require_liquidity_sweep(
    candles: Sequence[Candle],
    direction: str,
    *,
    required: bool = True,
    swing_lookback: int = 3,
    equal_tolerance_pct: float = 3.0,
    window: int = VALIDITY_WINDOW,
    wick_ratio: float = WICK_RATIO,
    min_sweep_pct: float = MIN_SWEEP_PCT,
) -> SweepCheck:
    """Pool identification plus sweep detection, with the effect a miss has on the setup."""
    pools = identify_liquidity_pools(candles, swing_lookback=swing_lookback, equal_tolerance_pct=equal_tolerance_pct)
    result = detect_liquidity_sweep(
        candles,
        pools,
        direction,
        window=window,
        wick_ratio=wick_ratio,
        min_sweep_pct=min_sweep_pct,
    )
    if result.detected:
        impact: Dict[str, object] = {"action": "ALLOW", "rating_boost": 10, "confidence": "high"}
    elif required:
        impact = {"action": "BLOCK", "rating_penalty": 0, "confidence": "low"}
    else:
        impact = {"action": "DOWNGRADE", "rating_penalty": 15, "confidence": "low", "downgrade_to": "C"}
    return SweepCheck(passed=result.detected, required=required, pools=pools, result=result, impact=impact)
