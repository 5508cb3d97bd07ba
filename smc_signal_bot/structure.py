from __future__ import annotations

from typing import List, Sequence, Tuple

from .models import (
    BEARISH,
    BULLISH,
    HIGH,
    LOW,
    PRIORITY_HIGH,
    PRIORITY_MEDIUM,
    Candle,
    EqualLevelCluster,
    FairValueGap,
    LiquidityPool,
    LiquidityPools,
    OrderBlock,
    SwingPoint,
)

EQUAL_LEVEL_WINDOW = 30
POOL_SWING_COUNT = 5


def _is_strict_pivot_high(candles: Sequence[Candle], idx: int, lookback: int) -> bool:
    pivot_high = candles[idx].high
    for j in range(1, lookback + 1):
        if candles[idx - j].high >= pivot_high or candles[idx + j].high >= pivot_high:
            return False
    return True


def _is_strict_pivot_low(candles: Sequence[Candle], idx: int, lookback: int) -> bool:
    pivot_low = candles[idx].low
    for j in range(1, lookback + 1):
        if candles[idx - j].low <= pivot_low or candles[idx + j].low <= pivot_low:
            return False
    return True


def find_swing_points(candles: Sequence[Candle], lookback: int = 5) -> Tuple[List[SwingPoint], List[SwingPoint]]:
    """Strict symmetric-window swing highs and lows; equal extremes disqualify both bars."""
    highs: List[SwingPoint] = []
    lows: List[SwingPoint] = []
    lookback = max(1, int(lookback))
    for i in range(lookback, len(candles) - lookback):
        c = candles[i]
        if _is_strict_pivot_high(candles, i, lookback):
            highs.append(SwingPoint(index=i, price=c.high, timestamp_ms=c.timestamp_ms, kind=HIGH))
        if _is_strict_pivot_low(candles, i, lookback):
            lows.append(SwingPoint(index=i, price=c.low, timestamp_ms=c.timestamp_ms, kind=LOW))
    return highs, lows


def find_equal_levels(candles: Sequence[Candle], kind: str, tolerance_pct: float = 0.3) -> List[EqualLevelCluster]:
    """Greedy clustering of the last 30 highs (kind="high") or lows (kind="low").

    Each price joins the first cluster whose anchor is within ``tolerance_pct``
    percent of the anchor, otherwise it starts a new cluster. Only clusters with
    two or more touches are returned, most touches first (stable on ties).
    Indices refer to positions in ``candles``.
    """
    if kind not in ("high", "low"):
        raise ValueError(f"Unsupported equal-level kind: {kind}")
    start = max(0, len(candles) - EQUAL_LEVEL_WINDOW)
    clusters: List[Tuple[float, List[int]]] = []
    for i in range(start, len(candles)):
        price = candles[i].high if kind == "high" else candles[i].low
        for anchor, members in clusters:
            tolerance = anchor * (tolerance_pct / 100.0)
            if abs(price - anchor) < tolerance:
                members.append(i)
                break
        else:
            clusters.append((price, [i]))

    out = [
        EqualLevelCluster(price=anchor, touches=len(members), indices=tuple(members))
        for anchor, members in clusters
        if len(members) >= 2
    ]
    out.sort(key=lambda c: c.touches, reverse=True)
    return out


def detect_fvg(candles: Sequence[Candle], min_size_pct: float = 0.1) -> List[FairValueGap]:
    out: List[FairValueGap] = []
    for i in range(2, len(candles)):
        k1 = candles[i - 2]
        k3 = candles[i]

        if k1.high < k3.low:
            size = k3.low - k1.high
            mid = (k1.high + k3.low) / 2.0
            size_pct = size / mid * 100.0
            if size_pct >= min_size_pct:
                out.append(FairValueGap(
                    kind=BULLISH,
                    top=k3.low,
                    bottom=k1.high,
                    size=size,
                    size_pct=size_pct,
                    index=i,
                    timestamp_ms=k3.timestamp_ms,
                ))

        if k1.low > k3.high:
            size = k1.low - k3.high
            mid = (k1.low + k3.high) / 2.0
            size_pct = size / mid * 100.0
            if size_pct >= min_size_pct:
                out.append(FairValueGap(
                    kind=BEARISH,
                    top=k1.low,
                    bottom=k3.high,
                    size=size,
                    size_pct=size_pct,
                    index=i,
                    timestamp_ms=k3.timestamp_ms,
                ))
    return out


def detect_order_blocks(candles: Sequence[Candle]) -> List[OrderBlock]:
    """Impulse candles that engulf the prior bar's extreme and are followed through."""
    out: List[OrderBlock] = []
    for i in range(3, len(candles) - 1):
        k0 = candles[i - 1]
        k1 = candles[i]
        k2 = candles[i + 1]

        if k0.close < k0.open and k1.close > k1.open and k1.close > k0.high and k2.close > k2.open:
            out.append(OrderBlock(
                kind=BULLISH,
                high=k1.high,
                low=k1.low,
                strength=abs(k1.close - k1.open) / k1.open,
                index=i,
                timestamp_ms=k1.timestamp_ms,
            ))

        if k0.close > k0.open and k1.close < k1.open and k1.close < k0.low and k2.close < k2.open:
            out.append(OrderBlock(
                kind=BEARISH,
                high=k1.high,
                low=k1.low,
                strength=abs(k1.close - k1.open) / k1.open,
                index=i,
                timestamp_ms=k1.timestamp_ms,
            ))
    return out


def _swing_pools(swings: List[SwingPoint], kind: str) -> List[LiquidityPool]:
    recent = swings[-POOL_SWING_COUNT:]
    last = len(recent) - 1
    return [
        LiquidityPool(
            kind=kind,
            level=s.price,
            priority=PRIORITY_HIGH if n == last else PRIORITY_MEDIUM,
            index=s.index,
            timestamp_ms=s.timestamp_ms,
        )
        for n, s in enumerate(recent)
    ]


def identify_liquidity_pools(
    candles: Sequence[Candle],
    *,
    swing_lookback: int = 3,
    equal_tolerance_pct: float = 3.0,
) -> LiquidityPools:
    highs, lows = find_swing_points(candles, swing_lookback)

    buy_side = _swing_pools(highs, "SWING_HIGH")
    sell_side = _swing_pools(lows, "SWING_LOW")

    for cluster in find_equal_levels(candles, "high", equal_tolerance_pct):
        buy_side.append(LiquidityPool(
            kind="EQUAL_HIGH",
            level=cluster.price,
            priority=PRIORITY_HIGH,
            touches=cluster.touches,
            index=cluster.indices[0],
        ))
    for cluster in find_equal_levels(candles, "low", equal_tolerance_pct):
        sell_side.append(LiquidityPool(
            kind="EQUAL_LOW",
            level=cluster.price,
            priority=PRIORITY_HIGH,
            touches=cluster.touches,
            index=cluster.indices[0],
        ))

    return LiquidityPools(buy_side=tuple(buy_side), sell_side=tuple(sell_side))
