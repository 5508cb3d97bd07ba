from __future__ import annotations

from typing import List, Optional, Sequence

from .models import Candle, StructuralBreak, SwingPoint
from .structure import find_swing_points

INTERNAL_WINDOW = 10
INTERNAL_LOOKBACK = 2


def detect_choch(swing_highs: List[SwingPoint], swing_lows: List[SwingPoint]) -> Optional[StructuralBreak]:
    """Change of character from the last swing pair of each kind.

    Lows are evaluated before highs, so a higher low wins over a lower high
    when both are present.
    """
    if len(swing_highs) < 2 or len(swing_lows) < 2:
        return None

    recent_lows = swing_lows[-3:]
    last_low, prev_low = recent_lows[-1], recent_lows[-2]
    if last_low.price > prev_low.price:
        return StructuralBreak(
            kind="BULLISH_CHOCH",
            broken_level=last_low.price,
            timestamp_ms=last_low.timestamp_ms,
            strength=(last_low.price - prev_low.price) / prev_low.price,
            index=last_low.index,
        )

    recent_highs = swing_highs[-3:]
    last_high, prev_high = recent_highs[-1], recent_highs[-2]
    if last_high.price < prev_high.price:
        return StructuralBreak(
            kind="BEARISH_CHOCH",
            broken_level=last_high.price,
            timestamp_ms=last_high.timestamp_ms,
            strength=(prev_high.price - last_high.price) / prev_high.price,
            index=last_high.index,
        )

    return None


def detect_bos(
    candles: Sequence[Candle],
    swing_highs: List[SwingPoint],
    swing_lows: List[SwingPoint],
) -> Optional[StructuralBreak]:
    """Break of structure by the latest candle against the second-to-last swing.

    The most recent swing is skipped since the latest candle may have formed it.
    Both the body extreme and the close must clear the level.
    """
    if not candles or len(swing_highs) < 2 or len(swing_lows) < 2:
        return None
    last_idx = len(candles) - 1
    last = candles[last_idx]
    ph = swing_highs[-2]
    pl = swing_lows[-2]
    body_top = max(last.open, last.close)
    body_bot = min(last.open, last.close)

    if body_top > ph.price and last.close > ph.price:
        return StructuralBreak(kind="BULLISH_BOS", broken_level=ph.price, timestamp_ms=last.timestamp_ms, index=last_idx)
    if body_bot < pl.price and last.close < pl.price:
        return StructuralBreak(kind="BEARISH_BOS", broken_level=pl.price, timestamp_ms=last.timestamp_ms, index=last_idx)
    return None


def detect_internal_bos(candles: Sequence[Candle]) -> Optional[StructuralBreak]:
    """Finer-grained BOS: lookback-2 swings over the last 10 candles, close only."""
    recent = list(candles[-INTERNAL_WINDOW:])
    if not recent:
        return None
    ih, il = find_swing_points(recent, INTERNAL_LOOKBACK)
    last_idx = len(candles) - 1
    last = candles[last_idx]
    if len(ih) >= 2 and last.close > ih[-2].price:
        return StructuralBreak(
            kind="BULLISH_INTERNAL_BOS",
            broken_level=ih[-2].price,
            timestamp_ms=last.timestamp_ms,
            index=last_idx,
        )
    if len(il) >= 2 and last.close < il[-2].price:
        return StructuralBreak(
            kind="BEARISH_INTERNAL_BOS",
            broken_level=il[-2].price,
            timestamp_ms=last.timestamp_ms,
            index=last_idx,
        )
    return None


def confirm_strong_close(candles: Sequence[Candle], bos: Optional[StructuralBreak]) -> bool:
    """The candle after the break keeps closing beyond the level, in the break direction."""
    if bos is None or bos.index is None:
        return False
    nxt = bos.index + 1
    if nxt >= len(candles):
        return False
    c = candles[nxt]
    if bos.kind.startswith("BULLISH"):
        return c.close > bos.broken_level and c.close > c.open
    return c.close < bos.broken_level and c.close < c.open


def prior_bos(candles: Sequence[Candle], lookback: int) -> Optional[StructuralBreak]:
    """BOS made by the candle before the latest one, judged on the data available then."""
    if len(candles) < 2:
        return None
    prefix = candles[:-1]
    highs, lows = find_swing_points(prefix, lookback)
    return detect_bos(prefix, highs, lows)
