from __future__ import annotations
from typing import List, Optional

from .models import Candle


def sma(values: List[float], length: int) -> Optional[float]:
    if length <= 0 or len(values) < length:
        return None
    return sum(values[-length:]) / float(length)


def rsi_simple(closes: List[float], length: int = 14) -> Optional[float]:
    """RSI over the last ``length`` changes using plain averages (no smoothing carry)."""
    if length <= 0 or len(closes) < length + 1:
        return None
    gains = 0.0
    losses = 0.0
    for i in range(-length, 0):
        ch = closes[i] - closes[i - 1]
        if ch >= 0:
            gains += ch
        else:
            losses -= ch
    avg_gain = gains / length
    avg_loss = losses / length
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def true_range(high: float, low: float, prev_close: float) -> float:
    return max(high - low, abs(high - prev_close), abs(low - prev_close))


def atr_simple(candles: List[Candle], length: int = 14) -> Optional[float]:
    if length <= 0 or len(candles) < length + 1:
        return None
    trs = []
    for i in range(-length, 0):
        trs.append(true_range(candles[i].high, candles[i].low, candles[i - 1].close))
    return sum(trs) / length


def pct_distance(a: float, b: float) -> Optional[float]:
    """Absolute distance between ``a`` and ``b`` as a percent of ``b``."""
    if b == 0:
        return None
    return abs(a - b) / b * 100.0
