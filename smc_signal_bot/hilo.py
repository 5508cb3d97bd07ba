from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence

from .models import LONG, Candle, HiLoCount

NONE = "NONE"
ONE = "ONE"
PULLBACK = "PULLBACK"
TWO = "TWO"

COUNT_WINDOW = 10
RANGING_WINDOW = 8
RANGING_MAX_PCT = 1.5
ENTRY_BUFFER = 0.001


@dataclass(frozen=True)
class CountState:
    state: str = NONE
    one: Optional[int] = None
    pullback: Optional[int] = None
    two: Optional[int] = None


def _extends(c: Candle, ref: Candle, direction: str) -> bool:
    return c.high > ref.high if direction == LONG else c.low < ref.low


def _retreats(c: Candle, ref: Candle, direction: str) -> bool:
    return c.high < ref.high if direction == LONG else c.low > ref.low


def step(st: CountState, candles: Sequence[Candle], i: int, direction: str) -> CountState:
    """Advance the count by candle ``i``; at most one transition per candle."""
    c = candles[i]
    if st.state == NONE:
        if i > 0 and _extends(c, candles[i - 1], direction):
            return replace(st, state=ONE, one=i)
    elif st.state == ONE:
        if _retreats(c, candles[st.one], direction):
            return replace(st, state=PULLBACK, pullback=i)
    elif st.state == PULLBACK:
        if _extends(c, candles[st.pullback], direction):
            return replace(st, state=TWO, two=i)
    return st


def is_ranging(candles: Sequence[Candle], window: int = RANGING_WINDOW, max_pct: float = RANGING_MAX_PCT) -> bool:
    if len(candles) < window:
        return False
    recent = candles[-window:]
    hi = max(c.high for c in recent)
    lo = min(c.low for c in recent)
    mid = (hi + lo) / 2.0
    return (hi - lo) / mid * 100.0 < max_pct


def _label(direction: str, state: str) -> str:
    prefix = "HIGH" if direction == LONG else "LOW"
    if state == TWO:
        return f"{prefix}_TWO"
    if state in (ONE, PULLBACK):
        return f"{prefix}_ONE"
    return NONE


def count_hilo(candles: Sequence[Candle], direction: str) -> HiLoCount:
    """High-2 (LONG) / Low-2 (SHORT) entry count over the last 10 candles."""
    if len(candles) < COUNT_WINDOW:
        return HiLoCount(direction=direction, state=NONE, valid=False, label=NONE)

    recent = list(candles[-COUNT_WINDOW:])
    st = CountState()
    for i in range(1, len(recent)):
        st = step(st, recent, i, direction)
        if st.state == TWO:
            break

    if is_ranging(recent):
        # TWO is never reported while ranging
        label = _label(direction, ONE if st.state != NONE else NONE)
        return HiLoCount(
            direction=direction,
            state=st.state,
            valid=False,
            label=label,
            one_index=st.one,
            pullback_index=st.pullback,
            counting_paused=True,
            pause_reason="PRICE_RANGING",
        )

    if st.state != TWO:
        return HiLoCount(
            direction=direction,
            state=st.state,
            valid=False,
            label=_label(direction, st.state),
            one_index=st.one,
            pullback_index=st.pullback,
        )

    leg = recent[st.pullback: st.two + 1]
    if direction == LONG:
        entry = recent[st.two].high * (1.0 + ENTRY_BUFFER)
        stop = min(c.low for c in leg) * (1.0 - ENTRY_BUFFER)
    else:
        entry = recent[st.two].low * (1.0 - ENTRY_BUFFER)
        stop = max(c.high for c in leg) * (1.0 + ENTRY_BUFFER)

    return HiLoCount(
        direction=direction,
        state=TWO,
        valid=True,
        label=_label(direction, TWO),
        one_index=st.one,
        pullback_index=st.pullback,
        two_index=st.two,
        entry_price=entry,
        stop_loss=stop,
    )
