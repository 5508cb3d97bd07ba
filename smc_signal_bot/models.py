from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

LONG = "LONG"
SHORT = "SHORT"
NEUTRAL = "NEUTRAL"

HIGH = "HIGH"
LOW = "LOW"

BULLISH = "BULLISH"
BEARISH = "BEARISH"

PRIORITY_HIGH = "high"
PRIORITY_MEDIUM = "medium"

STATUS_ACTIVE = "ACTIVE"
STATUS_TRIGGERED = "TRIGGERED"
STATUS_EXPIRED = "EXPIRED"
STATUS_INVALIDATED = "INVALIDATED"


class CandleValidationError(ValueError):
    """Raised when a candle sequence breaks basic OHLC rules."""

    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(message)
        self.index = index


@dataclass(frozen=True)
class Candle:
    timestamp_ms: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class SwingPoint:
    index: int
    price: float
    timestamp_ms: int
    kind: str  # HIGH or LOW


@dataclass(frozen=True)
class EqualLevelCluster:
    price: float  # anchor: first member
    touches: int
    indices: Tuple[int, ...]


@dataclass(frozen=True)
class LiquidityPool:
    kind: str  # SWING_HIGH | SWING_LOW | EQUAL_HIGH | EQUAL_LOW
    level: float
    priority: str
    touches: Optional[int] = None
    index: Optional[int] = None
    timestamp_ms: Optional[int] = None


@dataclass(frozen=True)
class LiquidityPools:
    buy_side: Tuple[LiquidityPool, ...]   # resting above highs
    sell_side: Tuple[LiquidityPool, ...]  # resting below lows

    def __len__(self) -> int:
        return len(self.buy_side) + len(self.sell_side)


@dataclass(frozen=True)
class FairValueGap:
    kind: str  # BULLISH or BEARISH
    top: float
    bottom: float
    size: float
    size_pct: float
    index: int
    timestamp_ms: int

    def contains(self, price: float) -> bool:
        return self.bottom <= price <= self.top


@dataclass(frozen=True)
class OrderBlock:
    kind: str  # BULLISH or BEARISH
    high: float
    low: float
    strength: float
    index: int
    timestamp_ms: int

    def contains(self, price: float) -> bool:
        return self.low <= price <= self.high


@dataclass(frozen=True)
class StructuralBreak:
    kind: str  # BULLISH_CHOCH, BEARISH_BOS, BULLISH_INTERNAL_BOS, ...
    broken_level: float
    timestamp_ms: Optional[int] = None
    strength: Optional[float] = None
    index: Optional[int] = None  # candle that produced the break

    @property
    def direction(self) -> str:
        return LONG if self.kind.startswith(BULLISH) else SHORT


@dataclass(frozen=True)
class SweepConfirmation:
    confirmed: bool
    confirming_offset: Optional[int] = None  # 0-based offset after the sweep candle
    reason: Optional[str] = None
    checked_candles: int = 0


@dataclass(frozen=True)
class SweepDetected:
    kind: str  # SELL_SIDE or BUY_SIDE
    direction: str  # trade direction the sweep supports
    pool: LiquidityPool
    index: int  # within the scanned window
    timestamp_ms: int
    wick_length: float
    body_size: float
    wick_to_body_ratio: float
    sweep_depth: float
    sweep_pct: float
    confirmation: SweepConfirmation
    detected: bool = field(default=True, init=False)

    @property
    def confirmed(self) -> bool:
        return self.confirmation.confirmed


@dataclass(frozen=True)
class SweepNotDetected:
    reason: str  # NO_LIQUIDITY_POOL | NO_VALID_SWEEP | NO_DIRECTION
    target_level: Optional[float] = None
    checked_candles: int = 0
    detected: bool = field(default=False, init=False)

    @property
    def confirmed(self) -> bool:
        return False


SweepResult = Union[SweepDetected, SweepNotDetected]


@dataclass(frozen=True)
class HiLoCount:
    direction: str
    state: str  # NONE | ONE | PULLBACK | TWO
    valid: bool
    label: str  # NONE, HIGH_ONE, HIGH_TWO, LOW_ONE, LOW_TWO
    one_index: Optional[int] = None
    pullback_index: Optional[int] = None
    two_index: Optional[int] = None
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    counting_paused: bool = False
    pause_reason: Optional[str] = None


@dataclass(frozen=True)
class TrendDetail:
    direction: str  # BULLISH, WEAK_BULLISH, NEUTRAL, WEAK_BEARISH, BEARISH
    strength: float
    confidence: str  # high | medium | low
    rsi: Optional[float] = None
    sma: Optional[float] = None


@dataclass(frozen=True)
class PointOfInterest:
    kind: str  # FVG | ORDER_BLOCK | LIQUIDITY_POOL
    subtype: str
    priority: str
    top: Optional[float] = None
    bottom: Optional[float] = None
    level: Optional[float] = None

    def contains(self, price: float) -> bool:
        if self.kind not in ("FVG", "ORDER_BLOCK"):
            return False
        if self.top is None or self.bottom is None:
            return False
        return self.bottom <= price <= self.top


@dataclass(frozen=True)
class StrategicVerdict:
    valid: bool
    direction: str
    reason: Optional[str] = None
    trend: Optional[TrendDetail] = None
    swing_highs: Tuple[SwingPoint, ...] = ()
    swing_lows: Tuple[SwingPoint, ...] = ()
    fvgs: Tuple[FairValueGap, ...] = ()
    order_blocks: Tuple[OrderBlock, ...] = ()
    pois: Tuple[PointOfInterest, ...] = ()
    current_price: Optional[float] = None
    atr: Optional[float] = None


@dataclass(frozen=True)
class TacticalVerdict:
    valid: bool
    direction: str
    reason: Optional[str] = None
    choch: Optional[StructuralBreak] = None
    bos: Optional[StructuralBreak] = None
    strong_close: bool = False
    swing_highs: Tuple[SwingPoint, ...] = ()
    swing_lows: Tuple[SwingPoint, ...] = ()
    fvgs: Tuple[FairValueGap, ...] = ()
    aligned: bool = False
    in_zone: bool = False
    current_price: Optional[float] = None

    @property
    def conflict(self) -> bool:
        return not self.aligned and self.direction != NEUTRAL


@dataclass(frozen=True)
class ExecutionVerdict:
    valid: bool
    direction: str
    reason: Optional[str] = None
    choch: Optional[StructuralBreak] = None
    internal_bos: Optional[StructuralBreak] = None
    sweep: Optional[SweepResult] = None
    hilo: Optional[HiLoCount] = None
    fvgs: Tuple[FairValueGap, ...] = ()
    aligned: bool = False
    in_zone: bool = False
    current_price: Optional[float] = None


@dataclass(frozen=True)
class GateResult:
    passed: bool
    blocked: bool
    block_reason: Optional[str] = None


@dataclass(frozen=True)
class Check:
    """One named step of the evidence chain."""

    name: str
    passed: bool
    detail: str = ""
    metrics: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScoreBreakdown:
    base: float
    score: float
    rating: str
    adjustments: Tuple[Tuple[str, float], ...]


@dataclass(frozen=True)
class RiskAssessment:
    execution_status: str  # PASS | BLOCK
    checks: Tuple[Check, ...]
    risk_reward: float
    stop_distance_pct: float
    position_size: float
    leverage: int
    risk_amount: float

    @property
    def passed(self) -> bool:
        return self.execution_status == "PASS"


@dataclass(frozen=True)
class Signal:
    id: str
    symbol: str
    direction: str
    entry_price: float
    stop_loss: float
    take_profits: Tuple[float, ...]
    risk_reward: float
    score: float
    rating: str
    status: str
    created_at_ms: int
    expires_at_ms: int
    position_size: float = 0.0
    leverage: int = 1
    evidence: Tuple[Check, ...] = ()
    extra: Dict[str, Any] = field(default_factory=dict)
    status_reason: Optional[str] = None
    updated_at_ms: Optional[int] = None


_ALLOWED_TRANSITIONS = {
    STATUS_ACTIVE: (STATUS_TRIGGERED, STATUS_EXPIRED, STATUS_INVALIDATED),
}


def transition(sig: Signal, status: str, now_ms: int, reason: Optional[str] = None) -> Signal:
    """Return a copy of ``sig`` moved to ``status``; only ACTIVE signals may move."""
    allowed = _ALLOWED_TRANSITIONS.get(sig.status, ())
    if status not in allowed:
        raise ValueError(f"Illegal signal transition {sig.status} -> {status} id={sig.id}")
    return replace(sig, status=status, status_reason=reason, updated_at_ms=int(now_ms))


def validate_candles(candles: List[Candle]) -> None:
    """Fail fast on candles no market can print: non-positive prices, high<low, negative volume."""
    for i, c in enumerate(candles):
        if min(c.open, c.high, c.low, c.close) <= 0:
            raise CandleValidationError(f"candle[{i}] contains non-positive price", i)
        if c.high < c.low:
            raise CandleValidationError(f"candle[{i}] high ({c.high}) < low ({c.low})", i)
        if c.volume < 0:
            raise CandleValidationError(f"candle[{i}] contains negative volume", i)


def candles_consistent(candles: Sequence[Candle]) -> bool:
    """True when timestamps ascend strictly and every open/close sits inside its high-low range."""
    prev_ts: Optional[int] = None
    for c in candles:
        if c.high < max(c.open, c.close) or c.low > min(c.open, c.close):
            return False
        if prev_ts is not None and c.timestamp_ms <= prev_ts:
            return False
        prev_ts = c.timestamp_ms
    return True
