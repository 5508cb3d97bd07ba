from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import RiskConfig, StrategyConfig
from .gate import check_alignment_gate
from .models import (
    NEUTRAL,
    STATUS_ACTIVE,
    Candle,
    Check,
    ExecutionVerdict,
    GateResult,
    RiskAssessment,
    ScoreBreakdown,
    Signal,
    StrategicVerdict,
    TacticalVerdict,
    validate_candles,
)
from .scoring import build_targets, derive_levels, environment_filter, format_breakdown, risk_check, score_signal
from .timeframes import analyze_execution, analyze_strategic, analyze_tactical

log = logging.getLogger("pipeline")

OUTCOME_SIGNAL = "SIGNAL"
OUTCOME_FILTERED = "FILTERED"
OUTCOME_ERROR = "ERROR"

HOUR_MS = 3_600_000


@dataclass(frozen=True)
class SymbolCandles:
    symbol: str
    strategic: Sequence[Candle]
    tactical: Sequence[Candle]
    execution: Sequence[Candle]
    volume_24h: Optional[float] = None


@dataclass(frozen=True)
class SymbolAnalysis:
    symbol: str
    strategic: StrategicVerdict
    tactical: TacticalVerdict
    execution: ExecutionVerdict
    gate: GateResult
    evidence: Tuple[Check, ...]
    signal: Optional[Signal] = None
    filter_reason: Optional[str] = None
    score: Optional[ScoreBreakdown] = None
    risk: Optional[RiskAssessment] = None


@dataclass(frozen=True)
class SymbolOutcome:
    symbol: str
    status: str  # SIGNAL | FILTERED | ERROR
    reason: Optional[str] = None
    analysis: Optional[SymbolAnalysis] = None
    error: Optional[str] = None


@dataclass
class ScanReport:
    outcomes: List[SymbolOutcome] = field(default_factory=list)

    @property
    def signals(self) -> List[Signal]:
        return [o.analysis.signal for o in self.outcomes if o.status == OUTCOME_SIGNAL and o.analysis and o.analysis.signal]

    @property
    def filtered(self) -> List[SymbolOutcome]:
        return [o for o in self.outcomes if o.status == OUTCOME_FILTERED]

    @property
    def errors(self) -> List[SymbolOutcome]:
        return [o for o in self.outcomes if o.status == OUTCOME_ERROR]

    def reason_counts(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for o in self.filtered:
            key = o.reason or "UNKNOWN"
            out[key] = out.get(key, 0) + 1
        return out


def signal_id(symbol: str, direction: str, created_at_ms: int, strategy_sig: Optional[str] = None) -> str:
    if not strategy_sig:
        return f"{symbol}_{direction}_{created_at_ms}"
    base = f"{symbol}:{direction}:{created_at_ms}:{strategy_sig}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def _tier_checks(strategic: StrategicVerdict, tactical: TacticalVerdict, execution: ExecutionVerdict) -> List[Check]:
    checks: List[Check] = []
    trend = strategic.trend
    checks.append(Check(
        name="htf_direction",
        passed=strategic.valid and strategic.direction != NEUTRAL,
        detail=strategic.reason or f"{strategic.direction} ({trend.direction if trend else '-'})",
        metrics={
            "trend": trend.direction if trend else None,
            "strength": trend.strength if trend else None,
            "confidence": trend.confidence if trend else None,
            "rsi": trend.rsi if trend else None,
            "pois": len(strategic.pois),
        },
    ))
    brk = tactical.choch or tactical.bos
    checks.append(Check(
        name="mtf_structure",
        passed=tactical.valid and tactical.aligned,
        detail=tactical.reason or f"{tactical.direction} via {brk.kind if brk else 'no break'}",
        metrics={
            "broken_level": brk.broken_level if brk else None,
            "strong_close": tactical.strong_close,
            "in_htf_poi": tactical.in_zone,
        },
    ))
    ebrk = execution.choch or execution.internal_bos
    sweep = execution.sweep
    hilo = execution.hilo
    checks.append(Check(
        name="ltf_structure",
        passed=execution.valid and execution.aligned,
        detail=execution.reason or f"{execution.direction} via {ebrk.kind if ebrk else 'no break'}",
        metrics={
            "broken_level": ebrk.broken_level if ebrk else None,
            "in_entry_zone": execution.in_zone,
        },
    ))
    if sweep is not None:
        if sweep.detected:
            checks.append(Check(
                name="liquidity_sweep",
                passed=True,
                detail=f"{sweep.kind} of {sweep.pool.kind} {sweep.pool.level:g}",
                metrics={
                    "wick_to_body": sweep.wick_to_body_ratio,
                    "sweep_pct": sweep.sweep_pct,
                    "confirmed": sweep.confirmed,
                },
            ))
        else:
            checks.append(Check(
                name="liquidity_sweep",
                passed=False,
                detail=sweep.reason,
                metrics={"target_level": sweep.target_level, "checked_candles": sweep.checked_candles},
            ))
    if hilo is not None:
        checks.append(Check(
            name="hilo_two",
            passed=hilo.valid,
            detail=hilo.pause_reason or hilo.label,
            metrics={"state": hilo.state, "entry": hilo.entry_price, "stop": hilo.stop_loss},
        ))
    return checks


def analyze_symbol(
    data: SymbolCandles,
    *,
    now_ms: int,
    strategy: Optional[StrategyConfig] = None,
    risk: Optional[RiskConfig] = None,
    signal_ttl_hours: float = 4.0,
    strategy_sig: Optional[str] = None,
) -> SymbolAnalysis:
    """Run the full three-tier pipeline for one symbol.

    Raises CandleValidationError on non-positive prices, high below low or
    negative volume. Every other outcome, including out-of-order candles
    (a *_DATA_INVALID gate block), is reported through the returned analysis.
    """
    strategy = strategy or StrategyConfig()
    risk = risk or RiskConfig()
    for seq in (data.strategic, data.tactical, data.execution):
        validate_candles(list(seq))

    strategic = analyze_strategic(data.strategic, strategy)
    tactical = analyze_tactical(data.tactical, strategic, strategy)
    execution = analyze_execution(data.execution, strategic.direction, tactical, strategy)
    gate = check_alignment_gate(strategic, tactical, execution, strict_mode=strategy.strict_mode)

    evidence = _tier_checks(strategic, tactical, execution)
    evidence.append(Check(
        name="alignment_gate",
        passed=gate.passed,
        detail=gate.block_reason or "PASSED",
        metrics={"blocked": gate.blocked},
    ))

    def _filtered(reason: str, **kw) -> SymbolAnalysis:
        return SymbolAnalysis(
            symbol=data.symbol,
            strategic=strategic,
            tactical=tactical,
            execution=execution,
            gate=gate,
            evidence=tuple(evidence),
            filter_reason=reason,
            **kw,
        )

    if gate.blocked:
        return _filtered(gate.block_reason or "GATE_BLOCKED")

    direction = strategic.direction

    if strategy.sweep_required and not (execution.sweep is not None and execution.sweep.detected):
        return _filtered("LIQUIDITY_SWEEP_REQUIRED")

    env_ok, env_checks = environment_filter(data.strategic, direction, strategic.trend, data.volume_24h, risk)
    evidence.append(Check(
        name="environment",
        passed=env_ok,
        detail="; ".join(f"{c.name}={'ok' if c.passed else 'fail'}" for c in env_checks),
        metrics={c.name: c.detail for c in env_checks},
    ))
    if risk.enforce_environment and not env_ok:
        return _filtered("ENVIRONMENT_NOT_SUITABLE")

    entry, stop, level_source = derive_levels(direction, tactical, execution)
    targets = build_targets(entry, stop, direction, risk.take_profit_multiples)
    assessment = risk_check(entry, stop, targets, direction, risk)
    evidence.extend(assessment.checks)
    if not assessment.passed:
        return _filtered("RISK_CHECK_FAILED", risk=assessment)

    sweep = execution.sweep
    score = score_signal(
        aligned=gate.passed,
        sweep_confirmed=bool(sweep is not None and sweep.confirmed),
        hilo_valid=bool(execution.hilo is not None and execution.hilo.valid),
        strong_close=tactical.strong_close,
        trend_confidence=strategic.trend.confidence if strategic.trend else None,
        volume_24h=data.volume_24h,
        choch=tactical.choch,
        entry_price=entry,
        current_price=float(execution.current_price),
        choch_strong_pct=strategy.choch_strong_pct,
        cfg=risk,
    )
    evidence.append(Check(
        name="score",
        passed=True,
        detail=format_breakdown(score),
        metrics={"score": score.score, "rating": score.rating},
    ))

    sig = Signal(
        id=signal_id(data.symbol, direction, now_ms, strategy_sig),
        symbol=data.symbol,
        direction=direction,
        entry_price=float(entry),
        stop_loss=float(stop),
        take_profits=tuple(float(t) for t in targets),
        risk_reward=assessment.risk_reward,
        score=score.score,
        rating=score.rating,
        status=STATUS_ACTIVE,
        created_at_ms=int(now_ms),
        expires_at_ms=int(now_ms + signal_ttl_hours * HOUR_MS),
        position_size=assessment.position_size,
        leverage=assessment.leverage,
        evidence=tuple(evidence),
        extra={
            "level_source": level_source,
            "gate_reason": gate.block_reason,
            "choch": tactical.choch.kind if tactical.choch else None,
            "bos": tactical.bos.kind if tactical.bos else None,
            "sweep": sweep.kind if (sweep is not None and sweep.detected) else None,
            "hilo": execution.hilo.label if execution.hilo else None,
        },
    )
    return SymbolAnalysis(
        symbol=data.symbol,
        strategic=strategic,
        tactical=tactical,
        execution=execution,
        gate=gate,
        evidence=tuple(evidence),
        signal=sig,
        score=score,
        risk=assessment,
    )


def frequency_filter(symbol: str, recent: Iterable[Signal], now_ms: int, min_interval_hours: float) -> Optional[Signal]:
    """Return the most recent signal for ``symbol`` inside the interval, if any."""
    cutoff = now_ms - min_interval_hours * HOUR_MS
    hits = [s for s in recent if s.symbol == symbol and s.created_at_ms > cutoff]
    if not hits:
        return None
    return max(hits, key=lambda s: s.created_at_ms)


def scan_symbols(
    batch: Iterable[SymbolCandles],
    *,
    now_ms: int,
    strategy: Optional[StrategyConfig] = None,
    risk: Optional[RiskConfig] = None,
    signal_ttl_hours: float = 4.0,
    min_signal_interval_hours: float = 0.0,
    recent_signals: Sequence[Signal] = (),
    strategy_sig: Optional[str] = None,
) -> ScanReport:
    """Analyze every symbol independently; one bad symbol never aborts the batch."""
    report = ScanReport()
    for data in batch:
        if min_signal_interval_hours > 0:
            last = frequency_filter(data.symbol, recent_signals, now_ms, min_signal_interval_hours)
            if last is not None:
                report.outcomes.append(SymbolOutcome(symbol=data.symbol, status=OUTCOME_FILTERED, reason="FREQUENCY_LIMIT"))
                continue
        try:
            analysis = analyze_symbol(
                data,
                now_ms=now_ms,
                strategy=strategy,
                risk=risk,
                signal_ttl_hours=signal_ttl_hours,
                strategy_sig=strategy_sig,
            )
        except Exception as e:
            log.warning("analyze_failed symbol=%s err=%s", data.symbol, e)
            report.outcomes.append(SymbolOutcome(symbol=data.symbol, status=OUTCOME_ERROR, error=repr(e)))
            continue

        if analysis.signal is not None:
            report.outcomes.append(SymbolOutcome(symbol=data.symbol, status=OUTCOME_SIGNAL, analysis=analysis))
        else:
            report.outcomes.append(SymbolOutcome(
                symbol=data.symbol,
                status=OUTCOME_FILTERED,
                reason=analysis.filter_reason,
                analysis=analysis,
            ))
    return report
