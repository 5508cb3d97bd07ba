from __future__ import annotations

from .models import NEUTRAL, ExecutionVerdict, GateResult, StrategicVerdict, TacticalVerdict

PASSED = GateResult(passed=True, blocked=False, block_reason=None)


def check_alignment_gate(
    strategic: StrategicVerdict,
    tactical: TacticalVerdict,
    execution: ExecutionVerdict,
    *,
    strict_mode: bool = True,
) -> GateResult:
    """Three-tier waterfall; the first failing check decides the reason.

    Data and strategic-direction failures always block. Alignment and zone
    failures block only in strict mode. A missing execution entry zone never
    blocks.
    """
    if not strategic.valid:
        return GateResult(passed=False, blocked=True, block_reason="HTF_DATA_INVALID")
    if not tactical.valid:
        return GateResult(passed=False, blocked=True, block_reason="MTF_DATA_INVALID")
    if not execution.valid:
        return GateResult(passed=False, blocked=True, block_reason="LTF_DATA_INVALID")
    if strategic.direction == NEUTRAL:
        return GateResult(passed=False, blocked=True, block_reason="HTF_DIRECTION_NEUTRAL")
    if not tactical.aligned:
        return GateResult(passed=False, blocked=strict_mode, block_reason="MTF_NOT_ALIGNED")
    if not tactical.in_zone:
        return GateResult(passed=False, blocked=strict_mode, block_reason="MTF_NOT_IN_HTF_POI")
    if not execution.aligned:
        return GateResult(passed=False, blocked=strict_mode, block_reason="LTF_NOT_FULLY_ALIGNED")
    if not execution.in_zone:
        return GateResult(passed=False, blocked=False, block_reason="LTF_NOT_IN_ENTRY_ZONE")
    return PASSED
