import pytest

from smc_signal_bot.config import RiskConfig
from smc_signal_bot.models import (
    LONG,
    SHORT,
    Candle,
    ExecutionVerdict,
    HiLoCount,
    StructuralBreak,
    SwingPoint,
    TacticalVerdict,
)
from smc_signal_bot.scoring import (
    build_targets,
    derive_levels,
    environment_filter,
    format_breakdown,
    rating_at_least,
    rating_for,
    risk_check,
    score_signal,
)


def _c(idx: int, o: float, h: float, l: float, c: float, v: float = 1.0) -> Candle:
    return Candle(timestamp_ms=idx * 60_000, open=o, high=h, low=l, close=c, volume=v)


def _score(**kw):
    base = dict(
        aligned=False,
        sweep_confirmed=False,
        hilo_valid=False,
        strong_close=False,
        trend_confidence="medium",
        volume_24h=None,
        choch=None,
        entry_price=100.0,
        current_price=100.0,
    )
    base.update(kw)
    return score_signal(**base)


def test_rating_boundaries():
    assert rating_for(85) == "S"
    assert rating_for(84.999) == "A"
    assert rating_for(70) == "A"
    assert rating_for(55) == "B"
    assert rating_for(54.99) == "C"
    assert rating_at_least("S", "B")
    assert not rating_at_least("C", "B")


def test_base_score_without_adjustments():
    bd = _score()
    assert bd.score == 70
    assert bd.rating == "A"
    assert bd.adjustments == ()


def test_all_bonuses_clamp_to_hundred():
    bd = _score(aligned=True, sweep_confirmed=True, hilo_valid=True, strong_close=True, trend_confidence="high")
    assert bd.score == 100
    assert bd.rating == "S"
    assert len(bd.adjustments) == 5
    assert "Total 100 -> S" in format_breakdown(bd)


def test_penalties():
    weak = StructuralBreak(kind="BULLISH_CHOCH", broken_level=100, strength=0.002)
    bd = _score(volume_24h=100_000, choch=weak)
    assert bd.score == 55
    assert bd.rating == "B"

    strong = StructuralBreak(kind="BULLISH_CHOCH", broken_level=100, strength=0.01)
    assert _score(choch=strong).score == 70


def test_far_entry_penalty_is_capped():
    assert _score(entry_price=100.0, current_price=80.0).score == 55
    assert _score(entry_price=100.0, current_price=96.0).score == 70
    assert _score(entry_price=100.0, current_price=92.0).score == pytest.approx(70 - 8 / 92 * 100)


def test_risk_check_passes_and_sizes_position():
    ra = risk_check(100.0, 95.0, (110.0, 115.0, 120.0), LONG, RiskConfig())
    assert ra.passed
    assert ra.risk_reward == pytest.approx(2.0)
    assert ra.stop_distance_pct == pytest.approx(5.0)
    assert ra.risk_amount == pytest.approx(100.0)
    assert ra.position_size == pytest.approx(20.0)
    assert ra.leverage == 3


def test_risk_check_blocks_stop_on_wrong_side():
    ra = risk_check(100.0, 105.0, (90.0,), LONG, RiskConfig())
    assert not ra.passed
    assert ra.execution_status == "BLOCK"
    failed = [c.name for c in ra.checks if not c.passed]
    assert failed == ["sl_side"]


def test_risk_check_blocks_wide_stop_and_low_rrr():
    wide = risk_check(100.0, 80.0, (140.0,), LONG, RiskConfig())
    assert [c.name for c in wide.checks if not c.passed] == ["sl_distance"]

    thin = risk_check(100.0, 95.0, (105.0,), LONG, RiskConfig())
    assert [c.name for c in thin.checks if not c.passed] == ["rrr_minimum"]


def test_targets_follow_direction():
    assert build_targets(100.0, 95.0, LONG, (2.0, 3.0, 4.0)) == (110.0, 115.0, 120.0)
    assert build_targets(100.0, 105.0, SHORT, (2.0, 3.0, 4.0)) == (90.0, 85.0, 80.0)


def test_environment_fails_without_ticker_volume():
    candles = [_c(i, 100, 101, 99, 100) for i in range(20)]
    ok, checks = environment_filter(candles, LONG, None, None, RiskConfig())
    assert not ok
    by_name = {c.name: c for c in checks}
    assert not by_name["volume"].passed
    assert by_name["volatility"].passed
    assert by_name["trend_alignment"].passed


def test_levels_prefer_hilo_two():
    hilo = HiLoCount(direction=LONG, state="TWO", valid=True, label="HIGH_TWO", entry_price=102.1, stop_loss=98.4)
    execution = ExecutionVerdict(valid=True, direction=LONG, hilo=hilo, current_price=101.0)
    assert derive_levels(LONG, TacticalVerdict(valid=True, direction=LONG), execution) == (102.1, 98.4, "HILO_TWO")


def test_levels_fall_back_to_structure():
    tactical = TacticalVerdict(
        valid=True,
        direction=SHORT,
        swing_highs=(SwingPoint(index=3, price=104.0, timestamp_ms=0, kind="HIGH"),),
    )
    execution = ExecutionVerdict(valid=True, direction=SHORT, current_price=100.0)
    assert derive_levels(SHORT, tactical, execution) == (100.0, 104.0, "STRUCTURE")

    bare = TacticalVerdict(valid=True, direction=LONG)
    entry, stop, source = derive_levels(LONG, bare, execution)
    assert (entry, source) == (100.0, "STRUCTURE")
    assert stop == pytest.approx(95.0)
