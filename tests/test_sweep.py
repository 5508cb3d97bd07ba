import pytest

from smc_signal_bot.models import LONG, NEUTRAL, PRIORITY_HIGH, SHORT, Candle, LiquidityPool, LiquidityPools
from smc_signal_bot.sweep import check_sweep_confirmation, detect_liquidity_sweep, require_liquidity_sweep


def _c(idx: int, o: float, h: float, l: float, c: float, v: float = 1.0) -> Candle:
    return Candle(timestamp_ms=idx * 60_000, open=o, high=h, low=l, close=c, volume=v)


SELL_SIDE = LiquidityPools(buy_side=(), sell_side=(LiquidityPool(kind="SWING_LOW", level=100.0, priority=PRIORITY_HIGH),))
BUY_SIDE = LiquidityPools(buy_side=(LiquidityPool(kind="SWING_HIGH", level=100.0, priority=PRIORITY_HIGH),), sell_side=())


def _quiet(idx: int) -> Candle:
    return _c(idx, 101, 101.2, 100.9, 101.1)


def test_sell_side_sweep_with_confirmation():
    candles = [
        _quiet(0),
        _quiet(1),
        _c(2, 100.5, 100.8, 99.5, 100.7),
        _c(3, 100.7, 101.2, 100.6, 101.0),
        _quiet(4),
    ]
    res = detect_liquidity_sweep(candles, SELL_SIDE, LONG)
    assert res.detected
    assert res.kind == "SELL_SIDE"
    assert res.index == 2
    assert res.wick_to_body_ratio == pytest.approx(1.0 / 0.2)
    assert res.sweep_pct == pytest.approx(0.5)
    assert res.confirmed
    assert res.confirmation.confirming_offset == 0


def test_buy_side_sweep_for_short():
    candles = [
        _c(0, 99, 99.2, 98.8, 99.1),
        _c(1, 99.5, 100.5, 99.2, 99.3),
        _c(2, 99.3, 99.4, 98.9, 99.0),
    ]
    res = detect_liquidity_sweep(candles, BUY_SIDE, SHORT)
    assert res.detected
    assert res.kind == "BUY_SIDE"
    assert res.direction == SHORT
    assert res.index == 1
    assert res.confirmed


def test_wick_just_below_ratio_is_not_a_sweep():
    # body 0.5, wick 0.995 -> ratio 1.99
    candles = [_quiet(0), _quiet(1), _c(2, 100.5, 101.1, 99.505, 101.0), _quiet(3), _quiet(4)]
    res = detect_liquidity_sweep(candles, SELL_SIDE, LONG)
    assert not res.detected
    assert res.reason == "NO_VALID_SWEEP"
    assert res.target_level == 100.0
    assert res.checked_candles == 5


def test_wick_exactly_twice_body_is_not_a_sweep():
    # body 0.5, wick 1.0 -> ratio exactly 2.0; the wick must strictly exceed it
    candles = [_quiet(0), _quiet(1), _c(2, 100.5, 101.1, 99.5, 101.0), _quiet(3), _quiet(4)]
    assert not detect_liquidity_sweep(candles, SELL_SIDE, LONG).detected

    deeper = [_quiet(0), _quiet(1), _c(2, 100.5, 101.1, 99.4, 101.0), _quiet(3), _quiet(4)]
    res = detect_liquidity_sweep(deeper, SELL_SIDE, LONG)
    assert res.detected
    assert res.wick_to_body_ratio == pytest.approx(2.2)


def test_depth_just_below_minimum_is_not_a_sweep():
    # breach of 0.095%
    candles = [_quiet(0), _c(1, 100.5, 100.7, 99.905, 100.6), _quiet(2)]
    assert not detect_liquidity_sweep(candles, SELL_SIDE, LONG).detected


def test_sweep_only_looks_at_recent_window():
    old_sweep = [_c(0, 100.5, 100.8, 99.5, 100.7)]
    candles = old_sweep + [_quiet(i) for i in range(1, 7)]
    assert not detect_liquidity_sweep(candles, SELL_SIDE, LONG).detected


def test_sweep_reasons_without_pool_or_direction():
    candles = [_quiet(0)]
    empty = LiquidityPools(buy_side=(), sell_side=())
    assert detect_liquidity_sweep(candles, empty, LONG).reason == "NO_LIQUIDITY_POOL"
    assert detect_liquidity_sweep(candles, SELL_SIDE, NEUTRAL).reason == "NO_DIRECTION"


def test_confirmation_needs_a_following_candle():
    candles = [_c(0, 100.5, 100.8, 99.5, 100.7)]
    conf = check_sweep_confirmation(candles, 0, LONG)
    assert not conf.confirmed
    assert conf.reason == "NO_SUBSEQUENT_CANDLE"


def test_confirmation_by_close_above_first_open():
    candles = [
        _c(0, 100.5, 100.8, 99.5, 100.7),
        _c(1, 100.0, 100.1, 99.7, 99.8),
        _c(2, 100.2, 100.3, 100.0, 100.1),
    ]
    conf = check_sweep_confirmation(candles, 0, LONG)
    assert conf.confirmed
    assert conf.confirming_offset == 1


def test_no_confirmation_in_window():
    candles = [
        _c(0, 100.5, 100.8, 99.5, 100.7),
        _c(1, 100.0, 100.1, 99.7, 99.8),
        _c(2, 99.9, 100.0, 99.6, 99.7),
        _c(3, 99.8, 99.9, 99.5, 99.6),
        _c(4, 99.6, 101.0, 99.5, 100.9),
    ]
    conf = check_sweep_confirmation(candles, 0, LONG)
    assert not conf.confirmed
    assert conf.reason == "NO_CONFIRMATION_IN_WINDOW"
    assert conf.checked_candles == 3


def test_require_sweep_block_versus_downgrade():
    candles = [_c(i, 100, 100, 100, 100) for i in range(12)]

    blocked = require_liquidity_sweep(candles, LONG, required=True)
    assert not blocked.passed
    assert blocked.impact["action"] == "BLOCK"
    assert blocked.result.reason == "NO_VALID_SWEEP"
    assert len(blocked.pools) == 2

    relaxed = require_liquidity_sweep(candles, LONG, required=False)
    assert relaxed.impact["action"] == "DOWNGRADE"
    assert relaxed.impact["rating_penalty"] == 15
