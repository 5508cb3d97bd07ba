import pytest

from smc_signal_bot.hilo import NONE, PULLBACK, TWO, count_hilo, is_ranging
from smc_signal_bot.models import LONG, SHORT, Candle


def _c(idx: int, o: float, h: float, l: float, c: float, v: float = 1.0) -> Candle:
    return Candle(timestamp_ms=idx * 60_000, open=o, high=h, low=l, close=c, volume=v)


def _hl(idx: int, h: float, l: float) -> Candle:
    return _c(idx, l + 0.5 * (h - l), h, l, l + 0.5 * (h - l))


HIGH_TWO_BARS = [
    (100, 98),
    (101, 99),  # one
    (100.5, 98.5),  # pullback
    (102, 99.5),  # two
    (103, 101),
    (104, 102),
    (105, 103),
    (106, 104),
    (107, 105),
    (108, 106),
]


def test_high_two_entry_and_stop():
    candles = [_hl(i, h, l) for i, (h, l) in enumerate(HIGH_TWO_BARS)]
    res = count_hilo(candles, LONG)
    assert res.valid
    assert res.state == TWO
    assert res.label == "HIGH_TWO"
    assert (res.one_index, res.pullback_index, res.two_index) == (1, 2, 3)
    assert res.entry_price == pytest.approx(102 * 1.001)
    assert res.stop_loss == pytest.approx(98.5 * 0.999)
    assert not res.counting_paused


def test_low_two_is_the_mirror():
    candles = [_hl(i, 200 - l, 200 - h) for i, (h, l) in enumerate(HIGH_TWO_BARS)]
    res = count_hilo(candles, SHORT)
    assert res.valid
    assert res.label == "LOW_TWO"
    assert res.entry_price == pytest.approx(98 * 0.999)
    assert res.stop_loss == pytest.approx(101.5 * 1.001)


def test_too_few_candles():
    candles = [_hl(i, h, l) for i, (h, l) in enumerate(HIGH_TWO_BARS[:9])]
    res = count_hilo(candles, LONG)
    assert not res.valid
    assert res.state == NONE
    assert res.label == NONE


def test_ranging_pauses_count_after_one():
    bars = [(100, 99.9), (100.1, 99.95)] + [(100.05, 99.95)] * 8
    candles = [_hl(i, h, l) for i, (h, l) in enumerate(bars)]
    assert is_ranging(candles)

    res = count_hilo(candles, LONG)
    assert not res.valid
    assert res.counting_paused
    assert res.pause_reason == "PRICE_RANGING"
    assert res.state == PULLBACK
    assert res.label == "HIGH_ONE"
    assert res.entry_price is None


def test_trend_without_pullback_stays_at_one():
    bars = [(100 + i, 98 + i) for i in range(10)]
    candles = [_hl(i, h, l) for i, (h, l) in enumerate(bars)]
    res = count_hilo(candles, LONG)
    assert not res.valid
    assert res.label == "HIGH_ONE"
    assert res.one_index == 1
