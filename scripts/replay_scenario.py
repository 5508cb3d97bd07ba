from __future__ import annotations

from smc_signal_bot.config import RiskConfig, StrategyConfig
from smc_signal_bot.models import Candle
from smc_signal_bot.pipeline import SymbolCandles, analyze_symbol


def candle(idx: int, open_p: float, high: float, low: float, close: float, vol: float = 1.0, step_ms: int = 60_000) -> Candle:
    return Candle(timestamp_ms=idx * step_ms, open=open_p, high=high, low=low, close=close, volume=vol)


def uptrend(n: int, start: float = 100.0, step_pct: float = 1.0):
    out = []
    p = start
    for i in range(n):
        nxt = p * (1.0 + step_pct / 100.0)
        out.append(candle(i, p, nxt * 1.002, p * 0.998, nxt, 10.0, 14_400_000))
        p = nxt
    return out


def flat(n: int, price: float = 100.0):
    return [candle(i, price, price, price, price) for i in range(n)]


def main():
    data = SymbolCandles(
        symbol="DEMOUSDT",
        strategic=uptrend(40),
        tactical=flat(40),
        execution=flat(20),
        volume_24h=None,
    )
    strategy = StrategyConfig(strict_mode=False)
    risk = RiskConfig(enforce_environment=False)

    res = analyze_symbol(data, now_ms=0, strategy=strategy, risk=risk)
    print(f"gate: passed={res.gate.passed} blocked={res.gate.blocked} reason={res.gate.block_reason}")
    print(f"filter_reason: {res.filter_reason}")
    for chk in res.evidence:
        print(f"  [{'x' if chk.passed else ' '}] {chk.name}: {chk.detail}")
    if res.signal is not None:
        s = res.signal
        print(f"SIGNAL {s.symbol} {s.direction} entry={s.entry_price} sl={s.stop_loss} tps={list(s.take_profits)} rrr={s.risk_reward:.2f} score={s.score} rating={s.rating}")


if __name__ == "__main__":
    main()
