import asyncio

from smc_signal_bot.config import (
    AlertsConfig,
    Config,
    ProviderConfig,
    RiskConfig,
    ScannerConfig,
    StrategyConfig,
    TelegramConfig,
)
from smc_signal_bot.models import LONG, Candle
from smc_signal_bot.providers.gateio import Ticker
from smc_signal_bot.runner import ScanRunner
from smc_signal_bot.store import InMemorySignalStore

NOW = 1_700_000_000_000


def _c(idx: int, o: float, h: float, l: float, c: float, v: float = 1.0) -> Candle:
    return Candle(timestamp_ms=idx * 60_000, open=o, high=h, low=l, close=c, volume=v)


def _uptrend(n: int):
    out = []
    p = 100.0
    for i in range(n):
        nxt = p * 1.01
        out.append(_c(i, p, nxt * 1.002, p * 0.998, nxt))
        p = nxt
    return out


def _flat(n: int):
    return [_c(i, 100, 100, 100, 100) for i in range(n)]


class FakeProvider:
    def __init__(self):
        self.calls = []
        self.closed = False

    async def fetch_klines(self, symbol, timeframe, limit):
        self.calls.append((symbol, timeframe, limit))
        if symbol == "BADUSDT":
            raise RuntimeError("Gate.io candlesticks failed: 400")
        if timeframe == "4h":
            return _uptrend(40)
        if timeframe == "15m":
            return _flat(40)
        return _flat(20)

    async def fetch_tickers(self):
        return {"DEMOUSDT": Ticker(symbol="DEMOUSDT", last=100.0, volume_24h=1_000_000.0)}

    async def close(self):
        self.closed = True


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def enabled(self):
        return True

    async def send(self, text, *, parse_mode=None):
        self.sent.append(text)
        return 1


def _cfg(min_rating: str = "B") -> Config:
    return Config(
        provider=ProviderConfig(symbols=["DEMOUSDT", "BADUSDT"]),
        strategy=StrategyConfig(strict_mode=False),
        risk=RiskConfig(enforce_environment=False),
        scanner=ScannerConfig(scan_workers=2),
        telegram=TelegramConfig(enabled=False),
        alerts=AlertsConfig(min_rating=min_rating),
    )


def test_scan_once_stores_and_notifies():
    provider = FakeProvider()
    notifier = FakeNotifier()
    store = InMemorySignalStore()
    runner = ScanRunner(_cfg(), provider=provider, store=store, notifier=notifier, clock=lambda: NOW)

    async def _run():
        try:
            return await runner.scan_once()
        finally:
            await runner.close()

    report = asyncio.run(_run())

    assert [s.symbol for s in report.signals] == ["DEMOUSDT"]
    assert [o.symbol for o in report.errors] == ["BADUSDT"]
    assert store.find_active("DEMOUSDT", LONG) is not None
    assert len(notifier.sent) == 1
    assert "DEMOUSDT" in notifier.sent[0]
    assert provider.closed
    assert ("DEMOUSDT", "4h", 100) in provider.calls
    sig = report.signals[0]
    assert len(sig.id) == 64


def test_second_scan_is_rate_limited_per_symbol():
    notifier = FakeNotifier()
    store = InMemorySignalStore()
    runner = ScanRunner(_cfg(), provider=FakeProvider(), store=store, notifier=notifier, clock=lambda: NOW)

    async def _run():
        try:
            await runner.scan_once(["DEMOUSDT"])
            return await runner.scan_once(["DEMOUSDT"])
        finally:
            await runner.close()

    report = asyncio.run(_run())
    assert report.signals == []
    assert report.reason_counts() == {"FREQUENCY_LIMIT": 1}
    assert len(notifier.sent) == 1
    assert len(store.all()) == 1


def test_low_rating_is_stored_but_not_sent():
    notifier = FakeNotifier()
    store = InMemorySignalStore()
    runner = ScanRunner(_cfg(min_rating="S"), provider=FakeProvider(), store=store, notifier=notifier, clock=lambda: NOW)

    async def _run():
        try:
            return await runner.scan_once(["DEMOUSDT"])
        finally:
            await runner.close()

    report = asyncio.run(_run())
    assert len(report.signals) == 1
    assert notifier.sent == []
    assert len(store.active()) == 1
