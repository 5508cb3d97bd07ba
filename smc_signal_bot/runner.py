from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
import functools
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple, Union

from .config import Config, strategy_signature_hash
from .formatters import format_signal
from .notifier.telegram import TelegramNotifier
from .pipeline import OUTCOME_ERROR, ScanReport, SymbolCandles, SymbolOutcome, scan_symbols
from .providers.gateio import GateIOProvider, Ticker
from .scoring import rating_at_least
from .store import InMemorySignalStore, SignalStore

log = logging.getLogger("runner")


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_provider(cfg: Config) -> GateIOProvider:
    if (cfg.provider.type or "").lower() != "gateio":
        raise ValueError(f"Unsupported provider type: {cfg.provider.type}")
    return GateIOProvider(base_url=cfg.provider.base_url, rest_timeout_s=cfg.provider.rest_timeout_s)


class ScanRunner:
    def __init__(
        self,
        cfg: Config,
        *,
        provider=None,
        store: Optional[SignalStore] = None,
        notifier: Optional[TelegramNotifier] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.cfg = cfg
        self.provider = provider if provider is not None else build_provider(cfg)
        self.store = store if store is not None else InMemorySignalStore()
        if notifier is None and cfg.telegram.enabled:
            notifier = TelegramNotifier(
                token=cfg.telegram.token,
                chat_ids=cfg.telegram.chat_ids or [],
                parse_mode=cfg.alerts.parse_mode,
                disable_web_page_preview=cfg.telegram.disable_web_page_preview,
            )
        self.notifier = notifier
        self.clock = clock
        self._strategy_sig = strategy_signature_hash(cfg.strategy)
        self._pool = ThreadPoolExecutor(max_workers=max(1, int(cfg.scanner.scan_workers)))

    async def close(self) -> None:
        try:
            await self.provider.close()
        finally:
            self._pool.shutdown(wait=False)

    async def _fetch_tickers(self) -> Dict[str, Ticker]:
        try:
            return await self.provider.fetch_tickers()
        except Exception as e:
            log.warning("tickers_failed err=%s", e)
            return {}

    async def _fetch_symbol(
        self,
        sym: str,
        sem: asyncio.Semaphore,
        tickers: Dict[str, Ticker],
    ) -> Union[SymbolCandles, Tuple[str, str]]:
        p = self.cfg.provider
        try:
            async with sem:
                strategic, tactical, execution = await asyncio.gather(
                    self.provider.fetch_klines(sym, p.strategic_tf, p.strategic_limit),
                    self.provider.fetch_klines(sym, p.tactical_tf, p.tactical_limit),
                    self.provider.fetch_klines(sym, p.execution_tf, p.execution_limit),
                )
        except Exception as e:
            return (sym, repr(e))
        t = tickers.get(sym)
        return SymbolCandles(
            symbol=sym,
            strategic=strategic,
            tactical=tactical,
            execution=execution,
            volume_24h=t.volume_24h if t is not None else None,
        )

    async def scan_once(self, symbols: Optional[List[str]] = None) -> ScanReport:
        symbols = [s.upper() for s in (symbols if symbols is not None else self.cfg.provider.symbols or [])]
        now_ms = int(self.clock())
        t0 = time.monotonic()
        log.info("scan_start symbols=%d", len(symbols))

        for sig in self.store.expire_due(now_ms):
            log.info("signal_expired id=%s symbol=%s direction=%s", sig.id, sig.symbol, sig.direction)
        dropped = self.store.purge_older_than(now_ms, self.cfg.scanner.archive_max_age_hours)
        if dropped:
            log.info("signals_purged count=%d", dropped)

        tickers = await self._fetch_tickers()
        sem = asyncio.Semaphore(max(1, int(self.cfg.provider.fetch_concurrency)))
        fetched = await asyncio.gather(*[self._fetch_symbol(sym, sem, tickers) for sym in symbols])

        report = ScanReport()
        batch: List[SymbolCandles] = []
        for item in fetched:
            if isinstance(item, SymbolCandles):
                batch.append(item)
            else:
                sym, err = item
                log.warning("fetch_failed symbol=%s err=%s", sym, err)
                report.outcomes.append(SymbolOutcome(symbol=sym, status=OUTCOME_ERROR, error=err))

        recent = self.store.all()
        loop = asyncio.get_running_loop()
        parts = await asyncio.gather(*[
            loop.run_in_executor(
                self._pool,
                functools.partial(
                    scan_symbols,
                    [data],
                    now_ms=now_ms,
                    strategy=self.cfg.strategy,
                    risk=self.cfg.risk,
                    signal_ttl_hours=self.cfg.scanner.signal_ttl_hours,
                    min_signal_interval_hours=self.cfg.scanner.min_signal_interval_hours,
                    recent_signals=recent,
                    strategy_sig=self._strategy_sig,
                ),
            )
            for data in batch
        ])
        for part in parts:
            report.outcomes.extend(part.outcomes)

        for o in report.filtered:
            log.debug("symbol_filtered symbol=%s reason=%s", o.symbol, o.reason)
        for o in report.errors:
            log.debug("symbol_error symbol=%s err=%s", o.symbol, o.error)

        for sig in report.signals:
            await self._handle_signal(sig)

        log.info(
            "scan_done symbols=%d signals=%d filtered=%d errors=%d took=%.2fs",
            len(report.outcomes),
            len(report.signals),
            len(report.filtered),
            len(report.errors),
            time.monotonic() - t0,
        )
        return report

    async def _handle_signal(self, sig) -> None:
        if not self.store.create_if_absent(sig):
            log.info("signal_duplicate symbol=%s direction=%s", sig.symbol, sig.direction)
            return

        log.info(
            "signal symbol=%s direction=%s entry=%s sl=%s rrr=%.2f score=%.1f rating=%s id=%s",
            sig.symbol,
            sig.direction,
            sig.entry_price,
            sig.stop_loss,
            sig.risk_reward,
            sig.score,
            sig.rating,
            sig.id,
        )

        if self.notifier is None or not self.notifier.enabled():
            return
        if not rating_at_least(sig.rating, self.cfg.alerts.min_rating):
            log.info("signal_not_sent symbol=%s rating=%s min=%s", sig.symbol, sig.rating, self.cfg.alerts.min_rating)
            return
        try:
            await self.notifier.send(format_signal(sig, self.cfg.alerts))
        except Exception as e:
            log.warning("telegram_send_failed symbol=%s err=%s", sig.symbol, e)

    async def run_forever(self) -> None:
        interval = max(1, int(self.cfg.scanner.interval_s))
        if self.notifier is not None and self.notifier.enabled():
            await self.notifier.send(
                f"{self.cfg.app.name}: scanner started. Monitoring {len(self.cfg.provider.symbols or [])} symbols."
            )
        while True:
            try:
                await self.scan_once()
            except Exception as e:
                log.exception("scan_failed err=%s", e)
            await asyncio.sleep(interval)
