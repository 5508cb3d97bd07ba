from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from ..models import Candle

log = logging.getLogger("gateio")

DEFAULT_BASE_URL = "https://api.gateio.ws/api/v4"


def to_pair(symbol: str) -> str:
    """BTCUSDT -> BTC_USDT; already-separated pairs pass through."""
    s = symbol.upper().replace("/", "_").replace("-", "_")
    if "_" in s:
        return s
    for quote in ("USDT", "USDC", "BTC", "ETH"):
        if s.endswith(quote) and len(s) > len(quote):
            return f"{s[:-len(quote)]}_{quote}"
    return s


def parse_candlestick(row: List[Any]) -> Candle:
    # [0]=ts seconds, [1]=quote volume, [2]=close, [3]=high, [4]=low, [5]=open
    return Candle(
        timestamp_ms=int(float(row[0])) * 1000,
        open=float(row[5]),
        high=float(row[3]),
        low=float(row[4]),
        close=float(row[2]),
        volume=float(row[1]),
    )


@dataclass(frozen=True)
class Ticker:
    symbol: str
    last: float
    volume_24h: float
    change_pct: Optional[float] = None


def parse_ticker(row: Dict[str, Any]) -> Ticker:
    change = row.get("change_percentage")
    return Ticker(
        symbol=str(row.get("currency_pair", "")).replace("_", "").upper(),
        last=float(row.get("last") or 0.0),
        volume_24h=float(row.get("quote_volume") or 0.0),
        change_pct=float(change) if change not in (None, "") else None,
    )


class GateIOProvider:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        rest_timeout_s: int = 20,
        rest_max_retries: int = 4,
        rest_backoff_s: float = 0.8,
        rest_conn_limit: int = 40,
        rest_conn_limit_per_host: int = 10,
    ):
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.rest_timeout_s = rest_timeout_s
        self.rest_max_retries = rest_max_retries
        self.rest_backoff_s = rest_backoff_s
        self.rest_conn_limit = rest_conn_limit
        self.rest_conn_limit_per_host = rest_conn_limit_per_host

        self._session: Optional[aiohttp.ClientSession] = None

    async def close(self) -> None:
        """Close the shared aiohttp session (best-effort)."""
        if self._session is not None and not self._session.closed:
            await self._session.close()

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=self.rest_timeout_s,
            connect=min(10, self.rest_timeout_s),
            sock_connect=min(10, self.rest_timeout_s),
            sock_read=max(10, int(self.rest_timeout_s * 0.75)),
        )

    def _connector(self) -> aiohttp.TCPConnector:
        return aiohttp.TCPConnector(
            limit=self.rest_conn_limit,
            limit_per_host=self.rest_conn_limit_per_host,
            ttl_dns_cache=300,
            enable_cleanup_closed=True,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout(), connector=self._connector())
        return self._session

    async def _get_json(self, path: str, params: Dict[str, Any], *, what: str) -> Any:
        url = self.base_url + path
        sess = await self._get_session()

        backoff = float(self.rest_backoff_s)
        last_err: Optional[BaseException] = None
        data: Any = None
        for attempt in range(1, int(self.rest_max_retries) + 1):
            try:
                async with sess.get(url, params=params, headers={"Accept": "application/json"}) as resp:
                    if resp.status == 429:
                        txt = await resp.text()
                        retry_after = resp.headers.get("Retry-After")
                        sleep_s = float(retry_after) if (retry_after and retry_after.isdigit()) else backoff
                        log.warning("rest_rate_limited what=%s params=%s sleep=%.1fs body=%s", what, params, sleep_s, txt[:200])
                        await asyncio.sleep(sleep_s)
                        backoff = min(backoff * 2.0, 20.0)
                        continue

                    if resp.status != 200:
                        txt = await resp.text()
                        raise RuntimeError(f"Gate.io {what} failed: {resp.status} {txt[:500]}")

                    data = await resp.json(content_type=None)

                last_err = None
                break

            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_err = e
                if attempt >= int(self.rest_max_retries):
                    break
                log.warning(
                    "rest_timeout_or_client_err attempt=%d/%d what=%s backoff=%.1fs err=%s",
                    attempt,
                    self.rest_max_retries,
                    what,
                    backoff,
                    e,
                )
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2.0, 20.0)
        else:
            raise RuntimeError(f"Gate.io {what} still rate limited after {self.rest_max_retries} attempts")

        if last_err is not None:
            raise last_err
        return data

    async def fetch_klines(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        params = {"currency_pair": to_pair(symbol), "interval": timeframe, "limit": int(limit)}
        data = await self._get_json("/spot/candlesticks", params, what="candlesticks")
        out = [parse_candlestick(row) for row in data or []]
        out.sort(key=lambda c: c.timestamp_ms)
        return out

    async def fetch_tickers(self) -> Dict[str, Ticker]:
        data = await self._get_json("/spot/tickers", {}, what="tickers")
        out: Dict[str, Ticker] = {}
        for row in data or []:
            t = parse_ticker(row)
            if t.symbol:
                out[t.symbol] = t
        return out
