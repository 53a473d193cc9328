"""CoinGecko global market metrics with a static fallback."""

from __future__ import annotations

import httpx
import structlog

from signal_desk.models.market import STATIC_GLOBAL_METRICS, GlobalMetrics

log = structlog.get_logger("coingecko")


class CoinGeckoClient:
    """Async client for ``/api/v3/global``."""

    def __init__(self, base_url: str = "https://api.coingecko.com", timeout_s: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._http: httpx.AsyncClient | None = None

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.timeout_s)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def get_global_metrics(self) -> GlobalMetrics:
        """BTC/ETH dominance, total market cap and 24h volume (USD).

        Returns the static fallback set on any failure; missing fields fall
        back individually.
        """
        http = await self._get_http()
        try:
            resp = await http.get(f"{self.base_url}/api/v3/global")
            resp.raise_for_status()
            data = resp.json()["data"]
            dominance = data.get("market_cap_percentage") or {}
            fallback = STATIC_GLOBAL_METRICS
            return GlobalMetrics(
                btc_dominance=dominance.get("btc") or fallback.btc_dominance,
                eth_dominance=dominance.get("eth") or fallback.eth_dominance,
                total_market_cap=(data.get("total_market_cap") or {}).get("usd")
                or fallback.total_market_cap,
                volume_24h=(data.get("total_volume") or {}).get("usd") or fallback.volume_24h,
            )
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            log.warning("global_metrics_fallback", error=str(exc))
            return STATIC_GLOBAL_METRICS
