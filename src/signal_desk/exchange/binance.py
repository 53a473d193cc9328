"""Binance public REST client — klines and ticker prices."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from signal_desk.errors import DataUnavailableError
from signal_desk.models.market import PriceHistory

log = structlog.get_logger("binance")


class BinanceClient:
    """Async client for the unauthenticated market endpoints of Binance."""

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        quote_asset: str = "USDT",
        timeout_s: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.quote_asset = quote_asset
        self.timeout_s = timeout_s
        self._http: httpx.AsyncClient | None = None

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.timeout_s)
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    def symbol(self, coin: str) -> str:
        return f"{coin.upper()}{self.quote_asset}"

    async def _get(self, path: str, params: dict | None = None) -> Any:
        http = await self._get_http()
        try:
            resp = await http.get(f"{self.base_url}{path}", params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as exc:
            log.warning("binance_request_failed", path=path, params=params, error=str(exc))
            raise DataUnavailableError(f"Binance request {path} failed: {exc}") from exc

    # --- REST ---

    async def get_history(self, coin: str, interval: str = "1h", limit: int = 100) -> PriceHistory:
        """Fetch klines, oldest first.

        Each kline is ``[open_time, open, high, low, close, volume, ...]``.
        """
        symbol = self.symbol(coin)
        klines = await self._get(
            "/api/v3/klines",
            {"symbol": symbol, "interval": interval, "limit": limit},
        )
        if not klines:
            raise DataUnavailableError(f"No historical data available for {coin}")
        return PriceHistory(
            symbol=symbol,
            interval=interval,
            prices=[float(k[4]) for k in klines],
            volumes=[float(k[5]) for k in klines],
            timestamps=[int(k[0]) for k in klines],
        )

    async def get_current_price(self, coin: str) -> float:
        data = await self._get("/api/v3/ticker/price", {"symbol": self.symbol(coin)})
        try:
            return float(data["price"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DataUnavailableError(f"Malformed ticker for {coin}") from exc

    async def get_current_prices(self, coins: list[str]) -> dict[str, float]:
        """Batch quote; coins the exchange does not list are omitted."""
        wanted = {self.symbol(c): c.upper() for c in coins}
        tickers = await self._get("/api/v3/ticker/price")
        prices: dict[str, float] = {}
        for item in tickers:
            coin = wanted.get(item.get("symbol"))
            if coin is not None:
                prices[coin] = float(item["price"])
        return prices
