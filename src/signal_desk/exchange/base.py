"""Market data collaborator contracts."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from signal_desk.models.market import GlobalMetrics, PriceHistory


@runtime_checkable
class MarketDataSource(Protocol):
    """Price history and live quotes, keyed by coin symbol (e.g. ``BTC``).

    Implementations raise :class:`~signal_desk.errors.DataUnavailableError`
    when the upstream cannot be reached.
    """

    async def get_history(self, coin: str, interval: str = "1h", limit: int = 100) -> PriceHistory: ...

    async def get_current_price(self, coin: str) -> float: ...

    async def get_current_prices(self, coins: list[str]) -> dict[str, float]: ...


@runtime_checkable
class GlobalMetricsSource(Protocol):
    """Market-wide figures; never raises, returns static values when unreachable."""

    async def get_global_metrics(self) -> GlobalMetrics: ...
