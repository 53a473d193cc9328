"""Market data models — price history, global metrics, indicator snapshots."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from signal_desk.models.base import CamelModel

VolumeTrend = Literal["INCREASING", "DECREASING", "STABLE"]


class PriceHistory(BaseModel):
    """Candle closes and volumes for one symbol, oldest first."""

    symbol: str
    interval: str
    prices: list[float] = Field(default_factory=list)
    volumes: list[float] = Field(default_factory=list)
    timestamps: list[int] = Field(default_factory=list)


class GlobalMetrics(CamelModel):
    """Market-wide dominance and capitalisation figures."""

    btc_dominance: float
    eth_dominance: float
    total_market_cap: float
    volume_24h: float


# Used when the global metrics source is unreachable.
STATIC_GLOBAL_METRICS = GlobalMetrics(
    btc_dominance=59.3,
    eth_dominance=12.1,
    total_market_cap=3_530_000_000_000,
    volume_24h=181_460_000_000,
)


class BollingerBands(CamelModel):
    upper: float
    middle: float
    lower: float


class IndicatorSnapshot(CamelModel):
    """Technical indicators computed from one price/volume window."""

    coin: str
    current_price: float = Field(gt=0)
    price_change_24h: float = 0.0
    rsi: float = Field(default=50.0, ge=0, le=100)
    macd: float = 0.0
    macd_signal: float = 0.0
    macd_histogram: float = 0.0
    bollinger: BollingerBands
    support: float
    resistance: float
    volume: float = 0.0
    volume_trend: VolumeTrend = "STABLE"
    volume_ratio: float = 1.0
    btc_dominance: float | None = None
