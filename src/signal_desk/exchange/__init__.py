"""Market data clients."""

from signal_desk.exchange.base import GlobalMetricsSource, MarketDataSource
from signal_desk.exchange.binance import BinanceClient
from signal_desk.exchange.coingecko import CoinGeckoClient

__all__ = ["BinanceClient", "CoinGeckoClient", "GlobalMetricsSource", "MarketDataSource"]
