"""Technical indicators — pure functions on price/volume series (oldest first)."""

from __future__ import annotations

from typing import NamedTuple, Sequence

import numpy as np

from signal_desk.errors import DataUnavailableError
from signal_desk.models.market import (
    BollingerBands,
    IndicatorSnapshot,
    PriceHistory,
    VolumeTrend,
)

RSI_NEUTRAL = 50.0


class SupportResistance(NamedTuple):
    support: float
    resistance: float


class MACD(NamedTuple):
    macd: float
    signal: float
    histogram: float


class VolumeAnalysis(NamedTuple):
    trend: VolumeTrend
    average: float
    current: float
    ratio: float


def rsi(prices: Sequence[float], period: int = 14) -> float:
    """Relative Strength Index from simple averages of the first *period* deltas.

    Returns the neutral value 50 when fewer than ``period + 1`` points are
    available and 100 when there were no losing deltas.
    """
    if len(prices) < period + 1:
        return RSI_NEUTRAL

    deltas = np.diff(np.asarray(prices[: period + 1], dtype=np.float64))
    avg_gain = float(np.sum(deltas[deltas > 0])) / period
    avg_loss = float(-np.sum(deltas[deltas < 0])) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def ema(prices: Sequence[float], period: int) -> float:
    """Exponential moving average seeded with the SMA of the first *period* values."""
    if not prices:
        return 0.0
    if len(prices) < period:
        return float(prices[-1])

    multiplier = 2.0 / (period + 1)
    value = float(np.mean(prices[:period]))
    for price in prices[period:]:
        value = (price - value) * multiplier + value
    return value


def macd(prices: Sequence[float]) -> MACD:
    """EMA(12) - EMA(26).

    The signal line is the MACD line itself and the histogram is therefore
    zero; there is no 9-period EMA over a MACD history.
    """
    if len(prices) < 26:
        return MACD(0.0, 0.0, 0.0)
    line = ema(prices, 12) - ema(prices, 26)
    return MACD(line, line, 0.0)


def bollinger_bands(
    prices: Sequence[float],
    period: int = 20,
    num_std: float = 2.0,
) -> BollingerBands:
    """SMA +/- num_std * population stdev over the trailing *period* closes.

    Degrades to a flat band at the last price with insufficient data.
    """
    if not prices:
        return BollingerBands(upper=0.0, middle=0.0, lower=0.0)
    if len(prices) < period:
        last = float(prices[-1])
        return BollingerBands(upper=last, middle=last, lower=last)

    window = np.asarray(prices[-period:], dtype=np.float64)
    middle = float(np.mean(window))
    offset = float(np.std(window)) * num_std
    return BollingerBands(upper=middle + offset, middle=middle, lower=middle - offset)


def support_resistance(prices: Sequence[float], window: int = 20) -> SupportResistance:
    """Strict local minima/maxima over the trailing window.

    Falls back to the window's min/max when no local extremum exists, and to
    +/-5% of the last price when the series is shorter than the window.
    """
    if not prices:
        return SupportResistance(0.0, 0.0)
    if len(prices) < window:
        last = float(prices[-1])
        return SupportResistance(last * 0.95, last * 1.05)

    recent = [float(p) for p in prices[-window:]]
    local_mins = []
    local_maxs = []
    for i in range(1, len(recent) - 1):
        prev, cur, nxt = recent[i - 1], recent[i], recent[i + 1]
        if cur < prev and cur < nxt:
            local_mins.append(cur)
        if cur > prev and cur > nxt:
            local_maxs.append(cur)

    support = min(local_mins) if local_mins else min(recent)
    resistance = max(local_maxs) if local_maxs else max(recent)
    return SupportResistance(support, resistance)


def analyze_volume(volumes: Sequence[float]) -> VolumeAnalysis:
    """Average/current volume, their ratio, and the trailing-3 vs preceding-3 trend."""
    if not volumes:
        return VolumeAnalysis("STABLE", 0.0, 0.0, 1.0)

    average = float(np.mean(volumes))
    current = float(volumes[-1])
    ratio = current / average if average > 0 else 1.0

    trend: VolumeTrend = "STABLE"
    if len(volumes) >= 6:
        recent_avg = float(np.mean(volumes[-3:]))
        older_avg = float(np.mean(volumes[-6:-3]))
        if recent_avg > older_avg * 1.2:
            trend = "INCREASING"
        elif recent_avg < older_avg * 0.8:
            trend = "DECREASING"

    return VolumeAnalysis(trend, average, current, ratio)


def price_change_24h(prices: Sequence[float]) -> float:
    """Percent change against the close 24 candles back (or the first close)."""
    if not prices:
        return 0.0
    reference = prices[-24] if len(prices) >= 24 else prices[0]
    if reference == 0:
        return 0.0
    return (prices[-1] - reference) / reference * 100


def compute_indicators(
    coin: str,
    history: PriceHistory,
    btc_dominance: float | None = None,
) -> IndicatorSnapshot:
    """Build an indicator snapshot from one history window.

    Raises:
        DataUnavailableError: the history holds no usable prices.
    """
    prices = [float(p) for p in history.prices]
    if not prices or prices[-1] <= 0:
        raise DataUnavailableError(f"No historical data available for {coin}")

    macd_values = macd(prices)
    levels = support_resistance(prices)
    volume = analyze_volume(history.volumes)

    return IndicatorSnapshot(
        coin=coin,
        current_price=prices[-1],
        price_change_24h=price_change_24h(prices),
        rsi=rsi(prices),
        macd=macd_values.macd,
        macd_signal=macd_values.signal,
        macd_histogram=macd_values.histogram,
        bollinger=bollinger_bands(prices),
        support=levels.support,
        resistance=levels.resistance,
        volume=volume.current,
        volume_trend=volume.trend,
        volume_ratio=volume.ratio,
        btc_dominance=btc_dominance,
    )
