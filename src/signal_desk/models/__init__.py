"""Pydantic domain models."""

from signal_desk.models.market import (
    STATIC_GLOBAL_METRICS,
    BollingerBands,
    GlobalMetrics,
    IndicatorSnapshot,
    PriceHistory,
)
from signal_desk.models.portfolio import PortfolioSnapshot
from signal_desk.models.prediction import (
    Horizon,
    HorizonOutcome,
    PerformanceSummary,
    Prediction,
)
from signal_desk.models.signal import (
    FundedSignal,
    SignalProposal,
    SignalQuality,
    TradingSignal,
)

__all__ = [
    "BollingerBands",
    "FundedSignal",
    "GlobalMetrics",
    "Horizon",
    "HorizonOutcome",
    "IndicatorSnapshot",
    "PerformanceSummary",
    "PortfolioSnapshot",
    "Prediction",
    "PriceHistory",
    "STATIC_GLOBAL_METRICS",
    "SignalProposal",
    "SignalQuality",
    "TradingSignal",
]
