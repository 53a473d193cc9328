"""Import all table modules so Base.metadata knows about them."""

from signal_desk.db.tables.portfolio import PortfolioSnapshotRow
from signal_desk.db.tables.predictions import (
    PerformanceRollupRow,
    PredictionOutcomeRow,
    PredictionRow,
)
from signal_desk.db.tables.signals import TradingSignalRow

__all__ = [
    "PerformanceRollupRow",
    "PortfolioSnapshotRow",
    "PredictionOutcomeRow",
    "PredictionRow",
    "TradingSignalRow",
]
