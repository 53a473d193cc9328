"""Prediction models — horizons, graded outcomes, performance summaries."""

from __future__ import annotations

import enum
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Literal

from pydantic import Field

from signal_desk.clock import ensure_utc
from signal_desk.errors import InputValidationError
from signal_desk.models.base import CamelModel

if TYPE_CHECKING:
    from signal_desk.db.tables.predictions import PredictionRow

RecentTrend = Literal["IMPROVING", "DECLINING", "STABLE"]


class Horizon(str, enum.Enum):
    """Evaluation horizon after a prediction is recorded."""

    H1 = "1h"
    H4 = "4h"
    H24 = "24h"
    H48 = "48h"
    D7 = "7d"

    @property
    def delta(self) -> timedelta:
        return _HORIZON_DELTAS[self]

    @classmethod
    def parse(cls, value: "str | Horizon") -> "Horizon":
        try:
            return cls(value)
        except ValueError:
            raise InputValidationError(f"Unknown horizon: {value!r}") from None


_HORIZON_DELTAS = {
    Horizon.H1: timedelta(hours=1),
    Horizon.H4: timedelta(hours=4),
    Horizon.H24: timedelta(hours=24),
    Horizon.H48: timedelta(hours=48),
    Horizon.D7: timedelta(days=7),
}


class HorizonOutcome(CamelModel):
    actual_price: float
    profit_loss: float
    is_correct: bool
    graded_at: datetime


class Prediction(CamelModel):
    """A recorded proposal plus the market context it was made in."""

    id: int
    coin: str
    price: float
    volume: float
    rsi: float
    macd: float
    btc_dominance: float | None = None
    price_change_24h: float
    action: Literal["BUY", "SELL", "HOLD"]
    confidence: float
    entry_price: float
    target_price: float
    stop_loss: float
    reasoning: str = ""
    risk_level: str | None = None
    timeframe: str = "15m"
    key_factors: list[str] = Field(default_factory=list)
    created_at: datetime
    outcomes: dict[Horizon, HorizonOutcome] = Field(default_factory=dict)

    @classmethod
    def from_row(cls, row: "PredictionRow") -> "Prediction":
        outcomes = {
            Horizon(horizon): HorizonOutcome(
                actual_price=o.actual_price,
                profit_loss=o.profit_loss,
                is_correct=o.is_correct,
                graded_at=ensure_utc(o.graded_at),
            )
            for horizon, o in (row.outcomes or {}).items()
        }
        return cls(
            id=row.id,
            coin=row.coin,
            price=row.price,
            volume=row.volume,
            rsi=row.rsi,
            macd=row.macd,
            btc_dominance=row.btc_dominance,
            price_change_24h=row.price_change_24h,
            action=row.action,
            confidence=row.confidence,
            entry_price=row.entry_price,
            target_price=row.target_price,
            stop_loss=row.stop_loss,
            reasoning=row.reasoning,
            risk_level=row.risk_level,
            timeframe=row.timeframe,
            key_factors=list(row.key_factors or []),
            created_at=ensure_utc(row.created_at),
            outcomes=outcomes,
        )


class PerformanceSummary(CamelModel):
    """Rolling accuracy statistics for one coin and horizon."""

    coin: str
    horizon: Horizon = Horizon.H24
    total_predictions: int = 0
    correct_predictions: int = 0
    win_rate: float = 0.0
    total_profit: float = 0.0
    total_loss: float = 0.0
    avg_profit: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0
    common_mistakes: list[str] = Field(default_factory=list)
    best_conditions: list[str] = Field(default_factory=list)
    mistake_keys: list[str] = Field(default_factory=list)
    condition_keys: list[str] = Field(default_factory=list)
    recent_trend: RecentTrend = "STABLE"

    @classmethod
    def empty(cls, coin: str, horizon: Horizon = Horizon.H24) -> "PerformanceSummary":
        return cls(coin=coin, horizon=horizon)
