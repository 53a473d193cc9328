"""Signal models — proposals, funded signals, persisted signals, quality."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Literal

from pydantic import Field

from signal_desk.clock import ensure_utc
from signal_desk.models.base import CamelModel

if TYPE_CHECKING:
    from signal_desk.db.tables.signals import TradingSignalRow

Action = Literal["BUY", "SELL", "HOLD"]
Direction = Literal["BUY", "SELL"]
SignalType = Literal["LONG", "SHORT"]
QualityRating = Literal["EXCELLENT", "GOOD", "FAIR", "POOR"]
RiskLevel = Literal["LOW", "MEDIUM", "HIGH"]

ACTIVE = "ACTIVE"
TP1_HIT = "TP1_HIT"
TP2_HIT = "TP2_HIT"
TP3_HIT = "TP3_HIT"
SL_HIT = "SL_HIT"
CLOSED = "CLOSED"
EXPIRED = "EXPIRED"

OPEN_STATUSES = (ACTIVE, TP1_HIT, TP2_HIT)
TERMINAL_STATUSES = (TP3_HIT, SL_HIT, CLOSED, EXPIRED)
# Terminal states that count towards portfolio statistics.
SETTLED_STATUSES = (TP3_HIT, SL_HIT, CLOSED)

TP_STATUS = {1: TP1_HIT, 2: TP2_HIT, 3: TP3_HIT}


class SignalProposal(CamelModel):
    """A directional proposal from a scorer, before sizing."""

    action: Action
    confidence: float = Field(ge=0, le=100)
    entry_price: float
    stop_loss: float
    take_profit_1: float
    take_profit_2: float
    take_profit_3: float
    reasoning: str = ""
    key_factors: list[str] = Field(default_factory=list)
    risk_percentage: float = Field(default=2.0, gt=0, le=100)
    timeframe: str = "15m"
    risk_level: RiskLevel | None = None
    fallback: bool = False

    @property
    def signal_type(self) -> SignalType:
        return "LONG" if self.action == "BUY" else "SHORT"


class FundedSignal(CamelModel):
    """A proposal with position sizing applied — ready to be persisted."""

    coin: str
    proposal: SignalProposal
    capital_allocated: float
    position_size: float
    risk_reward_ratio: float

    @property
    def action(self) -> Direction:
        return self.proposal.action  # type: ignore[return-value]

    @property
    def confidence(self) -> float:
        return self.proposal.confidence


class SignalQuality(CamelModel):
    rating: QualityRating
    score: int = Field(ge=0, le=100)
    reasons: list[str] = Field(default_factory=list)


class TradingSignal(CamelModel):
    """Read-only projection of a persisted trading signal."""

    id: int
    coin: str
    action: Direction
    signal_type: SignalType
    confidence: float
    timeframe: str
    entry_price: float
    current_price: float
    stop_loss: float
    take_profit_1: float
    take_profit_2: float
    take_profit_3: float
    capital_allocated: float
    position_size: float
    risk_reward_ratio: float
    risk_percentage: float
    pnl_usd: float
    pnl_percentage: float
    tp1_hit: bool
    tp1_hit_at: datetime | None = None
    tp2_hit: bool
    tp2_hit_at: datetime | None = None
    tp3_hit: bool
    tp3_hit_at: datetime | None = None
    reasoning: str = ""
    key_factors: list[str] = Field(default_factory=list)
    quality: SignalQuality | None = None
    status: str
    close_reason: str | None = None
    created_at: datetime
    expires_at: datetime
    closed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: "TradingSignalRow") -> "TradingSignal":
        return cls(
            id=row.id,
            coin=row.coin,
            action=row.action,
            signal_type=row.signal_type,
            confidence=row.confidence,
            timeframe=row.timeframe,
            entry_price=row.entry_price,
            current_price=row.current_price,
            stop_loss=row.stop_loss,
            take_profit_1=row.take_profit_1,
            take_profit_2=row.take_profit_2,
            take_profit_3=row.take_profit_3,
            capital_allocated=row.capital_allocated,
            position_size=row.position_size,
            risk_reward_ratio=row.risk_reward_ratio,
            risk_percentage=row.risk_percentage,
            pnl_usd=row.pnl_usd,
            pnl_percentage=row.pnl_percentage,
            tp1_hit=row.tp1_hit,
            tp1_hit_at=ensure_utc(row.tp1_hit_at),
            tp2_hit=row.tp2_hit,
            tp2_hit_at=ensure_utc(row.tp2_hit_at),
            tp3_hit=row.tp3_hit,
            tp3_hit_at=ensure_utc(row.tp3_hit_at),
            reasoning=row.reasoning,
            key_factors=list(row.key_factors or []),
            quality=SignalQuality.model_validate(row.quality) if row.quality else None,
            status=row.status,
            close_reason=row.close_reason,
            created_at=ensure_utc(row.created_at),
            expires_at=ensure_utc(row.expires_at),
            closed_at=ensure_utc(row.closed_at),
        )
