"""SQLAlchemy ORM model for persisted trading signals."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Float, Index, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from signal_desk.db.base import SCHEMA, Base


class TradingSignalRow(Base):
    __tablename__ = "trading_signals"
    __table_args__ = (
        Index("ix_trading_signals_coin_status", "coin", "status"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    coin: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    signal_type: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    timeframe: Mapped[str] = mapped_column(Text, nullable=False)

    entry_price: Mapped[float] = mapped_column(Float, nullable=False)
    current_price: Mapped[float] = mapped_column(Float, nullable=False)
    stop_loss: Mapped[float] = mapped_column(Float, nullable=False)
    take_profit_1: Mapped[float] = mapped_column(Float, nullable=False)
    take_profit_2: Mapped[float] = mapped_column(Float, nullable=False)
    take_profit_3: Mapped[float] = mapped_column(Float, nullable=False)

    capital_allocated: Mapped[float] = mapped_column(Float, nullable=False)
    position_size: Mapped[float] = mapped_column(Float, nullable=False)
    risk_reward_ratio: Mapped[float] = mapped_column(Float, nullable=False)
    risk_percentage: Mapped[float] = mapped_column(Float, nullable=False)

    pnl_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    pnl_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    tp1_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tp1_hit_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tp2_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tp2_hit_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tp3_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tp3_hit_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    rsi: Mapped[float | None] = mapped_column(Float, nullable=True)
    macd: Mapped[float | None] = mapped_column(Float, nullable=True)
    volume_24h: Mapped[float | None] = mapped_column(Float, nullable=True)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    key_factors: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    quality: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="ACTIVE")
    close_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
