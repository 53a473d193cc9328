"""SQLAlchemy ORM models for predictions, per-horizon outcomes and rollups."""

import datetime as dt

from sqlalchemy import BigInteger, Boolean, Date, Float, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, attribute_keyed_dict, mapped_column, relationship
from sqlalchemy.types import DateTime

from signal_desk.db.base import SCHEMA, Base


class PredictionRow(Base):
    __tablename__ = "predictions"
    __table_args__ = {"schema": SCHEMA}

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    coin: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    price: Mapped[float] = mapped_column(Float, nullable=False)
    volume: Mapped[float] = mapped_column(Float, nullable=False)
    rsi: Mapped[float] = mapped_column(Float, nullable=False)
    macd: Mapped[float] = mapped_column(Float, nullable=False)
    btc_dominance: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_change_24h: Mapped[float] = mapped_column(Float, nullable=False)

    action: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    entry_price: Mapped[float] = mapped_column(Float, nullable=False)
    target_price: Mapped[float] = mapped_column(Float, nullable=False)
    stop_loss: Mapped[float] = mapped_column(Float, nullable=False)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    risk_level: Mapped[str] = mapped_column(Text, nullable=False)
    timeframe: Mapped[str | None] = mapped_column(Text, nullable=True)
    key_factors: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    outcomes: Mapped[dict[str, "PredictionOutcomeRow"]] = relationship(
        back_populates="prediction",
        collection_class=attribute_keyed_dict("horizon"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class PredictionOutcomeRow(Base):
    __tablename__ = "prediction_outcomes"
    __table_args__ = (
        UniqueConstraint("prediction_id", "horizon"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    prediction_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey(f"{SCHEMA}.predictions.id", ondelete="CASCADE"),
        nullable=False,
    )
    horizon: Mapped[str] = mapped_column(Text, nullable=False)
    actual_price: Mapped[float] = mapped_column(Float, nullable=False)
    profit_loss: Mapped[float] = mapped_column(Float, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    graded_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    prediction: Mapped[PredictionRow] = relationship(back_populates="outcomes")


class PerformanceRollupRow(Base):
    __tablename__ = "performance_rollups"
    __table_args__ = (
        UniqueConstraint("date", "coin", "horizon"),
        {"schema": SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    coin: Mapped[str] = mapped_column(Text, nullable=False)
    horizon: Mapped[str] = mapped_column(Text, nullable=False)
    total_predictions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_predictions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    win_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_profit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_loss: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_profit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_loss: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    profit_factor: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    common_mistakes: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    best_conditions: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
