"""Prediction outcome tracker — records predictions, grades them per horizon,
and mines graded history into performance summaries for the proposer."""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy import and_, exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from signal_desk.analysis.patterns import Sample, mine
from signal_desk.clock import utcnow
from signal_desk.db.tables.predictions import (
    PerformanceRollupRow,
    PredictionOutcomeRow,
    PredictionRow,
)
from signal_desk.errors import InputValidationError, NotFoundError
from signal_desk.metrics.formulas import mean, profit_factor, split_pnl, win_rate
from signal_desk.models.market import IndicatorSnapshot
from signal_desk.models.prediction import Horizon, PerformanceSummary, Prediction
from signal_desk.models.signal import RiskLevel, SignalProposal

log = structlog.get_logger("prediction_tracker")

# HOLD is graded correct when the price stayed within this band (percent).
HOLD_TOLERANCE_PCT = 2.0
TREND_WINDOW = 10
TREND_MIN_OLDER = 5
TREND_THRESHOLD = 0.15


def risk_level_for(confidence: float) -> RiskLevel:
    if confidence >= 70:
        return "LOW"
    if confidence >= 50:
        return "MEDIUM"
    return "HIGH"


def grade_outcome(action: str, entry_price: float, actual_price: float) -> tuple[float, bool]:
    """Return ``(profit_loss_pct, is_correct)`` for one horizon.

    BUY is correct above entry, SELL below entry; HOLD is correct when the
    price moved less than 2% either way.
    """
    if entry_price <= 0:
        raise InputValidationError("Entry price must be positive")
    move = (actual_price - entry_price) / entry_price * 100
    if action == "BUY":
        return move, actual_price > entry_price
    if action == "SELL":
        return -move, actual_price < entry_price
    return move, abs(move) < HOLD_TOLERANCE_PCT


def recent_trend(outcomes_newest_first: list[bool]) -> str:
    if len(outcomes_newest_first) < TREND_WINDOW:
        return "STABLE"
    recent = outcomes_newest_first[:TREND_WINDOW]
    older = outcomes_newest_first[TREND_WINDOW:TREND_WINDOW * 2]
    if len(older) < TREND_MIN_OLDER:
        return "STABLE"
    recent_rate = sum(recent) / len(recent)
    older_rate = sum(older) / len(older)
    if recent_rate > older_rate + TREND_THRESHOLD:
        return "IMPROVING"
    if recent_rate < older_rate - TREND_THRESHOLD:
        return "DECLINING"
    return "STABLE"


def sample_of(row: PredictionRow, profit_loss: float = 0.0) -> Sample:
    return Sample(
        action=row.action,
        rsi=row.rsi,
        volume=row.volume,
        confidence=row.confidence,
        price_change_24h=row.price_change_24h,
        btc_dominance=row.btc_dominance,
        profit_loss=profit_loss,
    )


class PredictionTracker:
    """Persistence and analytics for prediction records."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def record(
        self,
        coin: str,
        snapshot: IndicatorSnapshot,
        proposal: SignalProposal,
        now: datetime | None = None,
    ) -> Prediction:
        row = PredictionRow(
            coin=coin.upper(),
            price=snapshot.current_price,
            volume=snapshot.volume,
            rsi=snapshot.rsi,
            macd=snapshot.macd,
            btc_dominance=snapshot.btc_dominance,
            price_change_24h=snapshot.price_change_24h,
            action=proposal.action,
            confidence=proposal.confidence,
            entry_price=proposal.entry_price,
            target_price=proposal.take_profit_2,
            stop_loss=proposal.stop_loss,
            reasoning=proposal.reasoning,
            risk_level=proposal.risk_level or risk_level_for(proposal.confidence),
            timeframe=proposal.timeframe,
            key_factors=list(proposal.key_factors),
            created_at=now or utcnow(),
        )
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        log.info(
            "prediction_recorded",
            prediction_id=row.id,
            coin=row.coin,
            action=row.action,
            confidence=row.confidence,
        )
        return Prediction.from_row(row)

    def grade(
        self,
        prediction_id: int,
        horizon: Horizon | str,
        actual_price: float,
        now: datetime | None = None,
    ) -> Prediction:
        """Write (or overwrite) the outcome for one horizon.

        Other horizons of the same prediction are left untouched.  The
        coin's rollup for that horizon is refreshed afterwards; a failure
        there is logged and does not undo the grade.
        """
        horizon = Horizon.parse(horizon)
        if actual_price <= 0:
            raise InputValidationError("Actual price must be positive")
        now = now or utcnow()

        row = self.session.get(PredictionRow, prediction_id)
        if row is None:
            raise NotFoundError(f"Prediction {prediction_id} not found")

        profit_loss, is_correct = grade_outcome(row.action, row.entry_price, actual_price)
        outcome = row.outcomes.get(horizon.value)
        if outcome is None:
            outcome = PredictionOutcomeRow(horizon=horizon.value)
            row.outcomes[horizon.value] = outcome
        outcome.actual_price = actual_price
        outcome.profit_loss = profit_loss
        outcome.is_correct = is_correct
        outcome.graded_at = now
        self.session.commit()
        self.session.refresh(row)

        log.info(
            "prediction_graded",
            prediction_id=row.id,
            coin=row.coin,
            horizon=horizon.value,
            correct=is_correct,
            profit_loss=round(profit_loss, 2),
        )

        try:
            self.store_rollup(row.coin, horizon, now=now)
        except SQLAlchemyError:
            self.session.rollback()
            log.exception("rollup_update_failed", coin=row.coin, horizon=horizon.value)

        return Prediction.from_row(row)

    def summarize(
        self,
        coin: str,
        window_days: int = 30,
        horizon: Horizon | str = Horizon.H24,
        now: datetime | None = None,
    ) -> PerformanceSummary:
        """Aggregate predictions graded at *horizon* within the window."""
        horizon = Horizon.parse(horizon)
        if window_days <= 0:
            raise InputValidationError("Window must be at least one day")
        coin = coin.upper()
        since = (now or utcnow()) - timedelta(days=window_days)

        graded = self.session.execute(
            select(PredictionRow, PredictionOutcomeRow)
            .join(PredictionOutcomeRow, PredictionOutcomeRow.prediction_id == PredictionRow.id)
            .where(
                PredictionRow.coin == coin,
                PredictionRow.created_at >= since,
                PredictionOutcomeRow.horizon == horizon.value,
            )
            .order_by(PredictionRow.created_at.desc(), PredictionRow.id.desc())
        ).all()

        if not graded:
            return PerformanceSummary.empty(coin, horizon)

        results = [outcome.is_correct for _, outcome in graded]
        profits, losses = split_pnl([outcome.profit_loss for _, outcome in graded])
        total_profit = sum(profits)
        total_loss = sum(losses)

        wrong = [sample_of(p, o.profit_loss) for p, o in graded if not o.is_correct]
        right = [sample_of(p, o.profit_loss) for p, o in graded if o.is_correct]
        mistakes = mine("mistake", wrong, coin)
        conditions = mine("condition", right, coin)

        return PerformanceSummary(
            coin=coin,
            horizon=horizon,
            total_predictions=len(graded),
            correct_predictions=sum(results),
            win_rate=win_rate(sum(results), len(graded)),
            total_profit=total_profit,
            total_loss=total_loss,
            avg_profit=mean(profits),
            avg_loss=mean(losses),
            profit_factor=profit_factor(total_profit, total_loss),
            common_mistakes=[message for _, message in mistakes],
            best_conditions=[message for _, message in conditions],
            mistake_keys=[key for key, _ in mistakes],
            condition_keys=[key for key, _ in conditions],
            recent_trend=recent_trend(results),
        )

    def store_rollup(
        self,
        coin: str,
        horizon: Horizon | str,
        window_days: int = 30,
        now: datetime | None = None,
    ) -> PerformanceSummary:
        """Upsert today's rollup row for (coin, horizon)."""
        now = now or utcnow()
        summary = self.summarize(coin, window_days, horizon, now=now)
        day = now.date()

        row = self.session.execute(
            select(PerformanceRollupRow).where(
                PerformanceRollupRow.date == day,
                PerformanceRollupRow.coin == summary.coin,
                PerformanceRollupRow.horizon == summary.horizon.value,
            )
        ).scalar_one_or_none()
        if row is None:
            row = PerformanceRollupRow(date=day, coin=summary.coin, horizon=summary.horizon.value)
            self.session.add(row)

        row.total_predictions = summary.total_predictions
        row.correct_predictions = summary.correct_predictions
        row.win_rate = summary.win_rate
        row.total_profit = summary.total_profit
        row.total_loss = summary.total_loss
        row.avg_profit = summary.avg_profit
        row.avg_loss = summary.avg_loss
        row.profit_factor = summary.profit_factor
        row.common_mistakes = summary.common_mistakes
        row.best_conditions = summary.best_conditions
        row.updated_at = now
        self.session.commit()
        return summary

    def due(
        self,
        horizon: Horizon | str,
        now: datetime | None = None,
        limit: int = 100,
        after_id: int = 0,
    ) -> list[Prediction]:
        """Oldest predictions old enough for *horizon* and not yet graded at it.

        Pages by id: pass the last id of the previous page as *after_id*.
        """
        horizon = Horizon.parse(horizon)
        cutoff = (now or utcnow()) - horizon.delta
        already_graded = exists().where(
            and_(
                PredictionOutcomeRow.prediction_id == PredictionRow.id,
                PredictionOutcomeRow.horizon == horizon.value,
            )
        )
        rows = self.session.execute(
            select(PredictionRow)
            .where(
                PredictionRow.created_at <= cutoff,
                PredictionRow.id > after_id,
                ~already_graded,
            )
            .order_by(PredictionRow.id.asc())
            .limit(limit)
        ).scalars()
        return [Prediction.from_row(r) for r in rows]

    def latest(self, coin: str) -> Prediction | None:
        row = self.session.execute(
            select(PredictionRow)
            .where(PredictionRow.coin == coin.upper())
            .order_by(PredictionRow.created_at.desc(), PredictionRow.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        return Prediction.from_row(row) if row else None

    def list_recent(self, coin: str | None = None, limit: int = 20) -> list[Prediction]:
        stmt = select(PredictionRow)
        if coin:
            stmt = stmt.where(PredictionRow.coin == coin.upper())
        stmt = stmt.order_by(PredictionRow.created_at.desc(), PredictionRow.id.desc()).limit(limit)
        return [Prediction.from_row(r) for r in self.session.execute(stmt).scalars()]

    def get(self, prediction_id: int) -> Prediction:
        row = self.session.get(PredictionRow, prediction_id)
        if row is None:
            raise NotFoundError(f"Prediction {prediction_id} not found")
        return Prediction.from_row(row)
