"""Signal service — the boundary operations the API and the jobs call.

Every public coroutine returns an :class:`OperationResult`; engine errors
and persistence failures are translated here and never escape.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from signal_desk.analysis.indicators import compute_indicators
from signal_desk.analysis.quality import evaluate_quality
from signal_desk.clock import utcnow
from signal_desk.config.schema import AppConfig
from signal_desk.errors import (
    InputValidationError,
    InvalidTransitionError,
    NotFoundError,
    SignalDeskError,
)
from signal_desk.exchange.base import GlobalMetricsSource, MarketDataSource
from signal_desk.learning.tracker import PredictionTracker
from signal_desk.metrics.portfolio import rollup_portfolio
from signal_desk.models.base import CamelModel
from signal_desk.models.market import IndicatorSnapshot
from signal_desk.models.prediction import Horizon, PerformanceSummary, Prediction
from signal_desk.models.signal import (
    TERMINAL_STATUSES,
    SignalProposal,
    SignalQuality,
    TradingSignal,
)
from signal_desk.notify.dispatcher import NotificationDispatcher
from signal_desk.notify.events import NotificationEvent
from signal_desk.scoring.proposer import SignalProposer
from signal_desk.signals.sizing import fund_proposal
from signal_desk.signals.store import SignalStore

log = structlog.get_logger("signal_service")

BTC_SELF_DOMINANCE = 100.0


def _jsonable(value: Any) -> Any:
    if isinstance(value, CamelModel):
        return value.to_api()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass
class OperationResult:
    """Outcome of a boundary operation — payload on success, message on failure."""

    success: bool
    data: Any = None
    error: str | None = None
    retryable: bool = False
    status_code: int = 200

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def from_error(cls, exc: SignalDeskError) -> "OperationResult":
        return cls(
            success=False,
            error=str(exc),
            retryable=exc.retryable,
            status_code=exc.status_code,
        )

    def to_api(self) -> dict:
        if self.success:
            return {"success": True, "data": _jsonable(self.data)}
        return {"success": False, "error": self.error, "retryable": self.retryable}


@dataclass
class _Generated:
    snapshot: IndicatorSnapshot
    summary: PerformanceSummary
    proposal: SignalProposal
    prediction: Prediction


class SignalService:
    """Composes market data, the proposer, the stores and the notifier."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        market: MarketDataSource,
        proposer: SignalProposer,
        global_metrics: GlobalMetricsSource | None = None,
        dispatcher: NotificationDispatcher | None = None,
        config: AppConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.market = market
        self.proposer = proposer
        self.global_metrics = global_metrics
        self.dispatcher = dispatcher
        self.config = config or AppConfig()
        self.clock = clock
        self._signal_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ── Plumbing ──────────────────────────────────────────────

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    async def _guard(self, operation: str, work: Awaitable[Any]) -> OperationResult:
        try:
            return OperationResult.ok(await work)
        except SignalDeskError as exc:
            log.warning(
                "operation_failed",
                operation=operation,
                error=str(exc),
                status_code=exc.status_code,
                retryable=exc.retryable,
            )
            return OperationResult.from_error(exc)
        except SQLAlchemyError:
            log.exception("persistence_failed", operation=operation)
            return OperationResult(
                success=False,
                error=f"Persistence failure during {operation}",
                retryable=True,
                status_code=503,
            )

    def _publish(self, events: list[NotificationEvent]) -> None:
        if self.dispatcher is not None and events:
            self.dispatcher.publish_all(events)

    @staticmethod
    def _coin(coin: str | None) -> str:
        if not coin or not str(coin).strip():
            raise InputValidationError("Coin symbol is required")
        coin = str(coin).strip().upper()
        if not coin.isalnum():
            raise InputValidationError(f"Invalid coin symbol: {coin!r}")
        return coin

    def _capital(self, capital: float | None) -> float:
        if capital is None:
            return self.config.engine.capital_per_signal
        if capital <= 0:
            raise InputValidationError("Capital must be positive")
        return float(capital)

    # ── Generation ────────────────────────────────────────────

    async def _snapshot(self, coin: str) -> IndicatorSnapshot:
        history = await self.market.get_history(
            coin, self.config.engine.history_interval, self.config.engine.history_limit,
        )
        if coin == "BTC":
            dominance: float | None = BTC_SELF_DOMINANCE
        elif self.global_metrics is not None:
            dominance = (await self.global_metrics.get_global_metrics()).btc_dominance
        else:
            dominance = None
        return compute_indicators(coin, history, btc_dominance=dominance)

    async def _generate(self, coin: str, capital: float) -> _Generated:
        """Indicators, performance feedback, proposal, prediction record."""
        snapshot = await self._snapshot(coin)
        engine = self.config.engine
        with self._session() as session:
            summary = PredictionTracker(session).summarize(
                coin, engine.performance_window_days, engine.performance_horizon, now=self.clock(),
            )
        proposal = await self.proposer.propose(snapshot, summary, capital)
        with self._session() as session:
            prediction = PredictionTracker(session).record(coin, snapshot, proposal, now=self.clock())
        return _Generated(snapshot, summary, proposal, prediction)

    def _create_signal(
        self,
        coin: str,
        generated: _Generated,
        capital: float,
        admitted: list[str] | None,
    ) -> tuple[TradingSignal | None, SignalQuality]:
        funded = fund_proposal(coin, generated.proposal, capital)
        quality = evaluate_quality(funded, generated.snapshot)
        if admitted is not None and quality.rating not in admitted:
            log.info(
                "signal_rejected",
                coin=coin,
                rating=quality.rating,
                score=quality.score,
            )
            return None, quality

        with self._session() as session:
            signal = SignalStore(session).create(
                funded, generated.snapshot, quality, now=self.clock(),
            )
        self._publish([NotificationEvent(
            kind="signal_created",
            coin=signal.coin,
            signal_id=signal.id,
            payload={
                "action": signal.action,
                "entry_price": signal.entry_price,
                "stop_loss": signal.stop_loss,
                "take_profits": [signal.take_profit_1, signal.take_profit_2, signal.take_profit_3],
                "confidence": signal.confidence,
                "risk_reward_ratio": signal.risk_reward_ratio,
                "position_size": signal.position_size,
                "quality_rating": quality.rating,
                "quality_score": quality.score,
            },
        )])
        return signal, quality

    @staticmethod
    def _potential_profits(signal: TradingSignal) -> dict[str, float]:
        size = signal.position_size
        entry = signal.entry_price
        return {
            "tp1": abs(signal.take_profit_1 - entry) * size,
            "tp2": abs(signal.take_profit_2 - entry) * size,
            "tp3": abs(signal.take_profit_3 - entry) * size,
            "sl": abs(signal.stop_loss - entry) * size,
        }

    async def predict(self, coin: str, capital: float | None = None) -> OperationResult:
        """Prediction path: propose and record, without opening a trading signal."""

        async def work():
            c = self._coin(coin)
            generated = await self._generate(c, self._capital(capital))
            return {
                "prediction": generated.prediction,
                "proposal": generated.proposal,
                "marketData": generated.snapshot,
                "performance": generated.summary,
            }

        return await self._guard("predict", work())

    async def generate_signal(self, coin: str, capital: float | None = None) -> OperationResult:
        """Propose, fund and persist one signal for *coin* (no quality gate).

        A HOLD proposal is recorded as a prediction but opens no signal.
        """

        async def work():
            c = self._coin(coin)
            amount = self._capital(capital)
            with self._session() as session:
                if SignalStore(session).has_active(c):
                    raise InvalidTransitionError(f"{c} already has an active signal")
            generated = await self._generate(c, amount)
            if generated.proposal.action == "HOLD":
                return {
                    "signal": None,
                    "proposal": generated.proposal,
                    "predictionId": generated.prediction.id,
                    "message": f"{c}: HOLD, no signal opened",
                }
            signal, quality = self._create_signal(c, generated, amount, admitted=None)
            return {
                "signal": signal,
                "quality": quality,
                "potentialProfits": self._potential_profits(signal),
                "predictionId": generated.prediction.id,
            }

        return await self._guard("generate_signal", work())

    async def auto_generate(
        self,
        coins: list[str] | None = None,
        capital_per_signal: float | None = None,
    ) -> OperationResult:
        """Generate for each coin without an open signal; persist EXCELLENT/GOOD only.

        Failures are isolated per coin and reported in the payload.
        """

        async def work():
            amount = self._capital(capital_per_signal)
            targets = [self._coin(c) for c in (coins or self.config.coins)]
            admitted = list(self.config.engine.admitted_ratings)
            created: list[dict] = []
            skipped: list[dict] = []
            failed: list[dict] = []

            for c in targets:
                try:
                    with self._session() as session:
                        if SignalStore(session).has_active(c):
                            log.info("auto_generate_skip_active", coin=c)
                            skipped.append({"coin": c, "reason": "active signal exists"})
                            continue
                    generated = await self._generate(c, amount)
                    if generated.proposal.action == "HOLD":
                        skipped.append({"coin": c, "reason": "HOLD"})
                        continue
                    signal, quality = self._create_signal(c, generated, amount, admitted)
                    if signal is None:
                        skipped.append({
                            "coin": c,
                            "reason": f"quality {quality.rating} ({quality.score}/100)",
                        })
                        continue
                    created.append({"signal": signal, "quality": quality})
                except (SignalDeskError, SQLAlchemyError) as exc:
                    log.exception("auto_generate_coin_failed", coin=c)
                    failed.append({"coin": c, "error": str(exc)})

            ratings = [item["quality"].rating for item in created]
            log.info(
                "auto_generate_completed",
                created=len(created),
                skipped=len(skipped),
                failed=len(failed),
            )
            return {
                "signals": created,
                "count": len(created),
                "excellentCount": ratings.count("EXCELLENT"),
                "goodCount": ratings.count("GOOD"),
                "skipped": skipped,
                "failed": failed,
            }

        return await self._guard("auto_generate", work())

    # ── Signal lifecycle ──────────────────────────────────────

    async def get_active(self, coin: str | None = None) -> OperationResult:
        async def work():
            c = self._coin(coin) if coin else None
            with self._session() as session:
                return SignalStore(session).list_active(c)

        return await self._guard("get_active", work())

    async def get_completed(self, limit: int = 50) -> OperationResult:
        async def work():
            if limit <= 0:
                raise InputValidationError("Limit must be positive")
            with self._session() as session:
                return SignalStore(session).list_completed(limit)

        return await self._guard("get_completed", work())

    async def close(self, signal_id: int, reason: str | None = None) -> OperationResult:
        """Close an open signal at the live price."""

        async def work():
            if not signal_id or signal_id <= 0:
                raise InputValidationError("Signal ID is required")
            with self._session() as session:
                signal = SignalStore(session).get(signal_id)
            if signal.status in TERMINAL_STATUSES:
                raise InvalidTransitionError(f"Signal {signal_id} is already {signal.status}")
            price = await self.market.get_current_price(signal.coin)
            async with self._signal_locks[signal_id]:
                with self._session() as session:
                    closed = SignalStore(session).close(
                        signal_id, price, reason or "Manual close", now=self.clock(),
                    )
            self._signal_locks.pop(signal_id, None)
            return {"signal": closed, "finalPnl": closed.pnl_usd}

        return await self._guard("close", work())

    async def update_prices(self, signal_id: int | None = None) -> OperationResult:
        """Advance every open signal (or just *signal_id*) with live prices.

        Updates for one signal are serialised; a failing signal is counted
        and skipped.  Notifications are published only after each commit.
        """

        async def work():
            with self._session() as session:
                store = SignalStore(session)
                targets = [store.get(signal_id)] if signal_id else store.list_active()
            targets = [s for s in targets if s.status not in TERMINAL_STATUSES]
            if not targets:
                return {"updated": 0, "failed": 0, "closed": [], "signals": []}

            prices = await self.market.get_current_prices(sorted({s.coin for s in targets}))
            updated: list[TradingSignal] = []
            closed: list[int] = []
            failed = 0
            expire = self.config.engine.expire_on_timeframe

            for signal in targets:
                price = prices.get(signal.coin)
                if price is None:
                    failed += 1
                    log.warning("price_missing", signal_id=signal.id, coin=signal.coin)
                    continue
                async with self._signal_locks[signal.id]:
                    try:
                        with self._session() as session:
                            result, events = SignalStore(session).advance(
                                signal.id, price, now=self.clock(), expire=expire,
                            )
                    except (SignalDeskError, SQLAlchemyError):
                        failed += 1
                        log.exception("signal_update_failed", signal_id=signal.id)
                        continue
                self._publish(events)
                updated.append(result)
                if result.status in TERMINAL_STATUSES:
                    closed.append(result.id)
                    self._signal_locks.pop(result.id, None)

            log.info("prices_updated", updated=len(updated), closed=len(closed), failed=failed)
            return {
                "updated": len(updated),
                "failed": failed,
                "closed": closed,
                "signals": updated,
            }

        return await self._guard("update_prices", work())

    # ── Performance ───────────────────────────────────────────

    async def get_performance(
        self,
        coin: str,
        days: int = 30,
        horizon: str = "24h",
    ) -> OperationResult:
        async def work():
            c = self._coin(coin)
            with self._session() as session:
                return PredictionTracker(session).summarize(c, days, horizon, now=self.clock())

        return await self._guard("get_performance", work())

    async def get_portfolio(self) -> OperationResult:
        """Roll up settled signals into today's portfolio snapshot."""

        async def work():
            with self._session() as session:
                snapshot = rollup_portfolio(
                    session, self.config.engine.starting_capital, now=self.clock(),
                )
                session.commit()
            return snapshot

        return await self._guard("get_portfolio", work())

    async def latest_prediction(self, coin: str) -> OperationResult:
        async def work():
            c = self._coin(coin)
            with self._session() as session:
                prediction = PredictionTracker(session).latest(c)
            if prediction is None:
                raise NotFoundError(f"No prediction recorded for {c}")
            return prediction

        return await self._guard("latest_prediction", work())

    async def recent_predictions(self, coin: str | None = None, limit: int = 20) -> OperationResult:
        async def work():
            if limit <= 0:
                raise InputValidationError("Limit must be positive")
            c = self._coin(coin) if coin else None
            with self._session() as session:
                return PredictionTracker(session).list_recent(c, limit)

        return await self._guard("recent_predictions", work())

    async def grade_prediction(
        self,
        prediction_id: int,
        horizon: str,
        actual_price: float | None = None,
    ) -> OperationResult:
        """Grade one prediction, at the live price unless *actual_price* is given."""

        async def work():
            h = Horizon.parse(horizon)
            price = actual_price
            if price is None:
                with self._session() as session:
                    prediction = PredictionTracker(session).get(prediction_id)
                price = await self.market.get_current_price(prediction.coin)
            with self._session() as session:
                return PredictionTracker(session).grade(prediction_id, h, price, now=self.clock())

        return await self._guard("grade_prediction", work())

    async def check_predictions(
        self,
        horizon: str,
        limit: int | None = None,
        after_id: int = 0,
    ) -> OperationResult:
        """Grade one page of predictions that have become due at *horizon*.

        Partial progress is fine: anything left over is picked up next time.
        The returned ``cursor`` is the last id seen; pass it back as *after_id*
        so records that cannot be graded yet do not block the ones behind them.
        """

        async def work():
            h = Horizon.parse(horizon)
            page_size = self.config.scheduler.page_size
            page = min(limit or page_size, page_size)
            with self._session() as session:
                due = PredictionTracker(session).due(
                    h, now=self.clock(), limit=page, after_id=after_id,
                )
            if not due:
                return {"horizon": h.value, "checked": 0, "correct": 0, "failed": 0,
                        "winRate": 0.0, "more": False, "cursor": after_id}

            prices = await self.market.get_current_prices(sorted({p.coin for p in due}))
            checked = correct = failed = 0
            for prediction in due:
                price = prices.get(prediction.coin)
                if price is None:
                    failed += 1
                    log.warning("price_missing", prediction_id=prediction.id, coin=prediction.coin)
                    continue
                try:
                    with self._session() as session:
                        graded = PredictionTracker(session).grade(
                            prediction.id, h, price, now=self.clock(),
                        )
                except (SignalDeskError, SQLAlchemyError):
                    failed += 1
                    log.exception("prediction_grade_failed", prediction_id=prediction.id)
                    continue
                checked += 1
                correct += int(graded.outcomes[h].is_correct)

            rate = correct / checked * 100 if checked else 0.0
            log.info(
                "predictions_checked",
                horizon=h.value,
                checked=checked,
                correct=correct,
                failed=failed,
            )
            return {
                "horizon": h.value,
                "checked": checked,
                "correct": correct,
                "failed": failed,
                "winRate": rate,
                "more": len(due) == page,
                "cursor": due[-1].id,
            }

        return await self._guard("check_predictions", work())

    async def daily_summary(self) -> OperationResult:
        """Portfolio rollup followed by a daily-summary notification."""

        async def work():
            with self._session() as session:
                snapshot = rollup_portfolio(
                    session, self.config.engine.starting_capital, now=self.clock(),
                )
                session.commit()
            self._publish([NotificationEvent(
                kind="daily_summary",
                payload=snapshot.model_dump(mode="json"),
            )])
            return snapshot

        return await self._guard("daily_summary", work())
