"""Signal store — persists trading signals and applies the state machine."""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from signal_desk.clock import ensure_utc, utcnow
from signal_desk.db.tables.signals import TradingSignalRow
from signal_desk.errors import InvalidTransitionError, NotFoundError
from signal_desk.models.market import IndicatorSnapshot
from signal_desk.models.signal import (
    ACTIVE,
    CLOSED,
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    FundedSignal,
    SignalQuality,
    TradingSignal,
)
from signal_desk.notify.events import NotificationEvent
from signal_desk.signals.lifecycle import Ladder, evaluate
from signal_desk.signals.sizing import calculate_pnl, expiry_for

log = structlog.get_logger("signal_store")


class SignalStore:
    """Owns the ``trading_signals`` table.  Each write method commits."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # ── Writes ────────────────────────────────────────────────

    def create(
        self,
        funded: FundedSignal,
        snapshot: IndicatorSnapshot | None = None,
        quality: SignalQuality | None = None,
        now: datetime | None = None,
    ) -> TradingSignal:
        """Insert an ACTIVE signal.

        Does not check for an existing open signal on the coin; callers use
        :meth:`has_active` first.
        """
        now = now or utcnow()
        proposal = funded.proposal
        row = TradingSignalRow(
            coin=funded.coin,
            action=proposal.action,
            signal_type=proposal.signal_type,
            confidence=proposal.confidence,
            timeframe=proposal.timeframe,
            entry_price=proposal.entry_price,
            current_price=proposal.entry_price,
            stop_loss=proposal.stop_loss,
            take_profit_1=proposal.take_profit_1,
            take_profit_2=proposal.take_profit_2,
            take_profit_3=proposal.take_profit_3,
            capital_allocated=funded.capital_allocated,
            position_size=funded.position_size,
            risk_reward_ratio=funded.risk_reward_ratio,
            risk_percentage=proposal.risk_percentage,
            pnl_usd=0.0,
            pnl_percentage=0.0,
            tp1_hit=False,
            tp2_hit=False,
            tp3_hit=False,
            rsi=snapshot.rsi if snapshot else None,
            macd=snapshot.macd if snapshot else None,
            volume_24h=snapshot.volume if snapshot else None,
            reasoning=proposal.reasoning,
            key_factors=list(proposal.key_factors),
            quality=quality.model_dump() if quality else None,
            status=ACTIVE,
            created_at=now,
            expires_at=expiry_for(proposal.timeframe, now),
        )
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        log.info(
            "signal_created",
            signal_id=row.id,
            coin=row.coin,
            action=row.action,
            confidence=row.confidence,
            entry=row.entry_price,
        )
        return TradingSignal.from_row(row)

    def advance(
        self,
        signal_id: int,
        price: float,
        now: datetime | None = None,
        expire: bool = True,
    ) -> tuple[TradingSignal, list[NotificationEvent]]:
        """Apply one live price to a signal and return it with its events.

        A terminal signal is returned unchanged, so retrying is harmless.
        """
        now = now or utcnow()
        row = self._get_row(signal_id, for_update=True)
        if row.status in TERMINAL_STATUSES:
            log.debug("signal_already_terminal", signal_id=signal_id, status=row.status)
            return TradingSignal.from_row(row), []

        ladder = Ladder(
            action=row.action,
            entry_price=row.entry_price,
            stop_loss=row.stop_loss,
            take_profits=(row.take_profit_1, row.take_profit_2, row.take_profit_3),
            hits=(row.tp1_hit, row.tp2_hit, row.tp3_hit),
            position_size=row.position_size,
            status=row.status,
        )
        is_expired = expire and ensure_utc(row.expires_at) <= now
        transition = evaluate(ladder, price, expired=is_expired)

        row.current_price = price
        row.pnl_usd = transition.pnl_usd
        row.pnl_percentage = transition.pnl_percentage
        for level in transition.new_levels:
            setattr(row, f"tp{level}_hit", True)
            setattr(row, f"tp{level}_hit_at", now)
        row.status = transition.status
        if transition.terminal:
            row.closed_at = now
            if transition.expired:
                row.close_reason = "Signal expired"
        self.session.commit()
        self.session.refresh(row)

        events = [
            NotificationEvent(
                kind="tp_hit",
                coin=row.coin,
                signal_id=row.id,
                level=level,
                payload=self._event_payload(row, price),
                created_at=now,
            )
            for level in transition.new_levels
        ]
        if transition.stop_hit:
            events.append(NotificationEvent(
                kind="sl_hit",
                coin=row.coin,
                signal_id=row.id,
                payload=self._event_payload(row, price),
                created_at=now,
            ))

        if transition.changed_status:
            log.info(
                "signal_advanced",
                signal_id=row.id,
                coin=row.coin,
                status=row.status,
                new_levels=transition.new_levels,
                price=price,
                pnl_usd=round(row.pnl_usd, 2),
            )
        return TradingSignal.from_row(row), events

    def close(
        self,
        signal_id: int,
        price: float,
        reason: str = "Manual close",
        now: datetime | None = None,
    ) -> TradingSignal:
        """Force-terminate an open signal at *price*.

        Raises:
            NotFoundError: unknown signal.
            InvalidTransitionError: the signal is already terminal.
        """
        now = now or utcnow()
        row = self._get_row(signal_id, for_update=True)
        if row.status in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"Signal {signal_id} is already {row.status}")

        pnl_usd, pnl_pct = calculate_pnl(row.action, row.entry_price, price, row.position_size)
        row.current_price = price
        row.pnl_usd = pnl_usd
        row.pnl_percentage = pnl_pct
        row.status = CLOSED
        row.close_reason = reason
        row.closed_at = now
        self.session.commit()
        self.session.refresh(row)
        log.info(
            "signal_closed",
            signal_id=row.id,
            coin=row.coin,
            reason=reason,
            price=price,
            pnl_usd=round(pnl_usd, 2),
        )
        return TradingSignal.from_row(row)

    # ── Reads ─────────────────────────────────────────────────

    def get(self, signal_id: int) -> TradingSignal:
        return TradingSignal.from_row(self._get_row(signal_id))

    def has_active(self, coin: str) -> bool:
        return self.session.execute(
            select(TradingSignalRow.id)
            .where(
                TradingSignalRow.coin == coin.upper(),
                TradingSignalRow.status.in_(OPEN_STATUSES),
            )
            .limit(1)
        ).first() is not None

    def list_active(self, coin: str | None = None) -> list[TradingSignal]:
        """Open signals (ACTIVE, TP1_HIT, TP2_HIT), newest first."""
        stmt = select(TradingSignalRow).where(TradingSignalRow.status.in_(OPEN_STATUSES))
        if coin:
            stmt = stmt.where(TradingSignalRow.coin == coin.upper())
        stmt = stmt.order_by(TradingSignalRow.created_at.desc(), TradingSignalRow.id.desc())
        return [TradingSignal.from_row(r) for r in self.session.execute(stmt).scalars()]

    def list_completed(self, limit: int = 50) -> list[TradingSignal]:
        """Terminal signals, most recently closed first."""
        stmt = (
            select(TradingSignalRow)
            .where(TradingSignalRow.status.in_(TERMINAL_STATUSES))
            .order_by(TradingSignalRow.closed_at.desc(), TradingSignalRow.id.desc())
            .limit(limit)
        )
        return [TradingSignal.from_row(r) for r in self.session.execute(stmt).scalars()]

    # ── Helpers ───────────────────────────────────────────────

    def _get_row(self, signal_id: int, for_update: bool = False) -> TradingSignalRow:
        stmt = select(TradingSignalRow).where(TradingSignalRow.id == signal_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Signal {signal_id} not found")
        return row

    @staticmethod
    def _event_payload(row: TradingSignalRow, price: float) -> dict:
        return {
            "action": row.action,
            "entry_price": row.entry_price,
            "price": price,
            "stop_loss": row.stop_loss,
            "take_profits": [row.take_profit_1, row.take_profit_2, row.take_profit_3],
            "pnl_usd": row.pnl_usd,
            "pnl_percentage": row.pnl_percentage,
            "status": row.status,
        }
