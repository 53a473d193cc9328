"""Portfolio rollup — aggregates settled signals into one snapshot per day."""

from __future__ import annotations

import datetime as dt

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from signal_desk.clock import ensure_utc, utcnow
from signal_desk.db.tables.portfolio import PortfolioSnapshotRow
from signal_desk.db.tables.signals import TradingSignalRow
from signal_desk.metrics.formulas import profit_factor, win_rate
from signal_desk.models.portfolio import PortfolioSnapshot
from signal_desk.models.signal import OPEN_STATUSES, SETTLED_STATUSES

log = structlog.get_logger("portfolio")

STARTING_CAPITAL = 1000.0


def _to_float(val: float | None, default: float = 0.0) -> float:
    if val is None:
        return default
    return float(val)


def _count(session: Session, *criteria) -> int:
    return session.execute(
        select(func.count(TradingSignalRow.id)).where(and_(*criteria))
    ).scalar() or 0


def _sum_pnl(session: Session, *criteria) -> float:
    return _to_float(session.execute(
        select(func.sum(TradingSignalRow.pnl_usd)).where(and_(*criteria))
    ).scalar())


def compute_portfolio(
    session: Session,
    starting_capital: float = STARTING_CAPITAL,
    day: dt.date | None = None,
) -> PortfolioSnapshot:
    """Aggregate every settled signal (TP3_HIT, SL_HIT, CLOSED) without writing."""
    settled = TradingSignalRow.status.in_(SETTLED_STATUSES)

    total = _count(session, settled)
    wins = _count(session, settled, TradingSignalRow.pnl_usd > 0)
    losses = _count(session, settled, TradingSignalRow.pnl_usd < 0)
    total_profit = _sum_pnl(session, settled, TradingSignalRow.pnl_usd > 0)
    total_loss = abs(_sum_pnl(session, settled, TradingSignalRow.pnl_usd < 0))
    active = _count(session, TradingSignalRow.status.in_(OPEN_STATUSES))

    net_profit = total_profit - total_loss
    return PortfolioSnapshot(
        date=day or utcnow().date(),
        starting_capital=starting_capital,
        current_capital=starting_capital + net_profit,
        total_trades=total,
        winning_trades=wins,
        losing_trades=losses,
        win_rate=win_rate(wins, total),
        total_profit=total_profit,
        total_loss=total_loss,
        net_profit=net_profit,
        profit_factor=profit_factor(total_profit, total_loss),
        active_positions=active,
    )


def rollup_portfolio(
    session: Session,
    starting_capital: float = STARTING_CAPITAL,
    now: dt.datetime | None = None,
) -> PortfolioSnapshot:
    """Compute the portfolio and upsert it as today's snapshot row.

    Repeated calls on the same day overwrite the row.  Flushes but does not
    commit; the caller owns the transaction.
    """
    now = now or utcnow()
    snapshot = compute_portfolio(session, starting_capital, day=now.date())

    row = session.execute(
        select(PortfolioSnapshotRow).where(PortfolioSnapshotRow.date == snapshot.date)
    ).scalar_one_or_none()
    if row is None:
        row = PortfolioSnapshotRow(date=snapshot.date)
        session.add(row)

    row.starting_capital = snapshot.starting_capital
    row.current_capital = snapshot.current_capital
    row.total_trades = snapshot.total_trades
    row.winning_trades = snapshot.winning_trades
    row.losing_trades = snapshot.losing_trades
    row.win_rate = snapshot.win_rate
    row.total_profit = snapshot.total_profit
    row.total_loss = snapshot.total_loss
    row.net_profit = snapshot.net_profit
    row.profit_factor = snapshot.profit_factor
    row.active_positions = snapshot.active_positions
    row.updated_at = now
    session.flush()

    log.info(
        "portfolio_rolled_up",
        date=str(snapshot.date),
        total_trades=snapshot.total_trades,
        net_profit=round(snapshot.net_profit, 2),
    )
    return snapshot.model_copy(update={"updated_at": ensure_utc(row.updated_at)})
