"""Portfolio rollup model."""

from __future__ import annotations

import datetime as dt

from signal_desk.models.base import CamelModel


class PortfolioSnapshot(CamelModel):
    """Daily aggregate over settled trading signals."""

    date: dt.date
    starting_capital: float
    current_capital: float
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    total_profit: float = 0.0
    total_loss: float = 0.0
    net_profit: float = 0.0
    profit_factor: float = 0.0
    active_positions: int = 0
    updated_at: dt.datetime | None = None
