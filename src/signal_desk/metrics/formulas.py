"""Pure metric computation functions — no DB, no SQLAlchemy."""

from __future__ import annotations

from typing import Sequence

import numpy as np

# Reported when there were profits but no losses at all.
PROFIT_FACTOR_SENTINEL = 999.0


def win_rate(wins: int, total: int) -> float:
    """Win rate as a percentage 0-100."""
    if total <= 0:
        return 0.0
    return wins / total * 100


def profit_factor(total_profit: float, total_loss: float) -> float:
    """Total profit / total loss.  *total_loss* should be a positive number.

    999 when there is no loss but some profit, 0 when there is neither.
    """
    if total_loss > 0:
        return total_profit / total_loss
    if total_profit > 0:
        return PROFIT_FACTOR_SENTINEL
    return 0.0


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=np.float64)))


def split_pnl(values: Sequence[float]) -> tuple[list[float], list[float]]:
    """Partition P&L values by sign into (profits, absolute losses); zeros are dropped."""
    profits = [v for v in values if v > 0]
    losses = [-v for v in values if v < 0]
    return profits, losses
