"""Trading metrics — pure formulas and the portfolio rollup."""

from signal_desk.metrics.formulas import (
    PROFIT_FACTOR_SENTINEL,
    mean,
    profit_factor,
    split_pnl,
    win_rate,
)
from signal_desk.metrics.portfolio import compute_portfolio, rollup_portfolio

__all__ = [
    "PROFIT_FACTOR_SENTINEL",
    "compute_portfolio",
    "mean",
    "profit_factor",
    "rollup_portfolio",
    "split_pnl",
    "win_rate",
]
