"""Position sizing, risk/reward and P&L — pure functions, no DB."""

from __future__ import annotations

from datetime import datetime, timedelta

from signal_desk.errors import InputValidationError
from signal_desk.models.signal import FundedSignal, SignalProposal

_EXPIRY_BY_TIMEFRAME = {
    "15m": timedelta(minutes=15),
    "1h": timedelta(hours=1),
    "4h": timedelta(hours=4),
}
_DEFAULT_EXPIRY = timedelta(hours=24)


def calculate_position_size(
    capital: float,
    risk_percentage: float,
    entry_price: float,
    stop_loss: float,
) -> float:
    """Fixed-fractional sizing.

    risk_amount = capital * risk_percentage / 100
    position_size = risk_amount / |entry - stop|
    """
    stop_distance = abs(entry_price - stop_loss)
    if stop_distance == 0:
        raise InputValidationError("Entry price and stop loss must differ")
    return capital * risk_percentage / 100 / stop_distance


def calculate_risk_reward(entry_price: float, stop_loss: float, take_profit_3: float) -> float:
    """|tp3 - entry| / |entry - stop|"""
    stop_distance = abs(entry_price - stop_loss)
    if stop_distance == 0:
        raise InputValidationError("Entry price and stop loss must differ")
    return abs(take_profit_3 - entry_price) / stop_distance


def calculate_pnl(
    action: str,
    entry_price: float,
    current_price: float,
    position_size: float,
) -> tuple[float, float]:
    """Unrealised P&L as ``(usd, percentage)``.

    BUY:  (current - entry) * size
    SELL: (entry - current) * size
    """
    if action == "BUY":
        move = current_price - entry_price
    else:
        move = entry_price - current_price
    pct = move / entry_price * 100 if entry_price else 0.0
    return move * position_size, pct


def expiry_for(timeframe: str, created_at: datetime) -> datetime:
    return created_at + _EXPIRY_BY_TIMEFRAME.get(timeframe, _DEFAULT_EXPIRY)


def fund_proposal(coin: str, proposal: SignalProposal, capital: float) -> FundedSignal:
    """Attach capital, position size and risk/reward to a directional proposal.

    Raises:
        InputValidationError: HOLD proposal, non-positive capital, or entry == stop.
    """
    if proposal.action == "HOLD":
        raise InputValidationError("HOLD proposals cannot be funded")
    if capital <= 0:
        raise InputValidationError("Capital must be positive")

    size = calculate_position_size(
        capital, proposal.risk_percentage, proposal.entry_price, proposal.stop_loss,
    )
    ratio = calculate_risk_reward(
        proposal.entry_price, proposal.stop_loss, proposal.take_profit_3,
    )
    return FundedSignal(
        coin=coin.upper(),
        proposal=proposal,
        capital_allocated=capital,
        position_size=size,
        risk_reward_ratio=ratio,
    )
